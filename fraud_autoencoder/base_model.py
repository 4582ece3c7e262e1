"""
Base Reconstruction Model Interface

The anomaly scorer treats the trained network as a black box. Anything that
reconstructs a feature matrix of the shape it was given can be scored.
"""

from abc import ABC, abstractmethod

import numpy as np


class ReconstructionModel(ABC):
    """
    Abstract base class for reconstruction models.

    Implementations map a (num_rows, input_dim) matrix to a reconstruction
    of identical shape.
    """

    @property
    @abstractmethod
    def input_dim(self) -> int:
        """
        Number of feature columns the model expects.

        Returns:
            Input (and output) dimensionality
        """
        pass

    @abstractmethod
    def reconstruct(self, features: np.ndarray) -> np.ndarray:
        """
        Reconstruct a feature matrix.

        Args:
            features: Normalized features, shape (num_rows, input_dim)

        Returns:
            Reconstruction, shape (num_rows, input_dim)
        """
        pass
