"""
Min-Max Feature Normalizer

Fits per-column min/max on the training feature matrix and maps any other
matrix into the same scale without re-fitting:

    v' = (v - min_c) / (max_c - min_c)

Columns that are constant in training (max_c == min_c) map to 0 for every
row, in training and in any later matrix. Values outside the training range
are not clamped, so test data may fall outside [0, 1].
"""

import logging
from dataclasses import dataclass

import numpy as np
from sklearn.preprocessing import MinMaxScaler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MinMaxTransform:
    """
    Fitted normalization parameters.

    Attributes:
        data_min: Per-column training minimum, shape (num_features,)
        data_max: Per-column training maximum, shape (num_features,)
    """
    data_min: np.ndarray
    data_max: np.ndarray

    @property
    def num_features(self) -> int:
        return len(self.data_min)

    @property
    def data_range(self) -> np.ndarray:
        return self.data_max - self.data_min

    @property
    def constant_columns(self) -> np.ndarray:
        """Indices of columns with zero range in training."""
        return np.flatnonzero(self.data_range == 0)


def _as_matrix(features) -> np.ndarray:
    matrix = np.asarray(features, dtype=np.float64)
    if matrix.ndim != 2:
        raise ValueError(f"Expected a 2-D feature matrix, got shape {matrix.shape}")
    return matrix


def fit(train_features) -> MinMaxTransform:
    """
    Fit min/max per column on training features.

    The label column must already be removed from train_features.

    Args:
        train_features: Training feature matrix, shape (num_rows, num_features)

    Returns:
        Immutable MinMaxTransform

    Raises:
        ValueError: If the matrix is not 2-D or has no rows
    """
    matrix = _as_matrix(train_features)
    if len(matrix) == 0:
        raise ValueError("Cannot fit normalizer on an empty training matrix")

    scaler = MinMaxScaler()
    scaler.fit(matrix)

    data_min = scaler.data_min_.copy()
    data_max = scaler.data_max_.copy()
    data_min.setflags(write=False)
    data_max.setflags(write=False)
    transform = MinMaxTransform(data_min=data_min, data_max=data_max)

    logger.info(f"Fitted min-max normalizer on {len(matrix):,} rows x {transform.num_features} features")
    if len(transform.constant_columns) > 0:
        logger.warning(
            f"Constant training columns {transform.constant_columns.tolist()} will normalize to 0"
        )

    return transform


def apply(transform: MinMaxTransform, features) -> np.ndarray:
    """
    Normalize a feature matrix with previously fitted parameters.

    Args:
        transform: Fitted MinMaxTransform (not modified)
        features: Feature matrix, shape (num_rows, num_features)

    Returns:
        New normalized matrix of the same shape

    Raises:
        ValueError: If the column count differs from the fitted transform
    """
    matrix = _as_matrix(features)
    if matrix.shape[1] != transform.num_features:
        raise ValueError(
            f"Feature count mismatch: transform fitted on {transform.num_features} "
            f"columns, got {matrix.shape[1]}"
        )

    data_range = transform.data_range
    constant = data_range == 0
    safe_range = np.where(constant, 1.0, data_range)

    normalized = (matrix - transform.data_min) / safe_range
    normalized[:, constant] = 0.0
    return normalized
