"""
Reconstruction Error Scorer

Scores each transaction by how badly the autoencoder reconstructs it:

    score(i) = Σ_j (x(i, j) - x̂(i, j))²

This is the row-wise SUM of squared residuals, not the mean. It is often
called "MSE" in write-ups of this method; threshold values downstream are
calibrated against the sum, so the two must not be mixed.
"""

import logging

import numpy as np
import pandas as pd

from fraud_autoencoder.base_model import ReconstructionModel

logger = logging.getLogger(__name__)


def sum_squared_error(features: np.ndarray, reconstruction: np.ndarray) -> np.ndarray:
    """
    Row-wise sum of squared residuals.

    Args:
        features: Input matrix, shape (num_rows, num_features)
        reconstruction: Reconstruction, same shape

    Returns:
        Per-row error, shape (num_rows,)

    Raises:
        ValueError: If the shapes differ
    """
    features = np.asarray(features, dtype=np.float64)
    reconstruction = np.asarray(reconstruction, dtype=np.float64)
    if features.shape != reconstruction.shape:
        raise ValueError(
            f"Reconstruction shape {reconstruction.shape} does not match input shape {features.shape}"
        )
    return np.sum((features - reconstruction) ** 2, axis=1)


def score(model: ReconstructionModel, features: np.ndarray) -> np.ndarray:
    """
    Compute the reconstruction error of every row.

    Args:
        model: Trained reconstruction model
        features: Normalized feature matrix, shape (num_rows, model.input_dim)

    Returns:
        Scores, shape (num_rows,)

    Raises:
        ValueError: If features is not 2-D or its width differs from model.input_dim
    """
    features = np.asarray(features, dtype=np.float64)
    if features.ndim != 2:
        raise ValueError(f"Expected a 2-D feature matrix, got shape {features.shape}")
    if features.shape[1] != model.input_dim:
        raise ValueError(
            f"Feature dimension mismatch: model expects {model.input_dim}, got {features.shape[1]}"
        )

    scores = sum_squared_error(features, model.reconstruct(features))

    if len(scores) > 0:
        logger.info(
            f"Scored {len(scores):,} rows: range [{scores.min():.4f}, {scores.max():.4f}], "
            f"median {np.median(scores):.4f}"
        )
    return scores


def build_score_table(scores: np.ndarray, labels: np.ndarray, amounts: np.ndarray) -> pd.DataFrame:
    """
    Pair each score with its ground-truth label and raw amount.

    Raises:
        ValueError: If the three arrays differ in length
    """
    if not len(scores) == len(labels) == len(amounts):
        raise ValueError(
            f"Length mismatch: scores={len(scores)}, labels={len(labels)}, amounts={len(amounts)}"
        )
    return pd.DataFrame({
        "score": np.asarray(scores, dtype=np.float64),
        "label": np.asarray(labels, dtype=np.int64),
        "amount": np.asarray(amounts, dtype=np.float64),
    })


def summarize_by_class(table: pd.DataFrame) -> pd.DataFrame:
    """Score distribution per class (count, mean, quartiles, max)."""
    return table.groupby("label")["score"].describe()
