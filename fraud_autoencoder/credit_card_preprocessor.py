"""
Credit Card Fraud Detection Data Preprocessor

Handles data loading, chronological train/test splitting, feature/label
separation and min-max normalization for credit card transaction data.

The split is by row position, not by shuffling: the table is assumed to be
ordered by Time, and the first `cutoff` rows become the training set.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
import torch
from torch.utils.data import Dataset

from fraud_autoencoder import feature_normalizer
from fraud_autoencoder.feature_normalizer import MinMaxTransform
from fraud_autoencoder.transaction_config import (
    AMOUNT_COLUMN,
    FEATURE_COLUMNS,
    LABEL_COLUMN,
    REQUIRED_COLUMNS,
    TIME_COLUMN,
    PipelineConfig,
)

logger = logging.getLogger(__name__)


class CreditCardDataset(Dataset):
    """
    PyTorch Dataset for credit card transactions.

    Yields individual normalized feature vectors (no labels: the autoencoder
    target is its own input).
    """

    def __init__(self, features: np.ndarray):
        """
        Args:
            features: Transaction features, shape (num_transactions, num_features)
        """
        self.features = torch.FloatTensor(features)

    def __len__(self) -> int:
        return len(self.features)

    def __getitem__(self, idx: int) -> torch.Tensor:
        return self.features[idx]


@dataclass
class SplitArrays:
    """Feature matrix, labels and raw amounts for one side of the split."""
    features: np.ndarray
    labels: np.ndarray
    amounts: np.ndarray

    def __len__(self) -> int:
        return len(self.labels)

    @property
    def normal_features(self) -> np.ndarray:
        """Feature rows labeled legitimate (Class 0)."""
        return self.features[self.labels == 0]


@dataclass
class PreparedSplits:
    """Normalized train/test arrays plus the transform fitted on train."""
    train: SplitArrays
    test: SplitArrays
    transform: MinMaxTransform
    feature_names: List[str]


def load_data(filepath: str) -> pd.DataFrame:
    """
    Load and validate credit card CSV file.

    Args:
        filepath: Path to creditcard.csv

    Returns:
        DataFrame with all transactions, in file order

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If required columns are missing
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Data file not found: {filepath}")

    logger.info(f"Loading data from {filepath}")
    df = pd.read_csv(filepath)

    missing = set(REQUIRED_COLUMNS) - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}")

    total = len(df)
    fraud_count = int((df[LABEL_COLUMN] == 1).sum())
    fraud_ratio = fraud_count / total * 100 if total > 0 else 0.0

    logger.info(f"Loaded {total:,} transactions")
    logger.info(f"Fraud transactions: {fraud_count:,} ({fraud_ratio:.3f}%)")
    logger.info(f"Legitimate transactions: {total - fraud_count:,} ({100 - fraud_ratio:.3f}%)")
    if total > 0:
        logger.info(f"Time range: {df[TIME_COLUMN].min():.0f}s - {df[TIME_COLUMN].max():.0f}s")
        logger.info(f"Amount range: ${df[AMOUNT_COLUMN].min():.2f} - ${df[AMOUNT_COLUMN].max():.2f}")

    return df


def split(dataset: pd.DataFrame, cutoff_index: int) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split a chronologically ordered table into train and test.

    train holds the first cutoff_index rows and test the remainder, both in
    their original order. The Time column is dropped from both afterwards.

    Args:
        dataset: Time-ordered transaction table
        cutoff_index: Number of rows placed in train

    Returns:
        (train, test) DataFrames without the Time column

    Raises:
        ValueError: If cutoff_index is outside [0, len(dataset)]
    """
    if not 0 <= cutoff_index <= len(dataset):
        raise ValueError(
            f"Split cutoff {cutoff_index} out of range for dataset of {len(dataset)} rows"
        )

    train = dataset.iloc[:cutoff_index]
    test = dataset.iloc[cutoff_index:]

    train = train.drop(columns=[TIME_COLUMN], errors="ignore")
    test = test.drop(columns=[TIME_COLUMN], errors="ignore")

    logger.info(f"Chronological split at row {cutoff_index:,}:")
    logger.info(f"  Train: {len(train):,} rows, fraud: {int((train[LABEL_COLUMN] == 1).sum()):,}")
    logger.info(f"  Test: {len(test):,} rows, fraud: {int((test[LABEL_COLUMN] == 1).sum()):,}")

    return train, test


def cutoff_for_time(dataset: pd.DataFrame, split_time: float) -> int:
    """
    Number of leading rows with Time <= split_time.

    Relies on the table being sorted by Time.
    """
    times = dataset[TIME_COLUMN].to_numpy()
    return int(np.searchsorted(times, split_time, side="right"))


def cutoff_for_fraction(dataset: pd.DataFrame, train_fraction: float) -> int:
    """Row cutoff placing train_fraction of the table in train."""
    if not 0.0 <= train_fraction <= 1.0:
        raise ValueError(f"train_fraction must be in [0, 1], got {train_fraction}")
    return int(len(dataset) * train_fraction)


def separate(frame: pd.DataFrame) -> SplitArrays:
    """
    Pull the feature matrix, labels and raw amounts out of a split.

    Amount stays a feature; its raw (unnormalized) copy is kept separately
    for the cost model.
    """
    if TIME_COLUMN in frame.columns:
        raise ValueError(f"{TIME_COLUMN} column must be dropped before feature extraction")

    return SplitArrays(
        features=frame[FEATURE_COLUMNS].to_numpy(dtype=np.float64),
        labels=frame[LABEL_COLUMN].to_numpy(dtype=np.int64),
        amounts=frame[AMOUNT_COLUMN].to_numpy(dtype=np.float64),
    )


class CreditCardPreprocessor:
    """
    Preprocessor for credit card fraud detection data.

    Pipeline:
    1. Load CSV and verify structure
    2. Resolve the chronological cutoff (by time value or by fraction)
    3. Split train/test and drop Time
    4. Separate features, labels and raw amounts
    5. Fit min-max normalization on train features, apply to both splits
    """

    def __init__(self, config: Optional[PipelineConfig] = None):
        """
        Args:
            config: Pipeline configuration
        """
        self.config = config or PipelineConfig()
        self.transform: Optional[MinMaxTransform] = None
        self.raw_df: Optional[pd.DataFrame] = None

    def resolve_cutoff(self, df: pd.DataFrame) -> int:
        if self.config.split_time is not None:
            cutoff = cutoff_for_time(df, self.config.split_time)
            logger.info(f"Cutoff from split_time={self.config.split_time:.0f}s: row {cutoff:,}")
        else:
            cutoff = cutoff_for_fraction(df, self.config.train_fraction)
            logger.info(f"Cutoff from train_fraction={self.config.train_fraction}: row {cutoff:,}")
        if cutoff == 0 or cutoff == len(df):
            empty = "train" if cutoff == 0 else "test"
            raise ValueError(
                f"Split cutoff {cutoff} leaves the {empty} split empty "
                f"({len(df):,} rows); adjust split_time or train_fraction"
            )
        return cutoff

    def prepare(self, df: pd.DataFrame) -> PreparedSplits:
        """
        Split, separate and normalize an already loaded table.

        Args:
            df: Time-ordered transaction table

        Returns:
            PreparedSplits with normalized features
        """
        train_df, test_df = split(df, self.resolve_cutoff(df))
        train = separate(train_df)
        test = separate(test_df)

        self.transform = feature_normalizer.fit(train.features)

        train.features = feature_normalizer.apply(self.transform, train.features)
        test.features = feature_normalizer.apply(self.transform, test.features)

        logger.info(f"  Train: normalized to [{train.features.min():.3f}, {train.features.max():.3f}]")
        logger.info(f"  Test: normalized to [{test.features.min():.3f}, {test.features.max():.3f}]")

        return PreparedSplits(
            train=train,
            test=test,
            transform=self.transform,
            feature_names=list(FEATURE_COLUMNS),
        )

    def preprocess(self, filepath: Optional[str] = None) -> PreparedSplits:
        """
        Main entry point: complete preprocessing pipeline.

        Args:
            filepath: Path to creditcard.csv (defaults to config.data_path)

        Returns:
            PreparedSplits
        """
        logger.info("=" * 80)
        logger.info("Credit Card Data Preprocessing Pipeline")
        logger.info("=" * 80)

        self.raw_df = load_data(filepath or self.config.data_path)
        prepared = self.prepare(self.raw_df)

        logger.info("=" * 80)
        logger.info("Preprocessing complete!")
        logger.info("=" * 80)

        return prepared
