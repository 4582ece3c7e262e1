"""
Configuration for Credit Card Fraud Autoencoder Pipeline

Column layout of the credit card transaction table and the run-level
configuration dataclass shared by the pipeline stages.
"""

from dataclasses import dataclass
from typing import List, Optional

# Column names in creditcard.csv
TIME_COLUMN = "Time"
AMOUNT_COLUMN = "Amount"
LABEL_COLUMN = "Class"
PCA_COLUMNS: List[str] = [f"V{i}" for i in range(1, 29)]

# V1-V28 + Amount, in file order
FEATURE_COLUMNS: List[str] = PCA_COLUMNS + [AMOUNT_COLUMN]
REQUIRED_COLUMNS: List[str] = [TIME_COLUMN] + FEATURE_COLUMNS + [LABEL_COLUMN]

NUM_FEATURES = len(FEATURE_COLUMNS)  # 29

# Review cost charged for every flagged transaction
DEFAULT_FIXED_COST = 2.5


@dataclass
class PipelineConfig:
    """
    Run-level configuration for the fraud study.

    The chronological cutoff is taken from split_time when set (all rows with
    Time <= split_time go to train), otherwise from train_fraction.
    """
    data_path: str = "data/creditcard.csv"
    split_time: Optional[float] = None
    train_fraction: float = 0.75
    fixed_cost: float = DEFAULT_FIXED_COST
    top_k: int = 100              # Fixed number of transactions to review
    num_thresholds: int = 200     # Resolution of the threshold sweep
    min_recall: float = 0.8       # Recall floor for the tradeoff strategy
    seed: int = 42
