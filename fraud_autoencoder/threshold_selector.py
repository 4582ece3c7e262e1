"""
Threshold Selection for Reconstruction-Error Fraud Scores

Turns a score into a decision (flag iff score > k) and evaluates candidate
thresholds k with three metrics:

- precision(k) = TP / (TP + FP), UNDEFINED when nothing is flagged
- recall(k)    = TP / total fraud, UNDEFINED when the labels hold no fraud
- cost(k)      = Σ_i (flagged_i ? fixed_cost : (fraud_i ? amount_i : 0))

The cost model charges a fixed review cost for every flagged transaction and
the full amount of every fraud that slips through. Legitimate transactions
that are not flagged cost nothing.

Three selection strategies are offered:
1. Fixed top-K: review the K highest-scoring transactions
2. Precision/recall tradeoff: best precision subject to a recall floor
3. Cost minimization: lowest total cost over the sweep

All functions are pure; the sweep range is always supplied by the caller.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class _Undefined:
    """Marker for a metric whose denominator is zero."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __reduce__(self):
        return (_Undefined, ())


UNDEFINED = _Undefined()

Metric = Union[float, _Undefined]

# criterion -> True if larger is better
CRITERIA: Dict[str, bool] = {
    "precision": True,
    "recall": True,
    "f1": True,
    "cost": False,
}


@dataclass(frozen=True)
class ThresholdMetrics:
    """Decision quality at a single threshold."""
    threshold: float
    true_positives: int
    false_positives: int
    false_negatives: int
    true_negatives: int
    precision: Metric
    recall: Metric
    cost: float

    @property
    def num_flagged(self) -> int:
        return self.true_positives + self.false_positives

    @property
    def f1(self) -> Metric:
        if self.precision is UNDEFINED or self.recall is UNDEFINED:
            return UNDEFINED
        if self.precision + self.recall == 0:
            return 0.0
        return 2 * self.precision * self.recall / (self.precision + self.recall)

    def value(self, criterion: str) -> Metric:
        if criterion not in CRITERIA:
            raise ValueError(
                f"Unknown criterion: {criterion}. Must be one of: {', '.join(CRITERIA)}"
            )
        return getattr(self, criterion)


@dataclass(frozen=True)
class SweepResult:
    """Metrics for every threshold of a sweep, in the order supplied."""
    rows: Tuple[ThresholdMetrics, ...]

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    @property
    def thresholds(self) -> np.ndarray:
        return np.array([row.threshold for row in self.rows])

    def best_by(self, criterion: str) -> float:
        return best_by(self, criterion)

    def to_frame(self) -> pd.DataFrame:
        """
        Tabular view for reporting.

        Undefined precision/F1 become NaN here; the precision_defined column
        keeps the distinction from a real 0.0.
        """
        records = []
        for row in self.rows:
            records.append({
                "threshold": row.threshold,
                "flagged": row.num_flagged,
                "tp": row.true_positives,
                "fp": row.false_positives,
                "fn": row.false_negatives,
                "tn": row.true_negatives,
                "precision": np.nan if row.precision is UNDEFINED else row.precision,
                "precision_defined": row.precision is not UNDEFINED,
                "recall": np.nan if row.recall is UNDEFINED else row.recall,
                "f1": np.nan if row.f1 is UNDEFINED else row.f1,
                "cost": row.cost,
            })
        return pd.DataFrame.from_records(
            records,
            columns=["threshold", "flagged", "tp", "fp", "fn", "tn",
                     "precision", "precision_defined", "recall", "f1", "cost"],
        )


def _validate(scores, labels, amounts) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    scores = np.asarray(scores, dtype=np.float64)
    labels = np.asarray(labels)
    amounts = np.asarray(amounts, dtype=np.float64)

    if not len(scores) == len(labels) == len(amounts):
        raise ValueError(
            f"Length mismatch: scores={len(scores)}, labels={len(labels)}, amounts={len(amounts)}"
        )
    if not np.isin(labels, (0, 1)).all():
        raise ValueError("Labels must be binary (0 = legitimate, 1 = fraud)")

    return scores, labels == 1, amounts


def _metrics_at(
    threshold: float,
    scores: np.ndarray,
    fraud: np.ndarray,
    amounts: np.ndarray,
    fixed_cost: float
) -> ThresholdMetrics:
    flagged = scores > threshold

    tp = int(np.sum(flagged & fraud))
    fp = int(np.sum(flagged & ~fraud))
    fn = int(np.sum(~flagged & fraud))
    tn = int(np.sum(~flagged & ~fraud))

    precision = tp / (tp + fp) if (tp + fp) > 0 else UNDEFINED
    recall = tp / (tp + fn) if (tp + fn) > 0 else UNDEFINED
    cost = float(np.sum(flagged) * fixed_cost + np.sum(amounts[~flagged & fraud]))

    return ThresholdMetrics(
        threshold=float(threshold),
        true_positives=tp,
        false_positives=fp,
        false_negatives=fn,
        true_negatives=tn,
        precision=precision,
        recall=recall,
        cost=cost,
    )


def evaluate(
    scores: Sequence[float],
    labels: Sequence[int],
    amounts: Sequence[float],
    thresholds: Sequence[float],
    fixed_cost: float
) -> SweepResult:
    """
    Evaluate precision, recall and cost at every candidate threshold.

    Args:
        scores: Reconstruction errors, shape (num_rows,)
        labels: Ground truth (0 = legitimate, 1 = fraud), shape (num_rows,)
        amounts: Raw transaction amounts, shape (num_rows,)
        thresholds: Ordered candidate thresholds
        fixed_cost: Review cost per flagged transaction

    Returns:
        SweepResult with one ThresholdMetrics per threshold

    Raises:
        ValueError: On length mismatch or non-binary labels
    """
    scores, fraud, amounts = _validate(scores, labels, amounts)

    rows = tuple(
        _metrics_at(k, scores, fraud, amounts, fixed_cost) for k in thresholds
    )
    return SweepResult(rows=rows)


def best_by(sweep: SweepResult, criterion: str) -> float:
    """
    Threshold optimizing a criterion over a sweep.

    precision, recall and f1 are maximized, cost is minimized. Rows where the
    criterion is UNDEFINED are skipped. Ties go to the lowest threshold.

    Raises:
        ValueError: Unknown criterion, or no row with a defined value
    """
    if criterion not in CRITERIA:
        raise ValueError(
            f"Unknown criterion: {criterion}. Must be one of: {', '.join(CRITERIA)}"
        )
    maximize = CRITERIA[criterion]

    candidates = [
        (row.threshold, row.value(criterion))
        for row in sweep.rows
        if row.value(criterion) is not UNDEFINED
    ]
    if not candidates:
        raise ValueError(f"No threshold in the sweep has a defined {criterion}")

    if maximize:
        threshold, _ = min(candidates, key=lambda c: (-c[1], c[0]))
    else:
        threshold, _ = min(candidates, key=lambda c: (c[1], c[0]))
    return threshold


def best_precision_at_recall(sweep: SweepResult, min_recall: float) -> float:
    """
    Highest-precision threshold among those with recall >= min_recall.

    Ties go to the lowest threshold.

    Raises:
        ValueError: If no threshold reaches the recall floor with defined precision
    """
    eligible = [
        row for row in sweep.rows
        if row.recall is not UNDEFINED
        and row.recall >= min_recall
        and row.precision is not UNDEFINED
    ]
    if not eligible:
        raise ValueError(f"No threshold reaches recall >= {min_recall}")
    return best_by(SweepResult(rows=tuple(eligible)), "precision")


def uniform_thresholds(scores: Sequence[float], num: int) -> np.ndarray:
    """Evenly spaced thresholds spanning the observed score range."""
    scores = np.asarray(scores, dtype=np.float64)
    if len(scores) == 0:
        raise ValueError("Cannot build a threshold sweep from no scores")
    if num < 1:
        raise ValueError(f"num must be positive, got {num}")
    return np.linspace(scores.min(), scores.max(), num)


def top_k_threshold(scores: Sequence[float], k: int) -> float:
    """
    Threshold that flags the k highest scores.

    Returns the (k+1)-th highest score, so `score > threshold` flags exactly
    k rows when scores are distinct (ties at the boundary are all left
    unflagged). k == len(scores) returns a value just below the minimum.

    Raises:
        ValueError: If k is outside [0, len(scores)]
    """
    scores = np.asarray(scores, dtype=np.float64)
    if not 0 <= k <= len(scores):
        raise ValueError(f"k={k} out of range for {len(scores)} scores")
    if len(scores) == 0:
        raise ValueError("Cannot pick a top-k threshold from no scores")

    ordered = np.sort(scores)[::-1]
    if k == len(scores):
        return float(np.nextafter(ordered[-1], -np.inf))
    return float(ordered[k])


def evaluate_top_k(
    scores: Sequence[float],
    labels: Sequence[int],
    amounts: Sequence[float],
    k: int,
    fixed_cost: float
) -> ThresholdMetrics:
    """Metrics for the fixed top-K review strategy."""
    threshold = top_k_threshold(scores, k)
    return evaluate(scores, labels, amounts, [threshold], fixed_cost).rows[0]


def format_metric(value: Metric, fmt: str = ".4f") -> str:
    if value is UNDEFINED:
        return "undefined"
    return format(value, fmt)
