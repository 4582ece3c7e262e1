"""
End-to-end fraud study with a reconstruction-error autoencoder.

Steps:
1. Load creditcard.csv and split it chronologically
2. Normalize features with min-max statistics from the training split
3. Train the autoencoder on legitimate training transactions
4. Score the test split by reconstruction error
5. Compare threshold strategies: fixed top-K, precision/recall, cost

Usage:
    python -m fraud_autoencoder.run_pipeline \
        --data-path data/creditcard.csv \
        --split-time 100000 \
        --fixed-cost 2.5
"""

import argparse
import logging
from typing import Dict, Optional

import pandas as pd
import torch

from fraud_autoencoder import anomaly_scorer, threshold_selector
from fraud_autoencoder.credit_card_preprocessor import CreditCardPreprocessor, PreparedSplits
from fraud_autoencoder.feedforward_autoencoder import FeedforwardAutoencoder, create_autoencoder
from fraud_autoencoder.threshold_selector import SweepResult, ThresholdMetrics, format_metric
from fraud_autoencoder.train_credit_card_autoencoder import TrainingConfig, train_autoencoder
from fraud_autoencoder.transaction_config import PipelineConfig

logger = logging.getLogger(__name__)


def select_thresholds(
    sweep: SweepResult,
    top_k: ThresholdMetrics,
    min_recall: float
) -> Dict[str, Optional[ThresholdMetrics]]:
    """
    Pick one operating point per strategy.

    The precision/recall entry is None when no swept threshold reaches
    min_recall.
    """
    by_threshold = {row.threshold: row for row in sweep}

    try:
        tradeoff = by_threshold[threshold_selector.best_precision_at_recall(sweep, min_recall)]
    except ValueError as e:
        logger.warning(f"Precision/recall strategy skipped: {e}")
        tradeoff = None

    return {
        "top_k": top_k,
        "precision_at_recall": tradeoff,
        "min_cost": by_threshold[sweep.best_by("cost")],
    }


def run_study(
    prepared: PreparedSplits,
    model: FeedforwardAutoencoder,
    config: PipelineConfig
) -> Dict:
    """
    Score the test split and evaluate every threshold strategy.

    Returns:
        Dict with the score table, the sweep and the selected operating points
    """
    test = prepared.test
    scores = anomaly_scorer.score(model, test.features)
    table = anomaly_scorer.build_score_table(scores, test.labels, test.amounts)

    thresholds = threshold_selector.uniform_thresholds(scores, config.num_thresholds)
    sweep = threshold_selector.evaluate(
        scores, test.labels, test.amounts, thresholds, config.fixed_cost
    )
    top_k = threshold_selector.evaluate_top_k(
        scores, test.labels, test.amounts, min(config.top_k, len(scores)), config.fixed_cost
    )

    return {
        "score_table": table,
        "sweep": sweep,
        "selected": select_thresholds(sweep, top_k, config.min_recall),
        "baseline_cost": float(test.amounts[test.labels == 1].sum()),
    }


def print_study_report(results: Dict, config: PipelineConfig) -> None:
    """Print a formatted report of the three threshold strategies."""
    table: pd.DataFrame = results["score_table"]

    print("\n" + "=" * 60)
    print("FRAUD STUDY REPORT")
    print("=" * 60)

    print("\nReconstruction error by class:")
    print(anomaly_scorer.summarize_by_class(table).to_string())

    print(f"\nCost with no review (all fraud lost): ${results['baseline_cost']:,.2f}")
    print(f"Review cost per flagged transaction:  ${config.fixed_cost:,.2f}")

    labels = {
        "top_k": f"Fixed top-{config.top_k}",
        "precision_at_recall": f"Best precision at recall >= {config.min_recall:.0%}",
        "min_cost": "Minimum cost",
    }
    print("\nThreshold strategies:")
    for key, title in labels.items():
        row = results["selected"][key]
        print(f"\n  {title}")
        if row is None:
            print("    (no threshold satisfies this strategy)")
            continue
        print(f"    Threshold: {row.threshold:.4f}")
        print(f"    Flagged:   {row.num_flagged:,} (TP={row.true_positives}, FP={row.false_positives})")
        print(f"    Precision: {format_metric(row.precision)}")
        print(f"    Recall:    {format_metric(row.recall)}")
        print(f"    Cost:      ${row.cost:,.2f}")

    print("\n" + "=" * 60)


def main():
    """Main pipeline."""
    parser = argparse.ArgumentParser(
        description="Autoencoder fraud study on credit card transactions"
    )

    # Data arguments
    parser.add_argument("--data-path", type=str, default="data/creditcard.csv",
                        help="Path to credit card CSV file")
    parser.add_argument("--split-time", type=float, default=None,
                        help="Rows with Time <= this value go to train")
    parser.add_argument("--train-fraction", type=float, default=0.75,
                        help="Fraction of rows in train (used when --split-time is not set)")

    # Model arguments
    parser.add_argument("--hidden-dim", type=int, default=14, help="Hidden layer dimension")
    parser.add_argument("--latent-dim", type=int, default=7, help="Latent dimension (bottleneck size)")
    parser.add_argument("--dropout", type=float, default=0.0, help="Dropout rate after the tanh layers")

    # Training arguments
    parser.add_argument("--epochs", type=int, default=50, help="Maximum number of epochs")
    parser.add_argument("--learning-rate", type=float, default=1e-3, help="Learning rate for Adam")
    parser.add_argument("--batch-size", type=int, default=256, help="Batch size for training")
    parser.add_argument("--patience", type=int, default=5, help="Early stopping patience")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")

    # Threshold arguments
    parser.add_argument("--fixed-cost", type=float, default=2.5,
                        help="Review cost per flagged transaction")
    parser.add_argument("--top-k", type=int, default=100,
                        help="Number of transactions reviewed by the top-K strategy")
    parser.add_argument("--num-thresholds", type=int, default=200,
                        help="Number of thresholds in the sweep")
    parser.add_argument("--min-recall", type=float, default=0.8,
                        help="Recall floor for the precision/recall strategy")
    parser.add_argument("--sweep-csv", type=str, default=None,
                        help="Optional path to write the full threshold sweep")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s"
    )

    config = PipelineConfig(
        data_path=args.data_path,
        split_time=args.split_time,
        train_fraction=args.train_fraction,
        fixed_cost=args.fixed_cost,
        top_k=args.top_k,
        num_thresholds=args.num_thresholds,
        min_recall=args.min_recall,
        seed=args.seed,
    )
    device = torch.device("cuda" if torch.cuda.is_available() else "cpu")
    logger.info(f"Using device: {device}")

    # ===== Step 1: Preprocess Data =====
    prepared = CreditCardPreprocessor(config=config).preprocess()

    # ===== Step 2: Train Model =====
    model = create_autoencoder(
        input_dim=len(prepared.feature_names),
        hidden_dim=args.hidden_dim,
        latent_dim=args.latent_dim,
        dropout=args.dropout,
        seed=args.seed,
    )
    training_config = TrainingConfig(
        epochs=args.epochs,
        learning_rate=args.learning_rate,
        batch_size=args.batch_size,
        patience=args.patience,
        seed=args.seed,
    )
    model, history = train_autoencoder(
        model, prepared.train.normal_features, device, training_config
    )
    logger.info(f"Trained {len(history['train_loss'])} epochs, best epoch {history['best_epoch'] + 1}")

    # ===== Step 3: Score and Select Thresholds =====
    logger.info("=" * 80)
    logger.info("Scoring test split")
    logger.info("=" * 80)
    results = run_study(prepared, model, config)

    if args.sweep_csv:
        results["sweep"].to_frame().to_csv(args.sweep_csv, index=False)
        logger.info(f"Wrote threshold sweep to {args.sweep_csv}")

    print_study_report(results, config)


if __name__ == "__main__":
    main()
