import sys

import numpy as np
import pandas as pd
import pytest
import torch

from fraud_autoencoder.credit_card_preprocessor import CreditCardPreprocessor
from fraud_autoencoder.feedforward_autoencoder import create_autoencoder
from fraud_autoencoder.run_pipeline import main, print_study_report, run_study
from fraud_autoencoder.train_credit_card_autoencoder import TrainingConfig, train_autoencoder
from fraud_autoencoder.transaction_config import PipelineConfig


@pytest.fixture
def transactions():
    """Legitimate rows near the origin, fraud rows far from it."""
    rng = np.random.default_rng(7)
    num_rows = 400
    fraud = np.zeros(num_rows, dtype=int)
    fraud[rng.choice(np.arange(50, num_rows), size=12, replace=False)] = 1

    data = {"Time": np.sort(rng.uniform(0, 172800, size=num_rows))}
    for i in range(1, 29):
        data[f"V{i}"] = rng.normal(size=num_rows) + fraud * 6.0
    data["Amount"] = rng.uniform(1.0, 300.0, size=num_rows)
    data["Class"] = fraud
    return pd.DataFrame(data)


@pytest.fixture
def config():
    return PipelineConfig(train_fraction=0.6, top_k=10, num_thresholds=50, min_recall=0.5)


class TestRunStudy:
    """Scoring and threshold strategies on a prepared split"""

    @pytest.fixture
    def results(self, transactions, config):
        prepared = CreditCardPreprocessor(config).prepare(transactions)
        model = create_autoencoder(seed=0)
        model, _ = train_autoencoder(
            model,
            prepared.train.normal_features,
            torch.device("cpu"),
            TrainingConfig(epochs=3, batch_size=32),
        )
        return prepared, run_study(prepared, model, config)

    def test_score_table_covers_test_split(self, results):
        prepared, study = results
        table = study["score_table"]

        assert len(table) == len(prepared.test)
        np.testing.assert_array_equal(table["label"].to_numpy(), prepared.test.labels)
        assert (table["score"] >= 0).all()

    def test_sweep_and_selection(self, results, config):
        _, study = results
        sweep = study["sweep"]
        selected = study["selected"]

        assert len(sweep) == config.num_thresholds
        assert selected["top_k"].num_flagged == config.top_k
        assert selected["min_cost"].cost == min(row.cost for row in sweep)

    def test_baseline_cost(self, results):
        prepared, study = results
        test = prepared.test
        assert study["baseline_cost"] == pytest.approx(test.amounts[test.labels == 1].sum())

    def test_report(self, results, config, capsys):
        _, study = results
        print_study_report(study, config)

        out = capsys.readouterr().out
        assert "FRAUD STUDY REPORT" in out
        assert "Fixed top-10" in out
        assert "Minimum cost" in out


class TestMain:
    """Command-line entry point"""

    @pytest.fixture
    def data_path(self, transactions, tmp_path):
        path = tmp_path / "creditcard.csv"
        transactions.to_csv(path, index=False)
        return path

    def run_main(self, monkeypatch, data_path, sweep_csv, *extra):
        argv = [
            "run_pipeline",
            "--data-path", str(data_path),
            "--epochs", "1",
            "--batch-size", "32",
            "--top-k", "5",
            "--num-thresholds", "20",
            "--sweep-csv", str(sweep_csv),
            *extra,
        ]
        monkeypatch.setattr(sys, "argv", argv)
        main()

    def test_prints_report_and_writes_sweep(self, monkeypatch, data_path, tmp_path, capsys):
        sweep_csv = tmp_path / "sweep.csv"
        self.run_main(monkeypatch, data_path, sweep_csv)

        out = capsys.readouterr().out
        assert "FRAUD STUDY REPORT" in out
        assert "Fixed top-5" in out

        sweep = pd.read_csv(sweep_csv)
        assert len(sweep) == 20
        assert "precision_defined" in sweep.columns

    def test_split_time_overrides_train_fraction(self, monkeypatch, data_path, tmp_path, capsys):
        written = pd.read_csv(data_path)
        split_time = written["Time"].iloc[199]
        self.run_main(
            monkeypatch, data_path, tmp_path / "sweep.csv",
            "--split-time", repr(float(split_time)),
            "--train-fraction", "0.9",
            "--dropout", "0.1",
        )

        test = written.iloc[200:]
        baseline = test.loc[test["Class"] == 1, "Amount"].sum()
        out = capsys.readouterr().out
        assert f"Cost with no review (all fraud lost): ${baseline:,.2f}" in out

    def test_same_seed_same_sweep(self, monkeypatch, data_path, tmp_path):
        first, second = tmp_path / "first.csv", tmp_path / "second.csv"
        self.run_main(monkeypatch, data_path, first, "--seed", "11")
        torch.rand(100)
        self.run_main(monkeypatch, data_path, second, "--seed", "11")

        pd.testing.assert_frame_equal(pd.read_csv(first), pd.read_csv(second))
