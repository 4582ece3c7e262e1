import numpy as np
import pytest
import torch

from fraud_autoencoder import anomaly_scorer
from fraud_autoencoder.base_model import ReconstructionModel
from fraud_autoencoder.feedforward_autoencoder import AutoencoderConfig, FeedforwardAutoencoder, create_autoencoder
from fraud_autoencoder.train_credit_card_autoencoder import (
    EarlyStopping,
    TrainingConfig,
    split_validation,
    train_autoencoder,
)


class FixedReconstruction(ReconstructionModel):
    """Returns a preset reconstruction regardless of input."""

    def __init__(self, output):
        self.output = np.asarray(output, dtype=float)

    @property
    def input_dim(self):
        return self.output.shape[1]

    def reconstruct(self, features):
        return self.output


class Identity(ReconstructionModel):
    def __init__(self, dim):
        self.dim = dim

    @property
    def input_dim(self):
        return self.dim

    def reconstruct(self, features):
        return np.array(features, copy=True)


class TestAnomalyScorer:
    """Reconstruction-error scoring"""

    def test_perfect_reconstruction_scores_zero(self):
        features = np.array([[0.1, 0.2, 0.3], [1.0, -2.0, 0.5]])
        scores = anomaly_scorer.score(Identity(3), features)
        np.testing.assert_array_equal(scores, [0.0, 0.0])

    def test_score_is_sum_not_mean(self):
        scores = anomaly_scorer.score(FixedReconstruction([[0.0, 0.0]]), np.array([[1.0, 2.0]]))
        np.testing.assert_allclose(scores, [5.0])

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError, match="mismatch"):
            anomaly_scorer.score(Identity(3), np.zeros((2, 4)))

    def test_reconstruction_shape_mismatch(self):
        model = FixedReconstruction([[0.0, 0.0]])
        with pytest.raises(ValueError, match="shape"):
            anomaly_scorer.score(model, np.zeros((3, 2)))

    def test_score_table(self):
        table = anomaly_scorer.build_score_table([0.5, 2.0], [0, 1], [10.0, 99.0])
        assert list(table.columns) == ["score", "label", "amount"]
        assert table.loc[1, "amount"] == 99.0

        summary = anomaly_scorer.summarize_by_class(table)
        assert summary.loc[1, "mean"] == 2.0

    def test_score_table_length_mismatch(self):
        with pytest.raises(ValueError):
            anomaly_scorer.build_score_table([0.5], [0, 1], [1.0, 2.0])


class TestFeedforwardAutoencoder:
    """Autoencoder architecture and reconstruction contract"""

    @pytest.fixture
    def model(self):
        torch.manual_seed(0)
        return create_autoencoder(input_dim=29, hidden_dim=14, latent_dim=7)

    def test_forward_shapes(self, model):
        x = torch.randn(8, 29)
        assert model(x).shape == (8, 29)
        assert model.encode(x).shape == (8, 7)

    def test_reconstruct_numpy(self, model):
        features = np.random.default_rng(1).random((10, 29))
        reconstruction = model.reconstruct(features, batch_size=3)

        assert isinstance(reconstruction, np.ndarray)
        assert reconstruction.shape == features.shape
        assert reconstruction.dtype == np.float64

    def test_reconstruct_empty(self, model):
        assert model.reconstruct(np.zeros((0, 29))).shape == (0, 29)

    def test_is_reconstruction_model(self, model):
        assert isinstance(model, ReconstructionModel)
        assert model.input_dim == 29
        assert model.get_config()["latent_dim"] == 7

    def test_scores_from_autoencoder(self, model):
        features = np.random.default_rng(2).random((5, 29))
        scores = anomaly_scorer.score(model, features)
        assert scores.shape == (5,)
        assert (scores >= 0).all()


class TestTraining:
    """Training on normal transactions"""

    def test_early_stopping(self):
        stopper = EarlyStopping(patience=2, min_delta=0.0)
        assert not stopper.step(0, 1.0)
        assert not stopper.step(1, 0.5)
        assert not stopper.step(2, 0.6)
        assert stopper.step(3, 0.7)
        assert stopper.best_epoch == 1
        assert stopper.best_loss == 0.5

    def test_early_stopping_restores_best_weights(self):
        model = FeedforwardAutoencoder(AutoencoderConfig(input_dim=4, hidden_dim=3, latent_dim=2))
        stopper = EarlyStopping(patience=3)
        assert not stopper.restore(model)

        stopper.step(0, 0.5, model)
        best = {k: v.clone() for k, v in model.state_dict().items()}
        with torch.no_grad():
            for param in model.parameters():
                param.add_(1.0)
        stopper.step(1, 0.9, model)

        assert stopper.restore(model)
        for name, value in model.state_dict().items():
            torch.testing.assert_close(value, best[name])

    def test_seeded_factory_ignores_global_rng(self):
        features = np.random.default_rng(4).random((60, 4))
        config = TrainingConfig(epochs=2, batch_size=16, seed=42)
        reconstructions = []
        for _ in range(2):
            model = create_autoencoder(input_dim=4, hidden_dim=3, latent_dim=2, seed=42)
            model, _ = train_autoencoder(model, features, torch.device("cpu"), config)
            reconstructions.append(model.reconstruct(features))
            torch.rand(10)

        np.testing.assert_allclose(reconstructions[0], reconstructions[1])

    def test_split_validation_takes_tail(self):
        features = np.arange(20).reshape(10, 2)
        train, val = split_validation(features, 0.2)
        assert len(train) == 8
        np.testing.assert_array_equal(val, features[8:])

    def test_training_reduces_loss(self):
        rng = np.random.default_rng(3)
        features = rng.random((200, 4))
        model = FeedforwardAutoencoder(AutoencoderConfig(input_dim=4, hidden_dim=3, latent_dim=2))
        config = TrainingConfig(epochs=5, batch_size=32, learning_rate=1e-2, patience=10)

        model, history = train_autoencoder(model, features, torch.device("cpu"), config)

        assert len(history["train_loss"]) == 5
        assert history["train_loss"][-1] < history["train_loss"][0]
        assert not model.training

    def test_training_rejects_empty(self):
        model = FeedforwardAutoencoder(AutoencoderConfig(input_dim=4, hidden_dim=3, latent_dim=2))
        with pytest.raises(ValueError):
            train_autoencoder(model, np.zeros((0, 4)), torch.device("cpu"), TrainingConfig())

    def test_training_rejects_wrong_width(self):
        model = FeedforwardAutoencoder(AutoencoderConfig(input_dim=4, hidden_dim=3, latent_dim=2))
        with pytest.raises(ValueError, match="mismatch"):
            train_autoencoder(model, np.zeros((10, 5)), torch.device("cpu"), TrainingConfig())
