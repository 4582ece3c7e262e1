"""
Training for the credit card fraud autoencoder.

Trains the feedforward autoencoder on LEGITIMATE training transactions only,
so that it learns to reconstruct normal behaviour. A tail slice of those
rows is held out for early stopping; it is taken from the end to respect
the chronological order of the training set.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
import torch
import torch.nn as nn
from torch.utils.data import DataLoader

from fraud_autoencoder.credit_card_preprocessor import CreditCardDataset
from fraud_autoencoder.feedforward_autoencoder import FeedforwardAutoencoder

logger = logging.getLogger(__name__)


@dataclass
class TrainingConfig:
    """Configuration for autoencoder training."""

    epochs: int = 50
    learning_rate: float = 1e-3
    batch_size: int = 256
    patience: int = 5                # Early stopping patience
    min_delta: float = 1e-6          # Minimum improvement threshold
    weight_decay: float = 0.0        # L2 regularization (0 = none)
    val_fraction: float = 0.1        # Tail of normal training rows used for validation
    seed: int = 42


class EarlyStopping:
    """
    Checkpointing early stopper.

    Keeps a copy of the weights from the epoch with the lowest holdout loss
    and signals a stop once `patience` epochs pass without an improvement
    larger than `min_delta`. `restore` puts the kept weights back.
    """

    def __init__(self, patience: int = 5, min_delta: float = 1e-6):
        self.patience = patience
        self.min_delta = min_delta
        self.best_loss = float("inf")
        self.best_epoch: Optional[int] = None
        self.best_state: Optional[Dict[str, torch.Tensor]] = None
        self.epochs_without_improvement = 0

    @property
    def should_stop(self) -> bool:
        return self.epochs_without_improvement >= self.patience

    def step(self, epoch: int, loss: float, model: Optional[nn.Module] = None) -> bool:
        """
        Record an epoch's holdout loss, snapshotting model on improvement.

        Returns:
            True if training should stop
        """
        if loss < self.best_loss - self.min_delta:
            self.best_loss = loss
            self.best_epoch = epoch
            self.epochs_without_improvement = 0
            if model is not None:
                self.best_state = {k: v.detach().clone() for k, v in model.state_dict().items()}
        else:
            self.epochs_without_improvement += 1
        return self.should_stop

    def restore(self, model: nn.Module) -> bool:
        """Load the best snapshot into model; False when none was taken."""
        if self.best_state is None:
            return False
        model.load_state_dict(self.best_state)
        return True


def split_validation(features: np.ndarray, val_fraction: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Hold out the last val_fraction of rows for validation.

    Returns:
        (train_features, val_features); val is empty when the fraction rounds to 0
    """
    if not 0.0 <= val_fraction < 1.0:
        raise ValueError(f"val_fraction must be in [0, 1), got {val_fraction}")
    num_val = int(len(features) * val_fraction)
    cut = len(features) - num_val
    return features[:cut], features[cut:]


def holdout_loss(model: FeedforwardAutoencoder, holdout: torch.Tensor, criterion: nn.Module) -> float:
    """Reconstruction loss over a whole holdout tensor in one pass."""
    model.eval()
    with torch.no_grad():
        return criterion(model(holdout), holdout).item()


def train_autoencoder(
    model: FeedforwardAutoencoder,
    normal_features: np.ndarray,
    device: torch.device,
    config: TrainingConfig
) -> Tuple[FeedforwardAutoencoder, Dict]:
    """
    Train the autoencoder to reconstruct normal transactions.

    When the validation slice is empty the epoch's training loss drives
    early stopping instead.

    Args:
        model: FeedforwardAutoencoder to train
        normal_features: Normalized legitimate training rows, shape (n, input_dim)
        device: cpu/cuda
        config: Training hyperparameters

    Returns:
        (trained_model, history)

    Raises:
        ValueError: If there are no rows to train on or widths mismatch
    """
    if len(normal_features) == 0:
        raise ValueError("No normal transactions to train on")
    if normal_features.shape[1] != model.input_dim:
        raise ValueError(
            f"Feature dimension mismatch: model expects {model.input_dim}, "
            f"got {normal_features.shape[1]}"
        )

    torch.manual_seed(config.seed)

    train_x, val_x = split_validation(normal_features, config.val_fraction)
    train_loader = DataLoader(CreditCardDataset(train_x), batch_size=config.batch_size, shuffle=True)
    holdout = torch.FloatTensor(val_x).to(device) if len(val_x) > 0 else None

    logger.info("=" * 80)
    logger.info("Training Feedforward Autoencoder")
    logger.info("=" * 80)
    logger.info(f"Device: {device}")
    logger.info(f"Train rows: {len(train_x):,}, validation rows: {len(val_x):,}")
    logger.info(f"Epochs: {config.epochs}, learning rate: {config.learning_rate}, "
                f"batch size: {config.batch_size}, patience: {config.patience}")
    logger.info("=" * 80)

    model.to(device)
    criterion = nn.MSELoss()
    optimizer = torch.optim.Adam(
        model.parameters(),
        lr=config.learning_rate,
        weight_decay=config.weight_decay
    )
    stopper = EarlyStopping(patience=config.patience, min_delta=config.min_delta)
    history = {'train_loss': [], 'val_loss': [], 'best_epoch': 0}

    for epoch in range(config.epochs):
        model.train()
        batch_losses = []
        batch_sizes = []

        for features in train_loader:
            features = features.to(device)

            optimizer.zero_grad()
            loss = criterion(model(features), features)
            loss.backward()
            optimizer.step()

            batch_losses.append(loss.item())
            batch_sizes.append(len(features))

        train_loss = float(np.average(batch_losses, weights=batch_sizes))
        val_loss = holdout_loss(model, holdout, criterion) if holdout is not None else train_loss

        history['train_loss'].append(train_loss)
        history['val_loss'].append(val_loss)
        logger.info(f"Epoch {epoch + 1:3d}/{config.epochs} | Train: {train_loss:.6f} | Val: {val_loss:.6f}")

        if stopper.step(epoch, val_loss, model):
            logger.info(f"Early stopping triggered at epoch {epoch + 1}")
            break

    if stopper.restore(model):
        history['best_epoch'] = stopper.best_epoch
        logger.info(f"Restored best model from epoch {stopper.best_epoch + 1} "
                    f"(validation loss {stopper.best_loss:.6f})")

    model.eval()
    return model, history
