"""
Feedforward Autoencoder for Credit Card Fraud Detection

Implements a small symmetric encoder-decoder:
- Encoder: 29 → 14 → 7 (compress to latent space)
- Decoder: 7 → 14 → 29 (reconstruct from latent space)

Trained on legitimate transactions only, so fraud tends to reconstruct
poorly and receives a high reconstruction error.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

import numpy as np
import torch
import torch.nn as nn

from fraud_autoencoder.base_model import ReconstructionModel
from fraud_autoencoder.transaction_config import NUM_FEATURES

logger = logging.getLogger(__name__)


@dataclass
class AutoencoderConfig:
    """Configuration for feedforward autoencoder."""

    input_dim: int = NUM_FEATURES  # V1-V28 + Amount
    hidden_dim: int = 14           # Intermediate dimension
    latent_dim: int = 7            # Bottleneck dimension
    dropout: float = 0.0           # Dropout rate (0 = no dropout)


class FeedforwardAutoencoder(nn.Module, ReconstructionModel):
    """
    Symmetric feedforward autoencoder.

    Architecture: input → hidden (tanh) → latent (ReLU) → hidden (tanh) → input (linear)
    """

    def __init__(self, config: Optional[AutoencoderConfig] = None):
        """
        Args:
            config: Autoencoder configuration (uses defaults if None)
        """
        super().__init__()
        self.config = config or AutoencoderConfig()

        self.encoder = nn.Sequential(
            nn.Linear(self.config.input_dim, self.config.hidden_dim),
            nn.Tanh(),
            nn.Dropout(self.config.dropout),
            nn.Linear(self.config.hidden_dim, self.config.latent_dim),
            nn.ReLU(),
        )
        self.decoder = nn.Sequential(
            nn.Linear(self.config.latent_dim, self.config.hidden_dim),
            nn.Tanh(),
            nn.Dropout(self.config.dropout),
            # Linear output: test rows may fall outside the [0, 1] training range
            nn.Linear(self.config.hidden_dim, self.config.input_dim),
        )

        logger.info("Created FeedforwardAutoencoder:")
        logger.info(f"  Architecture: {self.config.input_dim} → {self.config.hidden_dim} → "
                    f"{self.config.latent_dim} → {self.config.hidden_dim} → {self.config.input_dim}")
        logger.info(f"  Parameters: {self.count_parameters():,}")

    @property
    def input_dim(self) -> int:
        return self.config.input_dim

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Forward pass: encode then decode.

        Args:
            x: Input tensor, shape (batch, input_dim)

        Returns:
            x_reconstructed: Reconstruction, shape (batch, input_dim)
        """
        return self.decoder(self.encoder(x))

    def encode(self, x: torch.Tensor) -> torch.Tensor:
        return self.encoder(x)

    def reconstruct(self, features: np.ndarray, batch_size: int = 4096) -> np.ndarray:
        """
        Reconstruct a numpy feature matrix in inference mode.

        Args:
            features: Normalized features, shape (num_rows, input_dim)
            batch_size: Rows per forward pass

        Returns:
            Reconstruction as float64 numpy array, same shape as features
        """
        self.eval()
        device = next(self.parameters()).device
        features = np.asarray(features, dtype=np.float32)

        outputs = []
        with torch.no_grad():
            for start in range(0, len(features), batch_size):
                batch = torch.from_numpy(features[start:start + batch_size]).to(device)
                outputs.append(self(batch).cpu().numpy())

        if not outputs:
            return np.empty((0, self.input_dim), dtype=np.float64)
        return np.concatenate(outputs, axis=0).astype(np.float64)

    def count_parameters(self) -> int:
        """Count trainable parameters."""
        return sum(p.numel() for p in self.parameters() if p.requires_grad)

    def get_config(self) -> dict:
        return asdict(self.config)


def create_autoencoder(
    input_dim: int = NUM_FEATURES,
    hidden_dim: int = 14,
    latent_dim: int = 7,
    dropout: float = 0.0,
    seed: Optional[int] = None
) -> FeedforwardAutoencoder:
    """
    Factory function to create autoencoder with custom configuration.

    Args:
        input_dim: Number of input features (default: 29)
        hidden_dim: Hidden layer dimension (default: 14)
        latent_dim: Bottleneck dimension (default: 7)
        dropout: Dropout rate (default: 0.0)
        seed: Seeds torch before the weights are initialised; None keeps
            the global generator state

    Returns:
        Configured FeedforwardAutoencoder
    """
    if seed is not None:
        torch.manual_seed(seed)
    config = AutoencoderConfig(
        input_dim=input_dim,
        hidden_dim=hidden_dim,
        latent_dim=latent_dim,
        dropout=dropout
    )
    return FeedforwardAutoencoder(config=config)
