"""
Torch definition of the sustainability MLP.

    Linear(40, 256) → BatchNorm → ReLU → Dropout(0.25)
    Linear(256,128) → BatchNorm → ReLU → Dropout(0.15)
    Linear(128, 64) → BatchNorm → ReLU
    Linear(64, 1)   → Sigmoid

Inputs are z-scored features.  Dropout and batch statistics exist only in
``train()`` mode; the exported artifact carries the running statistics used
in ``eval()`` mode, which is what the serving runtime reproduces.
"""

from __future__ import annotations

import torch
import torch.nn as nn

from sustain_score.ml.architecture import (
    BN_EPSILON,
    BN_MOMENTUM,
    DROPOUT_RATES,
    HIDDEN_DIMS,
    INPUT_DIM,
    L2_LAYERS,
    OUTPUT_DIM,
)


class SustainabilityNet(nn.Module):
    """Three hidden blocks plus a sigmoid output unit."""

    def __init__(
        self,
        dropout_rate1: float = DROPOUT_RATES[0],
        dropout_rate2: float = DROPOUT_RATES[1],
    ) -> None:
        super().__init__()
        h1, h2, h3 = HIDDEN_DIMS
        self.hidden1 = nn.Linear(INPUT_DIM, h1)
        self.bn1 = nn.BatchNorm1d(h1, eps=BN_EPSILON, momentum=BN_MOMENTUM)
        self.dropout1 = nn.Dropout(dropout_rate1)

        self.hidden2 = nn.Linear(h1, h2)
        self.bn2 = nn.BatchNorm1d(h2, eps=BN_EPSILON, momentum=BN_MOMENTUM)
        self.dropout2 = nn.Dropout(dropout_rate2)

        self.hidden3 = nn.Linear(h2, h3)
        self.bn3 = nn.BatchNorm1d(h3, eps=BN_EPSILON, momentum=BN_MOMENTUM)

        self.output = nn.Linear(h3, OUTPUT_DIM)
        self.relu = nn.ReLU()

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        x = self.dropout1(self.relu(self.bn1(self.hidden1(x))))
        x = self.dropout2(self.relu(self.bn2(self.hidden2(x))))
        x = self.relu(self.bn3(self.hidden3(x)))
        return torch.sigmoid(self.output(x))

    def l2_penalty(self) -> torch.Tensor:
        """Sum of squared kernel weights on the L2-regularized layers."""
        return sum(getattr(self, name).weight.pow(2).sum() for name in L2_LAYERS)

    def parameter_count(self) -> int:
        """Trainable parameters plus batch-norm running statistics."""
        trainable = sum(p.numel() for p in self.parameters())
        running = sum(
            bn.running_mean.numel() + bn.running_var.numel() for bn in (self.bn1, self.bn2, self.bn3)
        )
        return trainable + running
