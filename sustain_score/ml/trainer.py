"""
Offline training orchestrator.

``train_from_records()`` runs the whole pipeline on a raw corpus: filter and
encode (``dataset.build_examples``), shuffle and split, fit the z-score
scaler on the training partition, train ``SustainabilityNet`` with early
stopping, then score the validation and test partitions.
``train_from_examples()`` starts from already-encoded examples.

Design decisions
----------------
- Loss is MSE plus ``l2_reg * Σw²`` over the hidden1 and hidden2 kernels
  (not weight decay on every parameter).  Validation loss includes the same
  penalty so early stopping compares like with like.
- Mini-batches come from a ``DataLoader`` reshuffled every epoch by a
  seeded generator.  A trailing batch of one example is skipped: batch
  statistics are undefined for it.
- The weights from the best validation epoch are restored before the result
  is returned, so the exported artifact matches the reported best epoch.
- Cancellation is cooperative: ``cancel_event`` is checked between epochs.
  A cancelled run raises ``TrainingCancelledError`` and returns nothing to
  export.
"""

from __future__ import annotations

import copy
import logging
import math
import random
import threading
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np
import torch
import torch.nn as nn
from torch.utils.data import DataLoader, TensorDataset

from sustain_score.config import TrainingConfig
from sustain_score.features.encoder import encode
from sustain_score.ml.dataset import (
    CorpusReport,
    DatasetSplit,
    FeatureScaler,
    TrainingExample,
    build_examples,
    feature_matrix,
    label_vector,
    split_examples,
)
from sustain_score.ml.metrics import RegressionMetrics, compute_metrics
from sustain_score.ml.network import SustainabilityNet
from sustain_score.utils.time_utils import utc_timestamp

logger = logging.getLogger(__name__)


# ── Errors ────────────────────────────────────────────────────────────────────


class TrainingError(RuntimeError):
    """Base class for training failures."""


class InsufficientDataError(TrainingError):
    """Fewer usable examples than ``TrainingConfig.min_samples``."""

    def __init__(self, valid: int, rejected: int, required: int) -> None:
        self.valid = valid
        self.rejected = rejected
        self.required = required
        super().__init__(
            f"Insufficient training data: {valid} valid examples "
            f"({rejected} rejected), need at least {required}."
        )


class TrainingDivergedError(TrainingError):
    """A training or validation loss became NaN or infinite."""

    def __init__(self, epoch: int, loss: float) -> None:
        self.epoch = epoch
        self.loss = loss
        super().__init__(f"Training diverged at epoch {epoch}: loss={loss!r}")


class TrainingCancelledError(TrainingError):
    """``cancel_event`` was set; nothing is exported."""

    def __init__(self, completed_epochs: int) -> None:
        self.completed_epochs = completed_epochs
        super().__init__(f"Training cancelled after {completed_epochs} epoch(s).")


# ── Early stopping ────────────────────────────────────────────────────────────


class EarlyStopping:
    """Track the best validation loss and count epochs without improvement.

    An epoch improves when ``val_loss < best_loss - min_delta``.
    """

    def __init__(self, patience: int, min_delta: float) -> None:
        self.patience = patience
        self.min_delta = min_delta
        self.best_loss = math.inf
        self.best_epoch = 0
        self.wait = 0

    def update(self, epoch: int, val_loss: float) -> bool:
        """Record one epoch; return True when it is the new best."""
        if val_loss < self.best_loss - self.min_delta:
            self.best_loss = val_loss
            self.best_epoch = epoch
            self.wait = 0
            return True
        self.wait += 1
        return False

    @property
    def should_stop(self) -> bool:
        return self.wait >= self.patience


# ── Result ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EpochRecord:
    epoch: int
    train_loss: float
    val_loss: float


@dataclass
class TrainingResult:
    """Everything the exporter and the pipeline stage need from one run."""

    network: SustainabilityNet
    scaler: FeatureScaler
    split: DatasetSplit
    config: TrainingConfig
    history: list[EpochRecord]
    best_epoch: int
    epochs_run: int
    stopped_early: bool
    validation_metrics: RegressionMetrics
    test_metrics: RegressionMetrics
    training_seconds: float
    trained_at: str
    report: CorpusReport = field(default_factory=CorpusReport)

    @property
    def best_val_loss(self) -> float:
        return min((r.val_loss for r in self.history), default=math.nan)


# ── Helpers ───────────────────────────────────────────────────────────────────


def set_seed(seed: Optional[int]) -> None:
    if seed is None:
        return
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)


def _as_tensor(array: np.ndarray) -> torch.Tensor:
    return torch.as_tensor(np.asarray(array, dtype=np.float32))


def predict_scaled(network: nn.Module, scaled: np.ndarray) -> list[float]:
    """Eval-mode predictions for an already-normalized feature matrix."""
    if len(scaled) == 0:
        return []
    network.eval()
    with torch.no_grad():
        return network(_as_tensor(scaled)).reshape(-1).tolist()


def _loss(
    network: SustainabilityNet, x: torch.Tensor, y: torch.Tensor, l2_reg: float
) -> torch.Tensor:
    loss = nn.functional.mse_loss(network(x), y)
    if l2_reg > 0:
        loss = loss + l2_reg * network.l2_penalty()
    return loss


# ── Training loop ─────────────────────────────────────────────────────────────


def fit_network(
    network: SustainabilityNet,
    train_x: np.ndarray,
    train_y: np.ndarray,
    val_x: np.ndarray,
    val_y: np.ndarray,
    config: TrainingConfig,
    cancel_event: Optional[threading.Event] = None,
) -> tuple[list[EpochRecord], int, bool]:
    """Train ``network`` in place on normalized inputs.

    Returns:
        ``(history, best_epoch, stopped_early)``.  When
        ``config.restore_best_weights`` is set the network holds the
        best-epoch weights on return.

    Raises:
        TrainingDivergedError:  On a non-finite training or validation loss.
        TrainingCancelledError: If ``cancel_event`` is set between epochs.
    """
    x_train = _as_tensor(train_x)
    y_train = _as_tensor(train_y).reshape(-1, 1)
    x_val = _as_tensor(val_x)
    y_val = _as_tensor(val_y).reshape(-1, 1)

    optimizer = torch.optim.Adam(network.parameters(), lr=config.learning_rate)
    generator = torch.Generator()
    if config.seed is not None:
        generator.manual_seed(config.seed)
    else:
        generator.seed()

    train_loader = DataLoader(
        TensorDataset(x_train, y_train),
        batch_size=config.batch_size,
        shuffle=True,
        generator=generator,
    )

    stopper = EarlyStopping(config.patience, config.min_delta)
    best_state = copy.deepcopy(network.state_dict())
    history: list[EpochRecord] = []
    stopped_early = False

    for epoch in range(1, config.epochs + 1):
        if cancel_event is not None and cancel_event.is_set():
            raise TrainingCancelledError(epoch - 1)

        network.train()
        total_loss = 0.0
        seen = 0
        for batch_x, batch_y in train_loader:
            if len(batch_x) < 2:
                continue
            optimizer.zero_grad()
            loss = _loss(network, batch_x, batch_y, config.l2_reg)
            loss.backward()
            optimizer.step()
            total_loss += float(loss.item()) * len(batch_x)
            seen += len(batch_x)
        train_loss = total_loss / seen if seen else math.nan

        network.eval()
        with torch.no_grad():
            val_loss = float(_loss(network, x_val, y_val, config.l2_reg).item())

        if not math.isfinite(train_loss):
            raise TrainingDivergedError(epoch, train_loss)
        if not math.isfinite(val_loss):
            raise TrainingDivergedError(epoch, val_loss)

        history.append(EpochRecord(epoch=epoch, train_loss=train_loss, val_loss=val_loss))
        if stopper.update(epoch, val_loss):
            best_state = copy.deepcopy(network.state_dict())

        if epoch % config.log_every == 0 or epoch == 1:
            logger.info(
                "Epoch %d/%d  loss=%.5f  val_loss=%.5f  best=%d",
                epoch, config.epochs, train_loss, val_loss, stopper.best_epoch,
            )

        if stopper.should_stop:
            stopped_early = True
            logger.info(
                "Early stopping at epoch %d (best epoch %d, val_loss=%.5f)",
                epoch, stopper.best_epoch, stopper.best_loss,
            )
            break

    if config.restore_best_weights:
        network.load_state_dict(best_state)
    network.eval()
    return history, stopper.best_epoch, stopped_early


# ── Entry points ──────────────────────────────────────────────────────────────


def train_from_examples(
    examples: Sequence[TrainingExample],
    config: TrainingConfig,
    cancel_event: Optional[threading.Event] = None,
    report: Optional[CorpusReport] = None,
) -> TrainingResult:
    """Split, normalize, train and score already-encoded examples.

    Raises:
        InsufficientDataError:  Fewer than ``config.min_samples`` examples,
                                or a partition too small to train on.
        TrainingDivergedError:  See ``fit_network``.
        TrainingCancelledError: See ``fit_network``.
    """
    report = report or CorpusReport(total=len(examples), accepted=len(examples))
    if len(examples) < config.min_samples:
        raise InsufficientDataError(len(examples), report.rejected_total, config.min_samples)

    split = split_examples(examples, config.validation_split, config.test_split, config.seed)
    if len(split.train) < 2 or not split.validation or not split.test:
        raise InsufficientDataError(len(examples), report.rejected_total, config.min_samples)
    logger.info("Split sizes: %s", split.sizes)

    scaler = FeatureScaler.fit(feature_matrix(split.train))
    train_x = scaler.transform(feature_matrix(split.train))
    val_x = scaler.transform(feature_matrix(split.validation))
    test_x = scaler.transform(feature_matrix(split.test))

    set_seed(config.seed)
    network = SustainabilityNet(config.dropout_rate1, config.dropout_rate2)

    started = time.perf_counter()
    history, best_epoch, stopped_early = fit_network(
        network,
        train_x,
        label_vector(split.train),
        val_x,
        label_vector(split.validation),
        config,
        cancel_event=cancel_event,
    )
    elapsed = time.perf_counter() - started

    val_metrics = compute_metrics(
        predict_scaled(network, val_x), [e.label for e in split.validation]
    )
    test_metrics = compute_metrics(predict_scaled(network, test_x), [e.label for e in split.test])
    logger.info(
        "Training complete in %.1fs: %d epochs, best %d, test R²=%.4f MAE=%.2f pts",
        elapsed, len(history), best_epoch, test_metrics.r_squared, test_metrics.mae_points,
    )

    return TrainingResult(
        network=network,
        scaler=scaler,
        split=split,
        config=config,
        history=history,
        best_epoch=best_epoch,
        epochs_run=len(history),
        stopped_early=stopped_early,
        validation_metrics=val_metrics,
        test_metrics=test_metrics,
        training_seconds=elapsed,
        trained_at=utc_timestamp(),
        report=report,
    )


def train_from_records(
    records: Iterable[Any],
    config: TrainingConfig,
    cancel_event: Optional[threading.Event] = None,
    encoder: Callable[[Mapping[str, Any]], Any] = encode,
) -> TrainingResult:
    """Run the full pipeline on raw product records."""
    examples, report = build_examples(records, encoder=encoder)
    return train_from_examples(examples, config, cancel_event=cancel_event, report=report)
