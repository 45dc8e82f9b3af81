"""
Tests for sustain_score/ml/trainer.py and sustain_score/ml/network.py.

What we test
------------
EarlyStopping:
  - Improvement requires beating the best loss by more than min_delta.
  - should_stop after ``patience`` epochs without improvement.

Training:
  - A 200-example corpus with a linear label in one feature reaches
    test R² > 0.95.
  - The best-epoch weights are restored; history is consistent.
  - Same seed, same losses.
  - A trailing mini-batch of one example is skipped, not trained on.
  - Too few examples -> InsufficientDataError (with counts).
  - A pre-set cancel event -> TrainingCancelledError before epoch 1.
  - NaN labels -> TrainingDivergedError.
  - train_from_records carries the corpus rejection report through.

SustainabilityNet:
  - Output shape and range; parameter count matches the declared layers.
"""

from __future__ import annotations

import math
import threading
from dataclasses import replace

import numpy as np
import pytest
import torch

from sustain_score.config import TrainingConfig
from sustain_score.ml.architecture import layer_shapes
from sustain_score.ml.network import SustainabilityNet
from sustain_score.ml.trainer import (
    EarlyStopping,
    InsufficientDataError,
    TrainingCancelledError,
    TrainingDivergedError,
    fit_network,
    train_from_examples,
    train_from_records,
)


def _fast_config(**overrides) -> TrainingConfig:
    base = dict(
        epochs=200,
        batch_size=32,
        learning_rate=0.005,
        patience=40,
        min_delta=1e-6,
        l2_reg=0.0,
        dropout_rate1=0.0,
        dropout_rate2=0.0,
        seed=42,
        min_samples=50,
        log_every=50,
    )
    base.update(overrides)
    return TrainingConfig(**base)


# ── Early stopping ────────────────────────────────────────────────────────────

class TestEarlyStopping:
    def test_improvement_resets_wait(self):
        stopper = EarlyStopping(patience=2, min_delta=0.01)
        assert stopper.update(1, 0.50) is True
        assert stopper.update(2, 0.495) is False
        assert stopper.wait == 1
        assert stopper.update(3, 0.40) is True
        assert stopper.wait == 0
        assert stopper.best_epoch == 3

    def test_stops_after_patience(self):
        stopper = EarlyStopping(patience=2, min_delta=0.0)
        stopper.update(1, 0.3)
        stopper.update(2, 0.3)
        assert not stopper.should_stop
        stopper.update(3, 0.4)
        assert stopper.should_stop
        assert stopper.best_loss == 0.3


# ── Training ──────────────────────────────────────────────────────────────────

class TestTraining:
    @pytest.fixture(scope="class")
    def linear_result(self, linear_examples):
        return train_from_examples(linear_examples, _fast_config())

    def test_learns_linear_relationship(self, linear_result):
        assert linear_result.test_metrics.r_squared > 0.95
        assert linear_result.validation_metrics.r_squared > 0.9

    def test_split_sizes(self, linear_result):
        sizes = linear_result.split.sizes
        assert sizes["total"] == 200
        assert sizes["test"] == 30
        assert sizes["train"] + sizes["validation"] == 170

    def test_history_consistent(self, linear_result):
        history = linear_result.history
        assert linear_result.epochs_run == len(history)
        assert [r.epoch for r in history] == list(range(1, len(history) + 1))
        best = min(history, key=lambda r: r.val_loss)
        assert history[linear_result.best_epoch - 1].val_loss == pytest.approx(best.val_loss, abs=1e-5)
        assert linear_result.best_val_loss == best.val_loss
        if linear_result.stopped_early:
            assert linear_result.epochs_run < 200

    def test_network_left_in_eval_mode(self, linear_result):
        assert linear_result.network.training is False

    def test_scaler_fitted_on_training_partition(self, linear_result):
        train_x0 = [e.features[0] for e in linear_result.split.train]
        assert linear_result.scaler.means[0] == pytest.approx(sum(train_x0) / len(train_x0))

    def test_same_seed_same_losses(self, linear_examples):
        config = _fast_config(epochs=3, patience=10)
        first = train_from_examples(linear_examples, config)
        second = train_from_examples(linear_examples, config)
        assert [r.train_loss for r in first.history] == pytest.approx(
            [r.train_loss for r in second.history]
        )

    def test_single_example_trailing_batch_skipped(self):
        rng = np.random.default_rng(3)
        train_x = rng.normal(size=(33, 40))
        train_y = rng.uniform(size=33)
        val_x = rng.normal(size=(8, 40))
        val_y = rng.uniform(size=8)
        torch.manual_seed(0)
        network = SustainabilityNet()

        history, best_epoch, _ = fit_network(
            network, train_x, train_y, val_x, val_y, _fast_config(epochs=2)
        )
        assert len(history) == 2
        assert all(math.isfinite(h.train_loss) for h in history)
        assert best_epoch in (1, 2)

    def test_insufficient_data(self, linear_examples):
        with pytest.raises(InsufficientDataError) as exc_info:
            train_from_examples(linear_examples[:10], _fast_config())
        assert exc_info.value.valid == 10
        assert exc_info.value.required == 50

    def test_cancelled_before_first_epoch(self, linear_examples):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(TrainingCancelledError) as exc_info:
            train_from_examples(linear_examples, _fast_config(), cancel_event=cancel)
        assert exc_info.value.completed_epochs == 0

    def test_nan_labels_diverge(self, linear_examples):
        poisoned = [
            replace(e, label=math.nan) if i % 3 == 0 else e for i, e in enumerate(linear_examples)
        ]
        with pytest.raises(TrainingDivergedError) as exc_info:
            train_from_examples(poisoned, _fast_config(epochs=5))
        assert exc_info.value.epoch == 1

    def test_from_records_keeps_report(self, raw_corpus):
        result = train_from_records(raw_corpus, _fast_config(epochs=3))
        assert result.report.accepted == 60
        assert result.report.rejected_total == 5
        assert result.split.sizes["total"] == 60

    def test_from_records_insufficient(self, raw_corpus):
        with pytest.raises(InsufficientDataError) as exc_info:
            train_from_records(raw_corpus, _fast_config(min_samples=100))
        assert exc_info.value.rejected == 5


# ── Network ───────────────────────────────────────────────────────────────────

class TestNetwork:
    def test_output_shape_and_range(self):
        torch.manual_seed(0)
        network = SustainabilityNet()
        network.eval()
        with torch.no_grad():
            out = network(torch.randn(7, 40))
        assert out.shape == (7, 1)
        assert bool(((out >= 0) & (out <= 1)).all())

    def test_parameter_count(self):
        dense = sum(i * o + o for i, o in layer_shapes().values())
        norm = 4 * (256 + 128 + 64)
        assert SustainabilityNet().parameter_count() == dense + norm

    def test_l2_penalty_covers_first_two_kernels(self):
        network = SustainabilityNet()
        expected = network.hidden1.weight.pow(2).sum() + network.hidden2.weight.pow(2).sum()
        assert float(network.l2_penalty()) == pytest.approx(float(expected))
