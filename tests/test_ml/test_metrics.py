"""
Tests for sustain_score/ml/metrics.py.

What we test
------------
  - MSE / RMSE / MAE on hand-computed errors.
  - R² = 1 for a perfect fit, 0 for the mean predictor, 0 for constant labels.
  - within_N bands are expressed in score points and are inclusive, also
    when the point error carries float noise at the band edge.
  - Empty or mismatched inputs raise ValueError.
"""

from __future__ import annotations

import math

import pytest

from sustain_score.ml.metrics import TOLERANCE_BANDS, compute_metrics


class TestComputeMetrics:
    def test_error_statistics(self):
        m = compute_metrics([0.5, 0.7], [0.4, 0.4])
        assert m.mse == pytest.approx((0.01 + 0.09) / 2)
        assert m.rmse == pytest.approx(math.sqrt(0.05))
        assert m.mae == pytest.approx(0.2)
        assert m.mae_points == pytest.approx(20.0)
        assert m.sample_count == 2

    def test_perfect_fit(self):
        labels = [0.1, 0.4, 0.9]
        m = compute_metrics(labels, labels)
        assert m.r_squared == pytest.approx(1.0)
        assert m.within_5 == 100.0

    def test_mean_predictor_scores_zero(self):
        labels = [0.2, 0.4, 0.6]
        m = compute_metrics([0.4, 0.4, 0.4], labels)
        assert m.r_squared == pytest.approx(0.0)

    def test_constant_labels(self):
        m = compute_metrics([0.3, 0.6], [0.5, 0.5])
        assert m.r_squared == 0.0

    def test_tolerance_bands_in_points(self):
        # errors of 3, 8, 12, 18 and 30 points
        labels = [0.50] * 5
        predictions = [0.53, 0.42, 0.62, 0.32, 0.80]
        m = compute_metrics(predictions, labels)
        assert m.within_5 == pytest.approx(20.0)
        assert m.within_10 == pytest.approx(40.0)
        assert m.within_15 == pytest.approx(60.0)
        assert m.within_20 == pytest.approx(80.0)

    def test_band_edge_is_inside(self):
        # 0.55 - 0.45 comes out slightly above 10 points in binary floating point
        m = compute_metrics([0.55, 0.45], [0.45, 0.55])
        assert m.within_10 == 100.0
        assert m.within_5 == 0.0

    def test_just_past_band_edge_is_outside(self):
        m = compute_metrics([0.5501], [0.45])
        assert m.within_10 == 0.0
        assert m.within_15 == 100.0

    def test_to_dict(self):
        data = compute_metrics([0.5], [0.5]).to_dict()
        assert {f"within_{band}" for band in TOLERANCE_BANDS} <= set(data)
        assert data["sample_count"] == 1

    def test_empty(self):
        with pytest.raises(ValueError, match="empty"):
            compute_metrics([], [])

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="length"):
            compute_metrics([0.1, 0.2], [0.1])
