"""
Regression metrics for the sustainability model.

Predictions and labels are on the model's [0, 1] scale; the tolerance bands
are expressed in score points (0–100), which is how users read the result.

Metric design rationale
-----------------------
MSE / RMSE
  The training loss is MSE, so reporting it keeps training logs and
  evaluation comparable.  RMSE is in label units (×100 for score points).

MAE
  "On average the score is off by X points."  The quality target is
  MAE < 10 points.

R² (coefficient of determination)
  1 - SS_res / SS_tot.  Defined as 0.0 when SS_tot is zero (every label
  identical), since no model can explain a constant.

within_N
  Percentage of predictions within ±N score points of the label, for
  N in 5, 10, 15, 20.  ``within_10 > 80%`` is a quality target.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass

TOLERANCE_BANDS: tuple[int, ...] = (5, 10, 15, 20)
# absorbs float noise in (prediction - label) * 100 at a band edge
BAND_EPSILON = 1e-9


@dataclass(frozen=True)
class RegressionMetrics:
    """Aggregate error statistics over one partition.

    Attributes:
        mse:          Mean squared error on the [0, 1] scale.
        rmse:         Square root of ``mse``.
        mae:          Mean absolute error on the [0, 1] scale.
        r_squared:    Coefficient of determination.
        within_5:     % of predictions within ±5 score points.
        within_10:    % within ±10 points.
        within_15:    % within ±15 points.
        within_20:    % within ±20 points.
        sample_count: Number of (prediction, label) pairs.
    """

    mse: float
    rmse: float
    mae: float
    r_squared: float
    within_5: float
    within_10: float
    within_15: float
    within_20: float
    sample_count: int

    @property
    def mae_points(self) -> float:
        return self.mae * 100.0

    def to_dict(self) -> dict[str, float | int]:
        return asdict(self)


def compute_metrics(predictions: Sequence[float], labels: Sequence[float]) -> RegressionMetrics:
    """Compute ``RegressionMetrics`` for paired predictions and labels.

    Raises:
        ValueError: If the sequences are empty or differ in length.
    """
    n = len(labels)
    if n == 0:
        raise ValueError("Cannot compute metrics on an empty partition.")
    if len(predictions) != n:
        raise ValueError(
            f"predictions ({len(predictions)}) and labels ({n}) differ in length."
        )

    errors = [float(p) - float(a) for p, a in zip(predictions, labels)]
    mse = sum(e * e for e in errors) / n
    mae = sum(abs(e) for e in errors) / n

    mean_label = sum(labels) / n
    ss_tot = sum((a - mean_label) ** 2 for a in labels)
    ss_res = sum(e * e for e in errors)
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0

    within = {
        band: 100.0 * sum(1 for e in errors if abs(e) * 100.0 <= band + BAND_EPSILON) / n
        for band in TOLERANCE_BANDS
    }

    return RegressionMetrics(
        mse=mse,
        rmse=math.sqrt(mse),
        mae=mae,
        r_squared=r_squared,
        within_5=within[5],
        within_10=within[10],
        within_15=within[15],
        within_20=within[20],
        sample_count=n,
    )
