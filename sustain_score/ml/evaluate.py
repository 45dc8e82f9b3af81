"""
Held-out evaluation through the serving runtime.

The test set exported at training time holds *un-normalized* feature
vectors, so every prediction here goes through ``InferenceEngine`` exactly
as production traffic does, normalization included.  Comparing the engine's
test R² with the one recorded by the trainer (``metadata.test_metrics``)
exposes any training/serving drift as ``parity_gap``.

Grades
------
A ≥ 80, B ≥ 60, C ≥ 40, D ≥ 20, E below.  The true grade comes from the
test set when present, otherwise from the label.

Quality targets
---------------
R² > 0.75, MAE < 10 points, within ±10 points > 80%.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from sustain_score.ml.metrics import RegressionMetrics, compute_metrics
from sustain_score.serving.engine import InferenceEngine, InferenceError

logger = logging.getLogger(__name__)

GRADES: tuple[str, ...] = ("a", "b", "c", "d", "e")
GRADE_FLOORS: tuple[tuple[int, str], ...] = ((80, "a"), (60, "b"), (40, "c"), (20, "d"))

TARGET_R_SQUARED = 0.75
TARGET_MAE_POINTS = 10.0
TARGET_WITHIN_10 = 80.0


def score_to_grade(score: float) -> str:
    """Map a 0–100 score to a letter grade (lowercase)."""
    for floor, grade in GRADE_FLOORS:
        if score >= floor:
            return grade
    return "e"


@dataclass(frozen=True)
class GradeBreakdown:
    grade: str
    count: int
    mae_points: float
    mean_predicted: float
    mean_actual: float


@dataclass(frozen=True)
class EvaluationReport:
    """Outcome of ``evaluate_artifact``."""

    metrics: RegressionMetrics
    grades: list[GradeBreakdown]
    exact_grade_rate: float
    within_one_grade_rate: float
    targets: dict[str, bool]
    recorded_test_r_squared: Optional[float] = None
    skipped: int = 0
    predictions: list[float] = field(default_factory=list, repr=False)

    @property
    def parity_gap(self) -> Optional[float]:
        if self.recorded_test_r_squared is None:
            return None
        return abs(self.metrics.r_squared - self.recorded_test_r_squared)

    @property
    def meets_targets(self) -> bool:
        return all(self.targets.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "metrics": self.metrics.to_dict(),
            "grades": [g.__dict__ for g in self.grades],
            "exact_grade_rate": self.exact_grade_rate,
            "within_one_grade_rate": self.within_one_grade_rate,
            "targets": self.targets,
            "recorded_test_r_squared": self.recorded_test_r_squared,
            "parity_gap": self.parity_gap,
            "skipped": self.skipped,
        }


def load_test_set(path: str | Path) -> dict[str, Any]:
    """Read ``test_set.json``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError:        If ``features`` and ``labels`` are missing or differ
                           in length.
    """
    with open(path, encoding="utf-8") as f:
        document = json.load(f)
    features = document.get("features") if isinstance(document, Mapping) else None
    labels = document.get("labels") if isinstance(document, Mapping) else None
    if not isinstance(features, list) or not isinstance(labels, list):
        raise ValueError(f"{path}: test set needs 'features' and 'labels' arrays.")
    if len(features) != len(labels):
        raise ValueError(
            f"{path}: {len(features)} feature rows but {len(labels)} labels."
        )
    return document


def _grade_breakdown(
    predicted: Sequence[float], actual: Sequence[float], grades: Sequence[str]
) -> list[GradeBreakdown]:
    rows = []
    for grade in GRADES:
        idx = [i for i, g in enumerate(grades) if g == grade]
        if not idx:
            continue
        rows.append(
            GradeBreakdown(
                grade=grade,
                count=len(idx),
                mae_points=100.0 * sum(abs(predicted[i] - actual[i]) for i in idx) / len(idx),
                mean_predicted=100.0 * sum(predicted[i] for i in idx) / len(idx),
                mean_actual=100.0 * sum(actual[i] for i in idx) / len(idx),
            )
        )
    return rows


def evaluate_artifact(
    artifact: Mapping[str, Any] | InferenceEngine,
    test_set: Mapping[str, Any],
) -> EvaluationReport:
    """Score a held-out test set with the serving engine.

    Args:
        artifact: A parsed ``weights.json`` document or a loaded engine.
        test_set: A ``test_set.json`` document (see ``load_test_set``).

    Raises:
        ArtifactError: If ``artifact`` is a document the engine rejects.
        ValueError:    If no test row could be scored.
    """
    if isinstance(artifact, InferenceEngine):
        engine = artifact
        metadata = engine.weights.metadata
    else:
        engine = InferenceEngine.from_artifact(artifact)
        metadata = artifact.get("metadata") or {}

    raw_grades = test_set.get("grades") or []
    predicted: list[float] = []
    actual: list[float] = []
    grades: list[str] = []
    skipped = 0

    for index, (row, label) in enumerate(zip(test_set["features"], test_set["labels"])):
        try:
            predicted.append(engine.predict_raw(row))
        except InferenceError as exc:
            logger.warning("Test row %d skipped: %s", index, exc)
            skipped += 1
            continue
        actual.append(float(label))
        grade = raw_grades[index] if index < len(raw_grades) else None
        grades.append(grade.lower() if isinstance(grade, str) and grade.lower() in GRADES
                      else score_to_grade(float(label) * 100.0))

    if not predicted:
        raise ValueError("No test rows could be scored.")

    metrics = compute_metrics(predicted, actual)

    predicted_grades = [score_to_grade(p * 100.0) for p in predicted]
    exact = sum(1 for p, t in zip(predicted_grades, grades) if p == t)
    within_one = sum(
        1 for p, t in zip(predicted_grades, grades)
        if abs(GRADES.index(p) - GRADES.index(t)) <= 1
    )

    recorded = (metadata.get("test_metrics") or {}).get("r_squared")
    recorded_r2 = float(recorded) if isinstance(recorded, (int, float)) and math.isfinite(recorded) else None

    report = EvaluationReport(
        metrics=metrics,
        grades=_grade_breakdown(predicted, actual, grades),
        exact_grade_rate=100.0 * exact / len(predicted),
        within_one_grade_rate=100.0 * within_one / len(predicted),
        targets={
            "r_squared": metrics.r_squared > TARGET_R_SQUARED,
            "mae": metrics.mae_points < TARGET_MAE_POINTS,
            "within_10": metrics.within_10 > TARGET_WITHIN_10,
        },
        recorded_test_r_squared=recorded_r2,
        skipped=skipped,
        predictions=predicted,
    )
    logger.info(
        "Evaluation: n=%d R²=%.4f MAE=%.2f pts ±10=%.1f%% targets=%s",
        metrics.sample_count, metrics.r_squared, metrics.mae_points,
        metrics.within_10, "met" if report.meets_targets else "missed",
    )
    return report
