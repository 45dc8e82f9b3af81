"""
Prediction result types.

Frozen dataclasses rather than pydantic models: this package runs in the
serving runtime, which is standard library only.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PredictionMethod(str, Enum):
    MODEL = "model"
    HEURISTIC = "heuristic"
    CATEGORY_AVERAGE = "category-average"


@dataclass(frozen=True)
class PredictionResult:
    """One scored product.

    Attributes:
        score:         Integer sustainability score, 0-100.
        confidence:    ``Confidence`` grade.
        method:        Tier that produced the score.
        explanation:   Human-readable note naming the tier and data richness.
        feature_count: Non-default feature count of the encoded record.
    """

    score: int
    confidence: Confidence
    method: PredictionMethod
    explanation: str
    feature_count: int

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["confidence"] = self.confidence.value
        data["method"] = self.method.value
        return data
