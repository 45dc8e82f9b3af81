"""
Rule-based scorer (tier 2 of the prediction cascade).

Score formula
-------------
    s     = sum(features[i] * weights[i])            # weighted feature sum
    score = clamp(round((s - floor) / (ceiling - floor) * 100), 0, 100)

Weights are hand-tuned, with negative weights for penalised attributes
(ultra-processing, plastic, palm oil, high sugar/fat/sodium, meat, fish).
They are a *versioned, replaceable* profile: pass a different
``HeuristicProfile`` to ``PredictionOrchestrator`` to change them.

Calibration anchors
-------------------
``floor = -0.10``   roughly the most penalised realistic record -> 0
``ceiling = 0.60``  a well-documented organic, local, glass-packed
                    product in a high-scoring category -> about 80-85

With these anchors an all-default record (s = 0.21) lands at 44, next to the
category-average fallback of 45, so the tiers agree when data is thin.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

# Index-aligned with sustain_score.features.encoder.FEATURE_NAMES.
DEFAULT_WEIGHTS: tuple[float, ...] = (
    0.15,                                   # category_env_score
    0.08, -0.03, 0.04,                      # nova, ultra-processed, ingredient complexity
    -0.04, 0.03, 0.03, 0.02, 0.03, 0.02,    # plastic, glass, cardboard, metal, compostable, material score
    0.08, 0.05, 0.04, 0.03, 0.03, 0.05,     # organic, fair trade, rainforest, EU ecolabel, MSC, cert total
    0.06, 0.03, 0.04, 0.03,                 # origin, local, transport, manufacturing
    0.04, 0.03, -0.03,                      # vegan, vegetarian, palm oil
    -0.02, -0.02, -0.02, -0.02, 0.02,       # high sugar, high sat. fat, high sodium, high fat, low fat
    -0.06, -0.03, -0.02, 0.05, 0.05, 0.02,  # meat, fish, dairy, plant-based, fruit/veg, cereal
    0.00, -0.01, -0.02, -0.01, -0.01, -0.02,  # beverage, fat/oil, sweet, canned, frozen, ready meal
)


@dataclass(frozen=True)
class HeuristicProfile:
    """Versioned weight set and calibration for the rule-based tier."""

    version: str = "2024.3-anchored"
    weights: tuple[float, ...] = DEFAULT_WEIGHTS
    floor: float = -0.10
    ceiling: float = 0.60

    def __post_init__(self) -> None:
        if self.ceiling <= self.floor:
            raise ValueError(
                f"ceiling ({self.ceiling}) must be greater than floor ({self.floor})."
            )
        if not all(math.isfinite(w) for w in self.weights):
            raise ValueError("heuristic weights must be finite numbers.")

    def weighted_sum(self, features: Sequence[float]) -> float:
        return sum(f * w for f, w in zip(features, self.weights))

    def score(self, features: Sequence[float]) -> int:
        """Map a feature vector to an integer score in [0, 100]."""
        raw = self.weighted_sum(features)
        scaled = (raw - self.floor) / (self.ceiling - self.floor) * 100.0
        return max(0, min(100, math.floor(scaled + 0.5)))


DEFAULT_PROFILE = HeuristicProfile()
