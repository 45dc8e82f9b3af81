"""
Three-tier prediction cascade.

Tiers (tried in order of decreasing data requirement)
-----------------------------------------------------
1. model            — an ``InferenceEngine`` is available and scores the
                      vector.  Confidence from decisiveness
                      ``|raw - 0.5| * 2`` and richness (non-default count):
                        high   : decisiveness > 0.4 and richness >= 8
                        medium : decisiveness > 0.2 and richness >= 5
                        low    : otherwise
2. heuristic        — richness >= 3.  ``HeuristicProfile`` weighted sum.
                      medium if richness >= 10, else low.  Never high.
3. category-average — everything else.  Static table, default 45.  Always low.

``predict()`` never raises: a missing model, a rejected artifact or a
non-finite forward pass degrade to the next tier; a record with no data at
all still gets the category-average default.

The loaded model is an explicit value: pass an ``InferenceEngine`` (already
loaded) or a ``ModelLoader`` (loaded lazily, once).  There is no module-level
model state.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from sustain_score.features.encoder import NUM_FEATURES, FeatureVector, as_tags, encode
from sustain_score.features.local import record_from_local_product
from sustain_score.prediction.category_average import CATEGORY_AVERAGES, match_category
from sustain_score.prediction.heuristic import DEFAULT_PROFILE, HeuristicProfile
from sustain_score.prediction.result import Confidence, PredictionMethod, PredictionResult
from sustain_score.serving.engine import InferenceEngine, InferenceError
from sustain_score.serving.loader import ModelLoader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PredictionSettings:
    """Tier thresholds.  Mirrors ``[prediction]`` in config/default.toml."""

    min_heuristic_features: int = 3
    high_decisiveness: float = 0.4
    high_min_features: int = 8
    medium_decisiveness: float = 0.2
    medium_min_features: int = 5
    heuristic_medium_features: int = 10
    default_category_score: int = 45
    block_on_load: bool = False


def model_confidence(raw_output: float, richness: int, settings: PredictionSettings) -> Confidence:
    decisiveness = abs(raw_output - 0.5) * 2.0
    if decisiveness > settings.high_decisiveness and richness >= settings.high_min_features:
        return Confidence.HIGH
    if decisiveness > settings.medium_decisiveness and richness >= settings.medium_min_features:
        return Confidence.MEDIUM
    return Confidence.LOW


def heuristic_confidence(richness: int, settings: PredictionSettings) -> Confidence:
    if richness >= settings.heuristic_medium_features:
        return Confidence.MEDIUM
    return Confidence.LOW


class PredictionOrchestrator:
    """Compose model, heuristic and category-average tiers.

    Args:
        engine:            A loaded ``InferenceEngine`` (takes precedence).
        loader:            A ``ModelLoader`` consulted when ``engine`` is None.
        settings:          Tier thresholds.
        profile:           Heuristic weights and calibration.
        category_averages: Tier-3 table.
    """

    def __init__(
        self,
        engine: Optional[InferenceEngine] = None,
        loader: Optional[ModelLoader] = None,
        settings: PredictionSettings = PredictionSettings(),
        profile: HeuristicProfile = DEFAULT_PROFILE,
        category_averages: Mapping[str, int] = CATEGORY_AVERAGES,
    ) -> None:
        self._engine = engine
        self._loader = loader
        self.settings = settings
        self.profile = profile
        self.category_averages = category_averages

    # ── Model availability ────────────────────────────────────────────────────

    def current_engine(self) -> Optional[InferenceEngine]:
        """The ready engine, or ``None`` while unavailable / still loading."""
        if self._engine is not None:
            return self._engine
        if self._loader is not None:
            return self._loader.get(block=self.settings.block_on_load)
        return None

    @property
    def model_ready(self) -> bool:
        return self.current_engine() is not None

    # ── Public API ────────────────────────────────────────────────────────────

    def predict(self, record: Optional[Mapping[str, Any]]) -> PredictionResult:
        """Score a raw product record."""
        if not isinstance(record, Mapping):
            record = {}
        features = encode(record)
        return self.predict_features(features, as_tags(record.get("categories_tags")))

    def predict_local(self, **fields: Any) -> PredictionResult:
        """Score a hand-entered product; see ``record_from_local_product``."""
        return self.predict(record_from_local_product(**fields))

    def predict_features(
        self,
        features: FeatureVector,
        category_tags: Optional[list[str]] = None,
    ) -> PredictionResult:
        """Run the cascade on an already-encoded vector."""
        richness = features.non_default_count

        engine = self.current_engine()
        model_note = "model not loaded"
        if engine is not None:
            try:
                raw = engine.predict_raw(features)
            except InferenceError as exc:
                logger.warning("Model tier skipped: %s", exc)
                model_note = "model output unavailable"
            else:
                return self._model_result(engine, raw, richness)

        if richness >= self.settings.min_heuristic_features:
            return self._heuristic_result(features, richness, model_note)

        return self._category_result(category_tags, richness)

    # ── Tiers ─────────────────────────────────────────────────────────────────

    def _model_result(self, engine: InferenceEngine, raw: float, richness: int) -> PredictionResult:
        score = max(0, min(100, math.floor(raw * 100.0 + 0.5)))
        return PredictionResult(
            score=score,
            confidence=model_confidence(raw, richness, self.settings),
            method=PredictionMethod.MODEL,
            explanation=(
                f"Neural network prediction ({engine.architecture or 'mlp'}, "
                f"{engine.total_parameters} params). "
                f"Data richness: {richness}/{NUM_FEATURES} features."
            ),
            feature_count=richness,
        )

    def _heuristic_result(
        self, features: FeatureVector, richness: int, model_note: str
    ) -> PredictionResult:
        return PredictionResult(
            score=self.profile.score(features.values),
            confidence=heuristic_confidence(richness, self.settings),
            method=PredictionMethod.HEURISTIC,
            explanation=(
                f"Rule-based heuristic (weighted feature sum, profile {self.profile.version}). "
                f"Data richness: {richness}/{NUM_FEATURES} features "
                f"(needs {self.settings.min_heuristic_features}); {model_note}."
            ),
            feature_count=richness,
        )

    def _category_result(
        self, category_tags: Optional[list[str]], richness: int
    ) -> PredictionResult:
        match = match_category(category_tags, self.category_averages)
        if match is None:
            source = "global default"
            score = self.settings.default_category_score
        else:
            source, score = match
        return PredictionResult(
            score=score,
            confidence=Confidence.LOW,
            method=PredictionMethod.CATEGORY_AVERAGE,
            explanation=(
                f"Category average fallback ({source}: {score}). "
                f"Insufficient product data: {richness}/{NUM_FEATURES} features "
                f"(heuristic needs {self.settings.min_heuristic_features})."
            ),
            feature_count=richness,
        )
