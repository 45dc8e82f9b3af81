"""
Tests for sustain_score/prediction/orchestrator.py.

What we test
------------
Tier selection:
  - A usable engine always wins and yields method "model".
  - Without an engine, richness >= 3 selects the heuristic tier.
  - Otherwise the category-average tier, with the global default 45.
  - An engine whose forward pass fails degrades to the next tier.
  - A loader pointing at a missing or undecodable artifact degrades
    without raising.

Confidence grading:
  - model: decisiveness and richness thresholds (high / medium / low).
  - heuristic: medium at richness >= 10, otherwise low; never high.
  - category-average: always low.

Output:
  - Scores are integers in [0, 100]; explanations carry "N/40" richness.
  - predict() accepts None / non-mapping input.
  - predict_local() routes hand-entered fields through the same cascade.

A zeroed output kernel makes the model output exactly sigmoid(bias), so
confidence thresholds can be hit deterministically.
"""

from __future__ import annotations

import math
from dataclasses import replace

import pytest

from sustain_score.features.encoder import encode
from sustain_score.prediction.orchestrator import (
    PredictionOrchestrator,
    PredictionSettings,
    heuristic_confidence,
    model_confidence,
)
from sustain_score.prediction.result import Confidence, PredictionMethod
from sustain_score.serving.engine import InferenceEngine, InferenceError
from sustain_score.serving.loader import ModelLoader


def _logit(p: float) -> float:
    return math.log(p / (1.0 - p))


@pytest.fixture
def constant_engine(make_artifact):
    """Factory: an engine whose output is the constant ``p``."""

    def build(p: float) -> InferenceEngine:
        document = make_artifact()
        output = document["layers"]["output"]
        output["kernel"] = [[0.0] for _ in output["kernel"]]
        output["bias"] = [_logit(p)]
        return InferenceEngine.from_artifact(document)

    return build


class _FailingEngine:
    architecture = "broken"
    total_parameters = 0

    def predict_raw(self, features):
        raise InferenceError("forward pass produced non-finite logit nan")


def _scenario_a_features():
    record = {
        "categories_tags": ["en:organic-vegetables"],
        "labels_tags": ["en:organic"],
        "packaging_tags": ["en:glass"],
        "origins_tags": ["en:local"],
    }
    return encode(record, category_scores={"en:organic-vegetables": 0.90})


# ── Tier selection ────────────────────────────────────────────────────────────

class TestTierSelection:
    def test_well_documented_product_without_model(self):
        result = PredictionOrchestrator().predict_features(_scenario_a_features())
        assert result.method is PredictionMethod.HEURISTIC
        assert result.score == 82
        assert result.feature_count == 8
        assert result.confidence is Confidence.LOW

    def test_empty_record_uses_category_default(self):
        result = PredictionOrchestrator().predict({})
        assert result.method is PredictionMethod.CATEGORY_AVERAGE
        assert result.score == 45
        assert result.confidence is Confidence.LOW
        assert result.feature_count == 0

    @pytest.mark.parametrize("record", [None, "not a record", 17, ["en:organic"]])
    def test_non_mapping_input(self, record):
        result = PredictionOrchestrator().predict(record)
        assert result.method is PredictionMethod.CATEGORY_AVERAGE
        assert result.score == 45

    def test_sparse_record_uses_category_table(self):
        result = PredictionOrchestrator().predict({"categories_tags": ["en:beef"]})
        assert result.feature_count < 3
        assert result.method is PredictionMethod.CATEGORY_AVERAGE
        assert result.score == 18
        assert "beef" in result.explanation

    def test_default_category_score_from_settings(self):
        orchestrator = PredictionOrchestrator(settings=PredictionSettings(default_category_score=50))
        assert orchestrator.predict({}).score == 50

    def test_model_tier_when_engine_present(self, make_artifact, sample_record):
        engine = InferenceEngine.from_artifact(make_artifact())
        result = PredictionOrchestrator(engine=engine).predict(sample_record)
        assert result.method is PredictionMethod.MODEL
        assert 0 <= result.score <= 100
        assert str(engine.total_parameters) in result.explanation

    def test_model_tier_even_for_empty_record(self, constant_engine):
        result = PredictionOrchestrator(engine=constant_engine(0.6)).predict({})
        assert result.method is PredictionMethod.MODEL
        assert result.score == 60
        assert result.confidence is Confidence.LOW

    def test_failing_engine_falls_back_to_heuristic(self, sample_record):
        orchestrator = PredictionOrchestrator(engine=_FailingEngine())
        result = orchestrator.predict(sample_record)
        assert result.method is PredictionMethod.HEURISTIC
        assert "model output unavailable" in result.explanation

    def test_failing_engine_falls_back_to_category(self):
        result = PredictionOrchestrator(engine=_FailingEngine()).predict({})
        assert result.method is PredictionMethod.CATEGORY_AVERAGE

    def test_missing_artifact_degrades(self, tmp_path, sample_record):
        loader = ModelLoader(artifact_path=tmp_path / "absent.json")
        orchestrator = PredictionOrchestrator(
            loader=loader, settings=PredictionSettings(block_on_load=True)
        )
        result = orchestrator.predict(sample_record)
        assert result.method is PredictionMethod.HEURISTIC
        assert "model not loaded" in result.explanation
        assert orchestrator.model_ready is False
        assert loader.last_error is not None

    def test_undecodable_artifact_degrades(self, tmp_path):
        path = tmp_path / "weights.json"
        path.write_bytes(b'{"format_version": "\xff\xfe"}')
        orchestrator = PredictionOrchestrator(
            loader=ModelLoader(artifact_path=path),
            settings=PredictionSettings(block_on_load=True),
        )
        result = orchestrator.predict({"categories_tags": ["en:beef"]})
        assert result.method is not PredictionMethod.MODEL
        assert 0 <= result.score <= 100
        assert orchestrator.model_ready is False

    def test_loader_supplies_engine(self, artifact_file, sample_record):
        loader = ModelLoader(artifact_path=artifact_file)
        orchestrator = PredictionOrchestrator(
            loader=loader, settings=PredictionSettings(block_on_load=True)
        )
        assert orchestrator.predict(sample_record).method is PredictionMethod.MODEL
        assert orchestrator.model_ready is True

    def test_engine_takes_precedence_over_loader(self, constant_engine, tmp_path):
        loader = ModelLoader(artifact_path=tmp_path / "absent.json")
        orchestrator = PredictionOrchestrator(engine=constant_engine(0.3), loader=loader)
        assert orchestrator.predict({}).score == 30
        assert loader.is_ready is False


# ── Confidence ────────────────────────────────────────────────────────────────

class TestConfidence:
    settings = PredictionSettings()

    @pytest.mark.parametrize(
        "raw, richness, expected",
        [
            (0.95, 8, Confidence.HIGH),
            (0.05, 12, Confidence.HIGH),
            (0.95, 7, Confidence.MEDIUM),
            (0.68, 5, Confidence.MEDIUM),
            (0.68, 4, Confidence.LOW),
            (0.55, 20, Confidence.LOW),
            (0.70, 8, Confidence.MEDIUM),
        ],
    )
    def test_model_confidence(self, raw, richness, expected):
        assert model_confidence(raw, richness, self.settings) is expected

    @pytest.mark.parametrize(
        "richness, expected",
        [(3, Confidence.LOW), (9, Confidence.LOW), (10, Confidence.MEDIUM), (40, Confidence.MEDIUM)],
    )
    def test_heuristic_confidence(self, richness, expected):
        assert heuristic_confidence(richness, self.settings) is expected

    def test_high_confidence_model_prediction(self, constant_engine, sample_record):
        result = PredictionOrchestrator(engine=constant_engine(0.95)).predict(sample_record)
        assert result.feature_count >= 8
        assert result.score == 95
        assert result.confidence is Confidence.HIGH

    def test_medium_confidence_model_prediction(self, constant_engine, sample_record):
        result = PredictionOrchestrator(engine=constant_engine(0.68)).predict(sample_record)
        assert result.score == 68
        assert result.confidence is Confidence.MEDIUM

    def test_heuristic_never_high(self):
        settings = replace(PredictionSettings(), heuristic_medium_features=0)
        assert heuristic_confidence(40, settings) is Confidence.MEDIUM
        assert all(
            heuristic_confidence(n, PredictionSettings()) is not Confidence.HIGH
            for n in range(41)
        )


# ── Output ────────────────────────────────────────────────────────────────────

class TestOutput:
    def test_explanations_report_richness(self, sample_record, constant_engine):
        richness = encode(sample_record).non_default_count
        for orchestrator in (
            PredictionOrchestrator(),
            PredictionOrchestrator(engine=constant_engine(0.5)),
        ):
            result = orchestrator.predict(sample_record)
            assert f"{richness}/40" in result.explanation
        assert "0/40" in PredictionOrchestrator().predict({}).explanation

    def test_to_dict_uses_plain_values(self, sample_record):
        data = PredictionOrchestrator().predict(sample_record).to_dict()
        assert data["method"] == "heuristic"
        assert data["confidence"] in {"low", "medium"}
        assert isinstance(data["score"], int)

    def test_predict_local(self):
        result = PredictionOrchestrator().predict_local(
            category="Organic Vegetables",
            nova_group=1,
            certifications=["Organic", "Fair Trade"],
            packaging_type="glass jar",
            origin_country="France",
        )
        assert result.method is PredictionMethod.HEURISTIC
        assert 0 <= result.score <= 100
        assert result.feature_count >= 3

    def test_predict_local_with_nothing(self):
        result = PredictionOrchestrator().predict_local()
        assert result.method is PredictionMethod.CATEGORY_AVERAGE
        assert result.score == 45
