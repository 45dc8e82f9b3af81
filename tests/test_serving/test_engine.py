"""
Tests for sustain_score/serving/engine.py.

What we test
------------
Primitives:
  - relu zeroes negatives; sigmoid clips beyond ±500 and is 0.5 at 0.

Forward pass:
  - A hand-built artifact with a single active path reproduces the
    closed-form result (z-score, three affine+BN+ReLU blocks, sigmoid).
  - Normalization: a value at mean+std normalizes to 1, at the mean to 0.
  - Outputs of a random valid artifact stay in [0, 1].
  - A FeatureVector and a plain list give identical outputs.

Failure handling:
  - Construction rejects malformed artifacts (ArtifactError).
  - predict_raw raises InferenceError on wrong length / non-finite input.
  - predict returns the neutral 0.5 instead.
"""

from __future__ import annotations

import math

import pytest

from sustain_score.features.encoder import FEATURE_DEFAULTS, encode
from sustain_score.serving.artifact import ArtifactError
from sustain_score.serving.engine import (
    NEUTRAL_OUTPUT,
    InferenceEngine,
    InferenceError,
    relu,
    sigmoid,
)


def _single_path_artifact(make_artifact, weight: float = 2.0, bias: float = -0.5) -> dict:
    """Zero every parameter except one path from feature 0 to the output."""
    doc = make_artifact()
    for layer in doc["layers"].values():
        layer["kernel"] = [[0.0] * len(row) for row in layer["kernel"]]
        layer["bias"] = [0.0] * len(layer["bias"])
    for name in ("hidden1", "hidden2", "hidden3"):
        doc["layers"][name]["kernel"][0][0] = 1.0
    doc["layers"]["output"]["kernel"][0][0] = weight
    doc["layers"]["output"]["bias"] = [bias]
    return doc


# ── Primitives ────────────────────────────────────────────────────────────────

class TestPrimitives:
    def test_relu(self):
        assert relu([-1.0, 0.0, 2.5]) == [0.0, 0.0, 2.5]

    def test_sigmoid_midpoint(self):
        assert sigmoid(0.0) == 0.5

    def test_sigmoid_clipping(self):
        assert sigmoid(1000.0) == 1.0
        assert sigmoid(-1000.0) == 0.0


# ── Forward pass ──────────────────────────────────────────────────────────────

class TestForwardPass:
    def test_single_active_path(self, make_artifact):
        engine = InferenceEngine.from_artifact(_single_path_artifact(make_artifact))
        features = list(FEATURE_DEFAULTS)
        features[0] = 0.9

        scale = 1.0 / math.sqrt(1.0 + 1e-5)
        z = (0.9 - 0.5) / 0.5
        expected = 1.0 / (1.0 + math.exp(-(2.0 * z * scale ** 3 - 0.5)))
        assert engine.predict_raw(features) == pytest.approx(expected, rel=1e-9)

    def test_relu_blocks_negative_path(self, make_artifact):
        engine = InferenceEngine.from_artifact(_single_path_artifact(make_artifact))
        features = list(FEATURE_DEFAULTS)
        features[0] = 0.1
        assert engine.predict_raw(features) == pytest.approx(sigmoid(-0.5))

    def test_batch_norm_statistics_applied(self, make_artifact):
        doc = _single_path_artifact(make_artifact, weight=1.0, bias=0.0)
        doc["batch_norm"]["bn1"]["moving_mean"][0] = 0.3
        doc["batch_norm"]["bn1"]["moving_variance"][0] = 4.0
        doc["batch_norm"]["bn1"]["beta"][0] = 0.1
        engine = InferenceEngine.from_artifact(doc)
        features = list(FEATURE_DEFAULTS)
        features[0] = 1.0

        s = 1.0 / math.sqrt(1.0 + 1e-5)
        h1 = (1.0 - 0.3) / math.sqrt(4.0 + 1e-5) + 0.1
        expected = sigmoid(h1 * s * s)
        assert engine.predict_raw(features) == pytest.approx(expected, rel=1e-9)

    def test_normalization(self, make_artifact):
        engine = InferenceEngine.from_artifact(make_artifact())
        means = list(FEATURE_DEFAULTS)
        at_mean = engine.normalize(means)
        one_std = engine.normalize([m + 0.5 for m in means])
        assert all(v == pytest.approx(0.0) for v in at_mean)
        assert all(v == pytest.approx(1.0) for v in one_std)

    def test_random_artifact_outputs_in_range(self, make_artifact, sample_record):
        for seed in range(3):
            engine = InferenceEngine.from_artifact(make_artifact(seed=seed))
            for record in ({}, sample_record, {"labels_tags": ["en:organic"]}):
                assert 0.0 <= engine.predict(encode(record)) <= 1.0

    def test_feature_vector_and_list_agree(self, make_artifact, sample_record):
        engine = InferenceEngine.from_artifact(make_artifact())
        vector = encode(sample_record)
        assert engine.predict(vector) == engine.predict(list(vector.values))

    def test_metadata_properties(self, make_artifact):
        engine = InferenceEngine.from_artifact(make_artifact())
        assert engine.input_dim == 40
        assert engine.format_version == "4.0"
        assert engine.architecture == "40→256→128→64→1"
        dense = 40 * 256 + 256 + 256 * 128 + 128 + 128 * 64 + 64 + 64 + 1
        assert engine.total_parameters == dense + 4 * (256 + 128 + 64)


# ── Failure handling ──────────────────────────────────────────────────────────

class TestFailures:
    def test_rejects_mutated_kernel(self, make_artifact):
        doc = make_artifact()
        doc["layers"]["hidden3"]["kernel"] = [row + [0.0] for row in doc["layers"]["hidden3"]["kernel"]]
        with pytest.raises(ArtifactError):
            InferenceEngine.from_artifact(doc)

    def test_wrong_length_raises(self, make_artifact):
        engine = InferenceEngine.from_artifact(make_artifact())
        with pytest.raises(InferenceError, match="length 39"):
            engine.predict_raw([0.5] * 39)

    def test_non_finite_input_raises(self, make_artifact):
        engine = InferenceEngine.from_artifact(make_artifact())
        values = list(FEATURE_DEFAULTS)
        values[5] = float("nan")
        with pytest.raises(InferenceError):
            engine.predict_raw(values)

    def test_non_numeric_raises(self, make_artifact):
        engine = InferenceEngine.from_artifact(make_artifact())
        with pytest.raises(InferenceError):
            engine.predict_raw(["x"] * 40)

    def test_predict_returns_neutral(self, make_artifact):
        engine = InferenceEngine.from_artifact(make_artifact())
        assert engine.predict([0.5] * 12) == NEUTRAL_OUTPUT

    def test_predict_many(self, make_artifact):
        engine = InferenceEngine.from_artifact(make_artifact())
        outputs = engine.predict_many([list(FEATURE_DEFAULTS), [1.0]])
        assert len(outputs) == 2
        assert outputs[1] == NEUTRAL_OUTPUT
