"""
Tests for sustain_score/serving/artifact.py.

What we test
------------
validate_artifact():
  - A well-formed artifact has no problems.
  - Wrong format version, missing sections, wrong kernel shapes, non-finite
    values, negative variances and non-positive stds are each reported.
  - Every problem is listed, not just the first.

parse_artifact() / load_artifact():
  - Raise ArtifactError with ``problems``; missing file, bad JSON and
    non-UTF-8 bytes too.
"""

from __future__ import annotations

import json

import pytest

from sustain_score.serving.artifact import (
    ArtifactError,
    ModelWeights,
    load_artifact,
    parse_artifact,
    validate_artifact,
)


class TestValidateArtifact:
    def test_valid_artifact(self, make_artifact):
        assert validate_artifact(make_artifact()) == []

    def test_not_an_object(self):
        assert validate_artifact([1, 2, 3]) == ["artifact: not a JSON object"]

    def test_wrong_format_version(self, make_artifact):
        doc = make_artifact()
        doc["format_version"] = "3.0"
        problems = validate_artifact(doc)
        assert len(problems) == 1
        assert "format_version" in problems[0]

    def test_kernel_column_count_mutation(self, make_artifact):
        doc = make_artifact()
        doc["layers"]["hidden2"]["kernel"] = [row[:-1] for row in doc["layers"]["hidden2"]["kernel"]]
        problems = validate_artifact(doc)
        assert any("layers.hidden2.kernel" in p and "127" in p for p in problems)

    def test_wrong_input_length(self, make_artifact):
        doc = make_artifact()
        doc["layers"]["hidden1"]["kernel"] = doc["layers"]["hidden1"]["kernel"][:39]
        doc["normalization"]["feature_means"] = doc["normalization"]["feature_means"][:39]
        problems = validate_artifact(doc)
        assert any("hidden1.kernel" in p for p in problems)
        assert any("feature_means" in p for p in problems)

    def test_missing_batch_norm_group(self, make_artifact):
        doc = make_artifact()
        del doc["batch_norm"]["bn2"]
        assert "batch_norm.bn2: missing" in validate_artifact(doc)

    def test_negative_variance(self, make_artifact):
        doc = make_artifact()
        doc["batch_norm"]["bn1"]["moving_variance"][3] = -1.0
        assert any("negative" in p for p in validate_artifact(doc))

    def test_non_finite_bias(self, make_artifact):
        doc = make_artifact()
        doc["layers"]["output"]["bias"] = [float("nan")]
        assert any("layers.output.bias" in p for p in validate_artifact(doc))

    def test_zero_std(self, make_artifact):
        doc = make_artifact()
        doc["normalization"]["feature_stds"][0] = 0.0
        assert any("feature_stds" in p for p in validate_artifact(doc))

    def test_bool_is_not_a_number(self, make_artifact):
        doc = make_artifact()
        doc["layers"]["output"]["bias"] = [True]
        assert validate_artifact(doc)

    def test_collects_every_problem(self, make_artifact):
        doc = make_artifact()
        doc["format_version"] = "1.0"
        del doc["normalization"]
        del doc["layers"]["output"]
        assert len(validate_artifact(doc)) == 3


class TestParseArtifact:
    def test_returns_model_weights(self, make_artifact):
        weights = parse_artifact(make_artifact())
        assert isinstance(weights, ModelWeights)
        assert len(weights.layers) == 4
        assert len(weights.layers[0].kernel) == 40
        assert len(weights.layers[0].kernel[0]) == 256
        assert weights.batch_norms[2].epsilon == pytest.approx(1e-5)
        assert weights.metadata == {"test_metrics": {"r_squared": 0.8}}

    def test_raises_with_problems(self, make_artifact):
        doc = make_artifact()
        doc["format_version"] = "9"
        with pytest.raises(ArtifactError) as excinfo:
            parse_artifact(doc)
        assert excinfo.value.problems


class TestLoadArtifact:
    def test_round_trip_file(self, artifact_file):
        assert load_artifact(artifact_file).format_version == "4.0"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ArtifactError, match="not found"):
            load_artifact(tmp_path / "absent.json")

    def test_bad_json(self, tmp_path):
        path = tmp_path / "weights.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ArtifactError, match="unreadable"):
            load_artifact(path)

    def test_valid_json_wrong_shape(self, tmp_path):
        path = tmp_path / "weights.json"
        path.write_text(json.dumps({"format_version": "4.0"}), encoding="utf-8")
        with pytest.raises(ArtifactError):
            load_artifact(path)

    def test_not_utf8(self, tmp_path):
        path = tmp_path / "weights.json"
        path.write_bytes(b'{"format_version": "\xff\xfe"}')
        with pytest.raises(ArtifactError, match="unreadable"):
            load_artifact(path)
