"""
Tests for sustain_score/ml/export.py.

What we test
------------
  - The exported document passes the serving-side validation unchanged.
  - Kernels are transposed to [inputs][outputs].
  - The stdlib engine reproduces the torch eval-mode predictions.
  - Metadata parameter count agrees with the engine's count.
  - The contract block snapshots the live encoder tables.
  - write_artifacts() writes weights, metadata and test set.
"""

from __future__ import annotations

import json

import pytest

from sustain_score.config import TrainingConfig
from sustain_score.features.encoder import FEATURE_NAMES
from sustain_score.ml.dataset import feature_matrix
from sustain_score.ml.export import (
    build_artifact,
    build_contract,
    build_test_set,
    write_artifacts,
)
from sustain_score.ml.trainer import predict_scaled, train_from_examples
from sustain_score.serving.artifact import FORMAT_VERSION, validate_artifact
from sustain_score.serving.engine import InferenceEngine


@pytest.fixture(scope="module")
def short_run(linear_examples):
    config = TrainingConfig(epochs=5, batch_size=32, seed=3, min_samples=50)
    return train_from_examples(linear_examples, config)


@pytest.fixture(scope="module")
def exported(short_run):
    return build_artifact(short_run)


class TestBuildArtifact:
    def test_passes_runtime_validation(self, exported):
        assert validate_artifact(exported) == []
        assert exported["format_version"] == FORMAT_VERSION

    def test_kernels_transposed(self, short_run, exported):
        kernel = exported["layers"]["hidden1"]["kernel"]
        weight = short_run.network.hidden1.weight
        assert len(kernel) == 40
        assert len(kernel[0]) == 256
        assert kernel[3][17] == pytest.approx(float(weight[17, 3]))

    def test_batch_norm_running_statistics(self, short_run, exported):
        bn = exported["batch_norm"]["bn2"]
        assert bn["moving_mean"] == pytest.approx(short_run.network.bn2.running_mean.tolist())
        assert bn["moving_variance"] == pytest.approx(short_run.network.bn2.running_var.tolist())
        assert bn["epsilon"] == pytest.approx(1e-5)

    def test_engine_matches_torch(self, short_run, exported):
        engine = InferenceEngine.from_artifact(exported)
        test = short_run.split.test
        expected = predict_scaled(short_run.network, short_run.scaler.transform(feature_matrix(test)))
        actual = [engine.predict_raw(e.features) for e in test]
        assert actual == pytest.approx(expected, abs=1e-4)

    def test_parameter_counts_agree(self, exported):
        engine = InferenceEngine.from_artifact(exported)
        assert exported["metadata"]["total_parameters"] == engine.total_parameters

    def test_contract(self, exported):
        assert exported["contract"] == build_contract()
        assert exported["contract"]["feature_names"] == list(FEATURE_NAMES)

    def test_metadata_samples(self, short_run, exported):
        samples = exported["metadata"]["samples"]
        assert samples["total"] == 200
        assert samples["rejected"] == 0
        assert exported["metadata"]["epochs_run"] == short_run.epochs_run

    def test_document_is_json_serializable(self, exported):
        assert json.loads(json.dumps(exported))["architecture"] == exported["architecture"]


class TestWriteArtifacts:
    def test_writes_three_files(self, short_run, tmp_path):
        paths = write_artifacts(short_run, tmp_path / "out")
        assert set(paths) == {"weights", "metadata", "test_set"}
        assert all(p.exists() for p in paths.values())

        weights = json.loads(paths["weights"].read_text(encoding="utf-8"))
        metadata = json.loads(paths["metadata"].read_text(encoding="utf-8"))
        assert metadata == weights["metadata"]

        test_set = json.loads(paths["test_set"].read_text(encoding="utf-8"))
        assert test_set == json.loads(json.dumps(build_test_set(short_run)))
        assert len(test_set["features"]) == len(test_set["labels"]) == 30
        assert len(test_set["features"][0]) == 40

    def test_custom_file_names(self, short_run, tmp_path):
        paths = write_artifacts(
            short_run, tmp_path, weights_file="w.json", metadata_file="m.json", test_set_file="t.json"
        )
        assert paths["weights"].name == "w.json"
        assert paths["test_set"].name == "t.json"
