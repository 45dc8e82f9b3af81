"""
Tests for sustain_score/pipeline/ (base + concrete stages).

What we test
------------
PipelineStage contract:
  - Success records status, rows_processed, finished_at and persists the
    run to SQLite.
  - A failing _execute() is recorded as failed and re-raised.
  - persist=False writes nothing.

Stages:
  - SyncCheckStage passes on a consistent artifact and exports the report;
    a broken artifact raises SyncCheckError with the run marked failed.
  - CategoryScoresStage writes the table and records its size.
  - TrainStage trains a small corpus end to end and writes all three
    artifacts, which EvaluateStage and SyncCheckStage then accept.
  - TrainStage records a pre-cancelled run as cancelled.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from sustain_score.config import TrainingConfig
from sustain_score.db.connection import get_connection
from sustain_score.db.repositories.run_repo import RunMetadataRepository
from sustain_score.ml.trainer import TrainingCancelledError
from sustain_score.models.meta import RunMetadata
from sustain_score.pipeline.base import PipelineStage
from sustain_score.pipeline.stages import (
    CategoryScoresStage,
    EvaluateStage,
    SyncCheckError,
    SyncCheckStage,
    TrainStage,
)


def _stored_run(config, run_slug: str) -> RunMetadata:
    with get_connection(config.database.db_path) as conn:
        return RunMetadataRepository(conn).get_run_by_slug(run_slug)


def _write_json(path, document) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document), encoding="utf-8")


@pytest.fixture
def small_training_config(app_config):
    training = TrainingConfig(epochs=4, batch_size=16, min_samples=50, seed=5)
    return app_config.model_copy(update={"training": training})


# ── Base contract ─────────────────────────────────────────────────────────────

class _CountingStage(PipelineStage):
    stage_name = "evaluate"

    def _execute(self, run: RunMetadata, fail: bool = False, **kwargs) -> int:
        if fail:
            raise ValueError("bad input")
        run.details = {"note": "ok"}
        return 7


class TestPipelineStage:
    def test_success_persisted(self, app_config):
        run = _CountingStage(app_config).run()
        assert run.status == "success"
        assert run.rows_processed == 7
        assert run.finished_at is not None
        stored = _stored_run(app_config, run.run_slug)
        assert stored.status == "success"
        assert stored.details == {"note": "ok"}
        assert stored.config_snapshot["training"]["epochs"] == app_config.training.epochs

    def test_failure_recorded_and_raised(self, app_config):
        stage = _CountingStage(app_config)
        with pytest.raises(ValueError, match="bad input"):
            stage.run(fail=True)
        with get_connection(app_config.database.db_path) as conn:
            runs = RunMetadataRepository(conn).get_recent_runs("evaluate")
        assert len(runs) == 1
        assert runs[0].status == "failed"
        assert runs[0].error_message == "bad input"

    def test_persist_disabled(self, app_config, tmp_path):
        db_path = tmp_path / "unused.db"
        _CountingStage(app_config, db_path=str(db_path), persist=False).run()
        assert not db_path.exists()


# ── Sync check ────────────────────────────────────────────────────────────────

class TestSyncCheckStage:
    def test_passes_and_exports(self, app_config, make_artifact):
        _write_json(app_config.data.weights_path, make_artifact())
        stage = SyncCheckStage(app_config)
        run = stage.run()
        assert run.status == "success"
        assert run.details["passed"] is True
        assert run.rows_processed == len(stage.last_report.checks)

        exported = json.loads(Path(app_config.sync.report_path).read_text(encoding="utf-8"))
        assert exported["passed"] is True

    def test_broken_artifact_fails_run(self, app_config, make_artifact):
        document = make_artifact()
        for row in document["layers"]["hidden2"]["kernel"]:
            row.pop()
        _write_json(app_config.data.weights_path, document)

        stage = SyncCheckStage(app_config)
        with pytest.raises(SyncCheckError) as exc_info:
            stage.run()
        assert "shape: layers.hidden2.kernel" in str(exc_info.value)
        assert stage.last_report is exc_info.value.report

        with get_connection(app_config.database.db_path) as conn:
            runs = RunMetadataRepository(conn).get_recent_runs("sync_check")
        assert runs[0].status == "failed"

    def test_explicit_paths(self, app_config, artifact_file, tmp_path):
        report_path = tmp_path / "custom" / "sync.json"
        SyncCheckStage(app_config, persist=False).run(
            weights_path=str(artifact_file), report_path=str(report_path)
        )
        assert report_path.exists()


# ── Category scores ───────────────────────────────────────────────────────────

class TestCategoryScoresStage:
    def test_builds_table(self, app_config, raw_corpus, tmp_path):
        corpus = tmp_path / "products.json"
        _write_json(corpus, raw_corpus)
        stage = CategoryScoresStage(app_config)
        run = stage.run(corpus_path=str(corpus), min_count=10)

        # 30 beef and 30 plant-based records
        assert run.rows_processed == 2
        assert run.details["min_count"] == 10
        table = json.loads(app_config.data.category_scores_path.read_text(encoding="utf-8"))
        assert set(table) == {"en:beef", "en:plant-based-foods"}

    def test_missing_corpus(self, app_config, tmp_path):
        with pytest.raises(FileNotFoundError):
            CategoryScoresStage(app_config, persist=False).run(
                corpus_path=str(tmp_path / "absent.json")
            )


# ── Train → evaluate → sync ───────────────────────────────────────────────────

class TestTrainStage:
    def test_end_to_end(self, small_training_config, raw_corpus):
        config = small_training_config
        _write_json(Path(config.data.corpus_path), raw_corpus)

        train = TrainStage(config)
        run = train.run()
        assert run.status == "success"
        assert run.rows_processed == 60
        assert run.details["corpus"]["rejected_total"] == 5
        assert set(train.last_paths) == {"weights", "metadata", "test_set"}
        assert all(p.exists() for p in train.last_paths.values())

        evaluate = EvaluateStage(config)
        evaluated = evaluate.run()
        assert evaluated.status == "success"
        assert evaluated.rows_processed == train.last_result.split.sizes["test"]
        assert evaluate.last_report.parity_gap is not None

        sync = SyncCheckStage(config)
        assert sync.run().status == "success"

    def test_cancelled_run(self, small_training_config, raw_corpus):
        config = small_training_config
        _write_json(Path(config.data.corpus_path), raw_corpus)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(TrainingCancelledError):
            TrainStage(config).run(cancel_event=cancel)

        with get_connection(config.database.db_path) as conn:
            runs = RunMetadataRepository(conn).get_recent_runs("train")
        assert runs[0].status == "cancelled"
        assert not config.data.weights_path.exists()
