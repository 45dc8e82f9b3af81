"""
Concrete pipeline stages for the offline tooling.

Each stage reads its paths from ``AppConfig.data`` unless overridden by a
keyword argument, records its outcome in ``run.details`` and keeps the rich
result object on the instance (``last_result`` / ``last_report``) for the
CLI to print.

Stages
------
TrainStage          — corpus → train → export weights / metadata / test set.
EvaluateStage       — held-out test set through the serving engine.
SyncCheckStage      — training/serving consistency gate.  A failing report
                      raises ``SyncCheckError`` so the run is recorded as
                      failed.
CategoryScoresStage — per-category mean-score table from a corpus.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from sustain_score.models.meta import RunMetadata
from sustain_score.pipeline.base import PipelineStage

logger = logging.getLogger(__name__)


class SyncCheckError(RuntimeError):
    """Raised by ``SyncCheckStage`` when any sync check fails.

    Attributes:
        report: The failing ``SyncReport``.
    """

    def __init__(self, report) -> None:
        self.report = report
        labels = ", ".join(c.label for c in report.failures[:3])
        more = f" (+{len(report.failures) - 3} more)" if len(report.failures) > 3 else ""
        super().__init__(f"{len(report.failures)} sync check(s) failed: {labels}{more}")


class TrainStage(PipelineStage):
    """Train the MLP and export its artifacts."""

    stage_name = "train"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.last_result = None
        self.last_paths: dict[str, Path] = {}

    def _status_for(self, exc: Exception) -> str:
        from sustain_score.ml.trainer import TrainingCancelledError

        return "cancelled" if isinstance(exc, TrainingCancelledError) else "failed"

    def _execute(
        self,
        run: RunMetadata,
        corpus_path: Optional[str] = None,
        artifact_dir: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        **kwargs,
    ) -> int:
        from sustain_score.ml.dataset import load_records
        from sustain_score.ml.export import write_artifacts
        from sustain_score.ml.trainer import train_from_records

        data = self.config.data
        records = load_records(corpus_path or data.corpus_path)
        result = train_from_records(records, self.config.training, cancel_event=cancel_event)
        paths = write_artifacts(
            result,
            artifact_dir or data.artifact_dir,
            weights_file=data.weights_file,
            metadata_file=data.metadata_file,
            test_set_file=data.test_set_file,
        )

        self.last_result = result
        self.last_paths = paths
        run.details = {
            "corpus": result.report.to_dict(),
            "splits": result.split.sizes,
            "epochs_run": result.epochs_run,
            "best_epoch": result.best_epoch,
            "stopped_early": result.stopped_early,
            "validation_metrics": result.validation_metrics.to_dict(),
            "test_metrics": result.test_metrics.to_dict(),
            "artifacts": {k: str(v) for k, v in paths.items()},
        }
        return result.report.accepted


class EvaluateStage(PipelineStage):
    """Evaluate an exported artifact on its held-out test set."""

    stage_name = "evaluate"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.last_report = None

    def _execute(
        self,
        run: RunMetadata,
        weights_path: Optional[str] = None,
        test_set_path: Optional[str] = None,
        **kwargs,
    ) -> int:
        from sustain_score.ml.evaluate import evaluate_artifact, load_test_set
        from sustain_score.serving.artifact import read_artifact_document

        document = read_artifact_document(weights_path or self.config.data.weights_path)
        test_set = load_test_set(test_set_path or self.config.data.test_set_path)
        report = evaluate_artifact(document, test_set)

        self.last_report = report
        run.details = report.to_dict()
        return report.metrics.sample_count


class SyncCheckStage(PipelineStage):
    """Run the sync validator against an artifact."""

    stage_name = "sync_check"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.last_report = None

    def _execute(
        self,
        run: RunMetadata,
        weights_path: Optional[str] = None,
        report_path: Optional[str] = None,
        **kwargs,
    ) -> int:
        from sustain_score.sync.reporter import export_sync_report
        from sustain_score.sync.validator import run_sync_checks

        sync = self.config.sync
        report = run_sync_checks(
            weights_path or self.config.data.weights_path,
            category_tolerance=sync.category_count_tolerance,
            min_category_entries=sync.min_category_entries,
        )
        self.last_report = report

        target = report_path if report_path is not None else sync.report_path
        if target:
            export_sync_report(report, target)

        run.details = {
            "passed": report.passed,
            "failed_checks": [c.label for c in report.failures],
            "total_checks": len(report.checks),
        }
        if not report.passed:
            raise SyncCheckError(report)
        return len(report.checks)


class CategoryScoresStage(PipelineStage):
    """Build the per-category mean-score table from the corpus."""

    stage_name = "category_scores"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.last_rows: list = []

    def _execute(
        self,
        run: RunMetadata,
        corpus_path: Optional[str] = None,
        output_path: Optional[str] = None,
        min_count: int = 20,
        **kwargs,
    ) -> int:
        from sustain_score.ml.category_scores import build_category_scores, write_category_scores
        from sustain_score.ml.dataset import load_records

        records = load_records(corpus_path or self.config.data.corpus_path)
        rows = build_category_scores(records, min_count=min_count)
        out = write_category_scores(rows, output_path or self.config.data.category_scores_path)

        self.last_rows = rows
        run.details = {"categories": len(rows), "min_count": min_count, "output": str(out)}
        return len(rows)
