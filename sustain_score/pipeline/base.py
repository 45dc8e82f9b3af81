"""
Abstract base class for all pipeline stages.

Every stage follows the same contract:
  1. Receive ``AppConfig`` at construction.
  2. ``run(**kwargs)`` is the sole public API.
  3. ``run()`` creates a ``RunMetadata`` record, calls ``_execute()``,
     and persists the run record with final status.
  4. ``_execute()`` is the stage-specific implementation.

Status transitions: started → success | failed | cancelled.  Exceptions
from ``_execute()`` are recorded and re-raised; a stage never swallows
them.  ``_status_for()`` lets a stage classify an exception as
``cancelled`` instead of ``failed``.

Usage::

    class MyStage(PipelineStage):
        stage_name = "evaluate"

        def _execute(self, run: RunMetadata, **kwargs) -> int:
            run.details["note"] = "done"
            return 42

    stage = MyStage(config=app_config)
    result = stage.run(weights_path="data/artifacts/weights.json")
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from uuid import uuid4

from sustain_score.config import AppConfig
from sustain_score.models.meta import RunMetadata
from sustain_score.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """Abstract base for all pipeline stages.

    Attributes:
        stage_name: Identifier matching a valid ``RunMetadata.pipeline_stage``.
        config:     The application configuration for this run.
        db_path:    SQLite database path (defaults to ``config.database.db_path``).
        persist:    When False, run records are not written (dry runs, tests).
    """

    stage_name: str

    def __init__(
        self,
        config: AppConfig,
        db_path: str | None = None,
        persist: bool = True,
    ) -> None:
        self.config = config
        self.db_path = db_path or config.database.db_path
        self.persist = persist

    def run(self, **kwargs) -> RunMetadata:
        """Execute this pipeline stage.

        Returns:
            ``RunMetadata`` with final ``status``, ``rows_processed``,
            ``details`` and ``finished_at`` set.

        Raises:
            Exception: Re-raises any exception from ``_execute()`` after
                recording the failed (or cancelled) run.
        """
        run = RunMetadata(
            run_slug=str(uuid4()),
            pipeline_stage=self.stage_name,
            config_snapshot=self.config.model_dump(),
            started_at=utcnow(),
        )
        logger.info("Stage [%s] starting | run_slug=%s", self.stage_name, run.run_slug)

        try:
            rows = self._execute(run=run, **kwargs)
        except Exception as exc:
            run.status = self._status_for(exc)
            run.error_message = str(exc)
            run.finished_at = utcnow()
            log = logger.warning if run.status == "cancelled" else logger.error
            log(
                "Stage [%s] %s: %s | run_slug=%s",
                self.stage_name, run.status.upper(), exc, run.run_slug,
            )
            self._persist_run(run)
            raise

        run.status = "success"
        run.rows_processed = rows
        run.finished_at = utcnow()
        logger.info(
            "Stage [%s] completed | rows=%d | run_slug=%s",
            self.stage_name, rows, run.run_slug,
        )
        self._persist_run(run)
        return run

    @abstractmethod
    def _execute(self, run: RunMetadata, **kwargs) -> int:
        """Stage-specific implementation.

        Args:
            run: The in-progress ``RunMetadata`` record (mutable).
            **kwargs: Stage-specific parameters.

        Returns:
            Count of records processed.
        """
        ...

    def _status_for(self, exc: Exception) -> str:
        return "failed"

    def _persist_run(self, run: RunMetadata) -> None:
        """Insert or update the run record.

        Persistence failures are logged, not raised, so they never mask the
        stage's own outcome.
        """
        if not self.persist:
            return
        from sustain_score.db.connection import get_connection
        from sustain_score.db.repositories.run_repo import RunMetadataRepository

        try:
            with get_connection(
                self.db_path,
                wal_mode=self.config.database.wal_mode,
                busy_timeout_ms=self.config.database.busy_timeout_ms,
                ensure_schema=True,
            ) as conn:
                repo = RunMetadataRepository(conn)
                if run.run_id is None:
                    run.run_id = repo.insert_run(run)
                else:
                    repo.update_run(run)
        except (sqlite3.Error, OSError) as exc:
            logger.error(
                "Failed to persist RunMetadata for run_slug=%s: %s", run.run_slug, exc
            )
