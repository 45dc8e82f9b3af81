"""
One-time, idempotent model loading for the serving runtime.

``ModelLoader.get()`` resolves an ``InferenceEngine`` at most once:

  1. Cached document (if a cache is configured and holds an entry at the
     current ``FORMAT_VERSION``).  A cached document that fails validation
     is invalidated.
  2. The bundled artifact file.  A successfully parsed file is written back
     to the cache.

A failed load is remembered (``last_error``) and is not retried until
``reset()``; callers keep getting ``None`` and fall back to the heuristic
and category-average tiers.

Concurrency: a single ``threading.Lock`` guards the load.  ``get(block=True)``
waits for an in-flight load; ``get(block=False)`` returns ``None`` while
another thread is loading instead of starting a second load.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from sustain_score.serving.artifact import (
    FORMAT_VERSION,
    ArtifactError,
    read_artifact_document,
)
from sustain_score.serving.cache import WeightCache
from sustain_score.serving.engine import InferenceEngine

logger = logging.getLogger(__name__)

DEFAULT_CACHE_KEY = "model_weights"


class ModelLoader:
    """Owns the single load of the model used by a ``PredictionOrchestrator``.

    Args:
        artifact_path: Bundled ``weights.json``; ``None`` = cache only.
        cache:         Optional ``WeightCache``.
        cache_key:     Key under which the document is cached.
    """

    def __init__(
        self,
        artifact_path: Optional[str | Path] = None,
        cache: Optional[WeightCache] = None,
        cache_key: str = DEFAULT_CACHE_KEY,
    ) -> None:
        self.artifact_path = Path(artifact_path) if artifact_path else None
        self.cache = cache
        self.cache_key = cache_key
        self._lock = threading.Lock()
        self._engine: Optional[InferenceEngine] = None
        self._attempted = False
        self.last_error: Optional[str] = None
        self.source: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self._engine is not None

    def get(self, block: bool = True) -> Optional[InferenceEngine]:
        """Return the loaded engine, loading it on first call.

        Args:
            block: Wait for an in-flight load (``True``) or return ``None``
                   immediately while one is running (``False``).
        """
        if self._attempted:
            return self._engine
        if not self._lock.acquire(blocking=block):
            return None
        try:
            if not self._attempted:
                self._engine = self._load()
                self._attempted = True
            return self._engine
        finally:
            self._lock.release()

    def reset(self) -> None:
        """Forget the loaded engine so the next ``get()`` loads again."""
        with self._lock:
            self._engine = None
            self._attempted = False
            self.last_error = None
            self.source = None

    def _load(self) -> Optional[InferenceEngine]:
        engine = self._load_from_cache()
        if engine is not None:
            return engine

        if self.artifact_path is None:
            self.last_error = "no cached weights and no artifact path configured"
            logger.warning("Model not loaded: %s", self.last_error)
            return None

        try:
            document = read_artifact_document(self.artifact_path)
            engine = InferenceEngine.from_artifact(document)
        except ArtifactError as exc:
            self.last_error = str(exc)
            logger.error("Rejected model artifact %s: %s", self.artifact_path, exc)
            return None

        self.source = str(self.artifact_path)
        logger.info(
            "Loaded model %s (%d parameters) from %s",
            engine.architecture, engine.total_parameters, self.artifact_path,
        )
        if self.cache is not None:
            try:
                self.cache.save(self.cache_key, document, FORMAT_VERSION)
            except (OSError, sqlite3.Error) as exc:
                logger.warning("Could not cache model weights: %s", exc)
        return engine

    def _load_from_cache(self) -> Optional[InferenceEngine]:
        if self.cache is None:
            return None
        try:
            document = self.cache.load(self.cache_key, FORMAT_VERSION)
        except (OSError, sqlite3.Error) as exc:
            logger.warning("Weight cache unavailable: %s", exc)
            return None
        if document is None:
            return None
        try:
            engine = InferenceEngine.from_artifact(document)
        except ArtifactError as exc:
            logger.warning("Cached weights rejected, invalidating: %s", exc)
            try:
                self.cache.invalidate(self.cache_key)
            except (OSError, sqlite3.Error) as inval_exc:
                logger.warning("Could not invalidate cached weights: %s", inval_exc)
            return None
        self.source = f"cache:{self.cache_key}"
        logger.info("Loaded model %s from weight cache", engine.architecture)
        return engine
