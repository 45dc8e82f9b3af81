"""
Weight caches: opaque load/save storage for artifact documents.

A cache entry is tagged with the artifact format version it was written
under.  ``load()`` treats an entry with any other version as stale: the
entry is deleted and ``None`` is returned, so the loader falls through to
the bundled artifact file.

Implementations
---------------
InMemoryWeightCache  — process-local dict (tests, short-lived services)
SqliteWeightCache    — ``weight_cache`` table via ``db.connection``
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Optional, Protocol

from sustain_score.db.connection import get_connection
from sustain_score.db.repositories.cache_repo import WeightCacheRepository

logger = logging.getLogger(__name__)


class WeightCache(Protocol):
    def load(self, key: str, version: str) -> Optional[dict[str, Any]]: ...

    def save(self, key: str, document: dict[str, Any], version: str) -> None: ...

    def invalidate(self, key: str) -> None: ...


class InMemoryWeightCache:
    """Thread-safe dict-backed cache."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, str]] = {}
        self._lock = threading.Lock()

    def load(self, key: str, version: str) -> Optional[dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_version, payload = entry
            if stored_version != version:
                logger.info(
                    "Discarding cached weights %r: version %s != %s", key, stored_version, version
                )
                del self._entries[key]
                return None
        return json.loads(payload)

    def save(self, key: str, document: dict[str, Any], version: str) -> None:
        payload = json.dumps(document)
        with self._lock:
            self._entries[key] = (version, payload)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


class SqliteWeightCache:
    """Cache persisted in the project SQLite database.

    Args:
        db_path:         SQLite file path (created on first use).
        wal_mode:        Passed to ``get_connection``.
        busy_timeout_ms: Passed to ``get_connection``.
    """

    def __init__(self, db_path: str, wal_mode: bool = True, busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        with self._connect(ensure_schema=True):
            pass

    def _connect(self, ensure_schema: bool = False):
        return get_connection(
            self.db_path, self.wal_mode, self.busy_timeout_ms, ensure_schema=ensure_schema
        )

    def load(self, key: str, version: str) -> Optional[dict[str, Any]]:
        with self._connect() as conn:
            repo = WeightCacheRepository(conn)
            entry = repo.get(key)
            if entry is None:
                return None
            stored_version, payload = entry
            if stored_version != version:
                logger.info(
                    "Discarding cached weights %r: version %s != %s", key, stored_version, version
                )
                repo.delete(key)
                return None
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Cached weights %r are not valid JSON; discarding.", key)
            self.invalidate(key)
            return None

    def save(self, key: str, document: dict[str, Any], version: str) -> None:
        with self._connect() as conn:
            WeightCacheRepository(conn).put(key, version, json.dumps(document))
        logger.info("Cached weights %r (version %s) in %s", key, version, self.db_path)

    def invalidate(self, key: str) -> None:
        with self._connect() as conn:
            WeightCacheRepository(conn).delete(key)
