"""
SQLite connection helper for run records and the weight cache.

``get_connection()`` yields a connection with dict-style rows
(``sqlite3.Row``), a busy timeout and, for file databases, WAL journaling.
The block commits when it exits normally and rolls back when it raises.
Pass ``ensure_schema=True`` to create missing tables first.

Example::

    with get_connection(config.database.db_path, ensure_schema=True) as conn:
        RunMetadataRepository(conn).get_recent_runs("train")
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sustain_score.db.schema import apply_schema

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


def _open(db_path: str, wal_mode: bool, busy_timeout_ms: int) -> sqlite3.Connection:
    if db_path != MEMORY_DB:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
    # in-memory databases cannot journal to WAL
    if wal_mode and db_path != MEMORY_DB:
        mode = conn.execute("PRAGMA journal_mode = WAL;").fetchone()[0]
        if str(mode).lower() != "wal":
            logger.debug("WAL unavailable for %s (journal_mode=%s)", db_path, mode)
    return conn


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
    ensure_schema: bool = False,
) -> Iterator[sqlite3.Connection]:
    """Open ``db_path`` for the duration of a ``with`` block.

    Args:
        db_path:         Database file (parents are created) or ``":memory:"``.
        wal_mode:        Request WAL journaling for file databases.
        busy_timeout_ms: How long a locked database is retried.
        ensure_schema:   Run ``apply_schema()`` before yielding.
    """
    conn = _open(db_path, wal_mode, busy_timeout_ms)
    try:
        if ensure_schema:
            apply_schema(conn)
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
