"""
Base class for the table repositories.

Each subclass owns one table (``table``) and receives an open
``sqlite3.Connection``; transactions belong to the caller
(``get_connection()``).  SQL stays explicit in the subclasses.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, ClassVar, Optional

logger = logging.getLogger(__name__)

Params = tuple[Any, ...]


class BaseRepository:
    """Statement helpers shared by ``run_metadata`` and ``weight_cache`` access."""

    table: ClassVar[str] = ""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def _run(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        logger.debug("[%s] %s", self.table or "sql", " ".join(sql.split()))
        return self.conn.execute(sql, params)

    def _one(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        return self._run(sql, params).fetchone()

    def _all(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        return self._run(sql, params).fetchall()

    def count(self) -> int:
        """Number of rows in this repository's table."""
        row = self._one(f"SELECT COUNT(*) AS n FROM {self.table};")
        return int(row["n"]) if row is not None else 0
