"""
Repository for the ``weight_cache`` table.

Payloads are opaque JSON text; the repository never interprets them.
Standard library only (used by the serving runtime).
"""

from __future__ import annotations

from typing import Optional

from sustain_score.db.repositories.base import BaseRepository


class WeightCacheRepository(BaseRepository):
    """Read/write access to ``weight_cache``."""

    table = "weight_cache"

    def get(self, cache_key: str) -> Optional[tuple[str, str]]:
        """Return ``(version, payload)`` for ``cache_key``, or ``None``."""
        row = self._one(
            "SELECT version, payload FROM weight_cache WHERE cache_key = ?;",
            (cache_key,),
        )
        if row is None:
            return None
        return row["version"], row["payload"]

    def put(self, cache_key: str, version: str, payload: str) -> None:
        self._run(
            """
            INSERT INTO weight_cache (cache_key, version, payload, updated_at)
            VALUES (?, ?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
            ON CONFLICT(cache_key) DO UPDATE SET
                version    = excluded.version,
                payload    = excluded.payload,
                updated_at = excluded.updated_at;
            """,
            (cache_key, version, payload),
        )

    def delete(self, cache_key: str) -> int:
        """Delete one entry; return the number of rows removed."""
        return self._run(
            "DELETE FROM weight_cache WHERE cache_key = ?;", (cache_key,)
        ).rowcount

    def list_entries(self) -> list[tuple[str, str, str]]:
        """Return ``(cache_key, version, updated_at)`` for every entry."""
        rows = self._all(
            "SELECT cache_key, version, updated_at FROM weight_cache ORDER BY cache_key;"
        )
        return [(r["cache_key"], r["version"], r["updated_at"]) for r in rows]
