"""
Time helpers.

All timestamps in artifacts, metadata and run records are timezone-aware
UTC and serialized as ISO-8601 with a ``Z`` suffix.
"""

from __future__ import annotations

from datetime import datetime, timezone

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def utc_timestamp(moment: datetime | None = None) -> str:
    """Format ``moment`` (default: now) as ``YYYY-MM-DDTHH:MM:SSZ``."""
    return (moment or utcnow()).astimezone(timezone.utc).strftime(ISO_FORMAT)
