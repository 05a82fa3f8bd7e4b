"""
Time source for the engine.

All timestamps are timezone-aware UTC datetimes.
"""

from datetime import datetime, UTC
from typing import Protocol


class Clock(Protocol):
    """Wall-clock time source."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Clock backed by the host's wall clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
