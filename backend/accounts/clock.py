"""
clock.py — the single time source for every expiry comparison.

Services take a clock at construction time instead of calling
datetime.now() directly, so tests can pin and advance time.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Returns `value` as a timezone-aware UTC datetime.

    SQLite drops tzinfo on DateTime(timezone=True) columns; every value we
    write is UTC, so a naive value read back is UTC too.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SystemClock:
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock:
    """A clock that only moves when told to. Used by tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = ensure_utc(start) if start is not None else utcnow()

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now

    def set(self, value: datetime) -> None:
        self._now = ensure_utc(value)
