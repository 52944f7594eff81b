"""
Time sources for the streak engine.

Every instant handed out is timezone-aware UTC. Calendar-day questions
(has the user studied today?) are answered by converting to the configured
local zone at the call site, never by the clock itself.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


def ensure_aware(moment: datetime) -> datetime:
    """Interpret naive datetimes as UTC and normalize everything to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Manually driven clock for tests and replay."""

    def __init__(self, moment: datetime):
        self._moment = ensure_aware(moment)

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime) -> None:
        self._moment = ensure_aware(moment)

    def advance(self, **delta) -> datetime:
        """Move forward by timedelta arguments, e.g. ``advance(hours=30)``."""
        self._moment = self._moment + timedelta(**delta)
        return self._moment


system_clock = SystemClock()
