"""Status derivation for a streak, from the last study instant alone."""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Optional

from riven.core.clock import ensure_aware
from riven.models.streak import StreakStatus

GRACE_HOURS = 48.0
AT_RISK_HOURS = 24.0

_SECONDS_PER_HOUR = 3600.0


def hours_remaining(
    last_study_date: Optional[datetime],
    now: datetime,
    grace_hours: float = GRACE_HOURS,
) -> float:
    """Hours left in the grace window, never negative."""
    if last_study_date is None:
        return 0.0
    deadline = ensure_aware(last_study_date) + timedelta(hours=grace_hours)
    remaining = (deadline - ensure_aware(now)).total_seconds() / _SECONDS_PER_HOUR
    return max(0.0, remaining)


def calculate_status(
    last_study_date: Optional[datetime],
    now: datetime,
    grace_hours: float = GRACE_HOURS,
    at_risk_hours: float = AT_RISK_HOURS,
) -> StreakStatus:
    if last_study_date is None:
        return "broken"
    remaining = hours_remaining(last_study_date, now, grace_hours)
    if remaining <= 0:
        return "broken"
    if remaining <= at_risk_hours:
        return "at-risk"
    return "active"


def local_date(moment: datetime, tz: tzinfo):
    return ensure_aware(moment).astimezone(tz).date()


def studied_today(last_study_date: Optional[datetime], now: datetime, tz: tzinfo) -> bool:
    """True when both instants fall on the same calendar day in `tz`."""
    if last_study_date is None:
        return False
    return local_date(last_study_date, tz) == local_date(now, tz)
