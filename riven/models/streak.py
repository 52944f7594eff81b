from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Literal, Optional

from riven.core.clock import ensure_aware

StreakStatus = Literal["active", "at-risk", "broken"]

HISTORY_LIMIT = 10


def format_timestamp(moment: Optional[datetime]) -> Optional[str]:
    """ISO-8601 in UTC with millisecond precision and a trailing Z."""
    if moment is None:
        return None
    return ensure_aware(moment).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string; anything unparseable becomes None."""
    if isinstance(value, datetime):
        return ensure_aware(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_aware(datetime.fromisoformat(text))
    except ValueError:
        return None


def _coerce_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return max(0, int(value))
    if isinstance(value, str):
        try:
            return max(0, int(float(value)))
        except ValueError:
            return 0
    return 0


@dataclass(frozen=True)
class StreakMemorial:
    """A finished streak, kept for the garden gallery."""

    streak: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def to_dto(self) -> dict:
        return {
            "streak": self.streak,
            "startDate": format_timestamp(self.start_date),
            "endDate": format_timestamp(self.end_date),
        }

    @classmethod
    def from_dto(cls, data: Any) -> Optional[StreakMemorial]:
        if not isinstance(data, dict):
            return None
        streak = _coerce_count(data.get("streak"))
        if streak <= 0:
            return None
        return cls(
            streak=streak,
            start_date=parse_timestamp(data.get("startDate")),
            end_date=parse_timestamp(data.get("endDate")),
        )


@dataclass
class StreakState:
    """
    Domain model for a study streak. Owned by StreakEngine; the persisted form
    is the camelCase DTO produced by to_dto().
    """

    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: Optional[datetime] = None
    streak_start_date: Optional[datetime] = None
    past_streaks: List[StreakMemorial] = field(default_factory=list)

    @classmethod
    def empty(cls) -> StreakState:
        return cls()

    def to_dto(self) -> dict:
        return {
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "lastStudyDate": format_timestamp(self.last_study_date),
            "streakStartDate": format_timestamp(self.streak_start_date),
            "pastStreaks": [memorial.to_dto() for memorial in self.past_streaks],
        }

    @classmethod
    def from_dto(cls, data: Any, history_limit: int = HISTORY_LIMIT) -> StreakState:
        """Build a state from a remote blob. Never raises; repairs invariants."""
        if not isinstance(data, dict):
            return cls.empty()

        current = _coerce_count(data.get("currentStreak"))
        longest = _coerce_count(data.get("longestStreak"))
        last_study = parse_timestamp(data.get("lastStudyDate"))
        started = parse_timestamp(data.get("streakStartDate"))

        raw_history = data.get("pastStreaks")
        history: List[StreakMemorial] = []
        if isinstance(raw_history, list):
            for entry in raw_history:
                memorial = StreakMemorial.from_dto(entry)
                if memorial is not None:
                    history.append(memorial)

        if current > 0 and (started is None or last_study is None):
            current = 0
        if current == 0:
            started = None

        return cls(
            current_streak=current,
            longest_streak=max(longest, current),
            last_study_date=last_study,
            streak_start_date=started,
            past_streaks=history[:history_limit],
        )


@dataclass(frozen=True)
class StreakSnapshot:
    """Read model handed to API callers and subscribers."""

    current_streak: int
    longest_streak: int
    last_study_date: Optional[datetime]
    streak_start_date: Optional[datetime]
    past_streaks: tuple
    status: StreakStatus
    hours_remaining: float
    studied_today: bool
    loaded: bool = True

    def to_dict(self) -> dict:
        return {
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "lastStudyDate": format_timestamp(self.last_study_date),
            "streakStartDate": format_timestamp(self.streak_start_date),
            "pastStreaks": [memorial.to_dto() for memorial in self.past_streaks],
            "status": self.status,
            "hoursRemaining": round(self.hours_remaining, 2),
            "studiedToday": self.studied_today,
            "loaded": self.loaded,
        }
