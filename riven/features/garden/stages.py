"""
Garden stage table and lookup.

A streak of N days maps to the highest stage whose `min_days <= N`. Stage 0
starts at zero days, so every non-negative streak has exactly one stage.
Thresholds are product data; change them here and nowhere else.
"""

from __future__ import annotations

from bisect import bisect_right
from functools import lru_cache
from typing import Optional, Sequence, Tuple

from riven.core.errors import ValidationError
from riven.models.garden import GardenStage

STAGE_COUNT = 11

_STAGE_ROWS = (
    (0, "Barren Plot", "A small patch of dirt waiting for seeds", "🏜️"),
    (1, "Sprouting Seeds", "Tiny green sprouts peek through the soil", "🌱"),
    (3, "Young Seedlings", "Small plants reaching for the sun", "🌿"),
    (7, "Growing Garden", "A variety of young plants taking shape", "🪴"),
    (14, "Blooming Patch", "Colorful flowers begin to bloom", "🌳"),
    (30, "Flourishing Garden", "A lush garden full of life", "🌸"),
    (60, "Thriving Oasis", "A beautiful sanctuary of nature", "🌺"),
    (100, "Enchanted Grove", "A magical garden with rare flora", "🌴"),
    (200, "Paradise Garden", "A slice of paradise on earth", "🍀"),
    (365, "Eternal Eden", "The legendary Garden of Eden itself", "🌲"),
    (1000, "Celestial Eden", "A garden touched by the divine", "✨"),
)


def build_stage_table(rows: Sequence[tuple]) -> Tuple[GardenStage, ...]:
    """Turn (min_days, name, description, icon) rows into a validated table."""
    stages = tuple(
        GardenStage(index=i, min_days=row[0], name=row[1], description=row[2], icon=row[3] if len(row) > 3 else "")
        for i, row in enumerate(rows)
    )
    if len(stages) != STAGE_COUNT:
        raise ValueError(f"garden needs {STAGE_COUNT} stages, got {len(stages)}")
    if stages[0].min_days != 0:
        raise ValueError("first garden stage must start at 0 days")
    for prev, cur in zip(stages, stages[1:]):
        if cur.min_days <= prev.min_days:
            raise ValueError(
                f"garden thresholds must strictly increase: {prev.name!r}={prev.min_days}, {cur.name!r}={cur.min_days}"
            )
    return stages


GARDEN_STAGES = build_stage_table(_STAGE_ROWS)
_THRESHOLDS = tuple(stage.min_days for stage in GARDEN_STAGES)


def _check_streak(streak) -> int:
    if isinstance(streak, bool) or not isinstance(streak, int):
        raise ValidationError(f"streak must be an integer, got {type(streak).__name__}")
    if streak < 0:
        raise ValidationError("streak must be non-negative")
    return streak


@lru_cache(maxsize=1024)
def _index_for(streak: int) -> int:
    return bisect_right(_THRESHOLDS, streak) - 1


def stage_index(streak: int) -> int:
    """Index in [0, 10] of the stage a streak of `streak` days has reached."""
    return _index_for(_check_streak(streak))


def stage_of(streak: int) -> GardenStage:
    return GARDEN_STAGES[stage_index(streak)]


def next_stage(streak: int) -> Optional[GardenStage]:
    """The stage after the current one, or None at the final stage."""
    idx = stage_index(streak)
    if idx + 1 >= len(GARDEN_STAGES):
        return None
    return GARDEN_STAGES[idx + 1]


def days_until_next_stage(streak: int) -> Optional[int]:
    upcoming = next_stage(streak)
    if upcoming is None:
        return None
    return upcoming.min_days - streak


def describe(streak: int) -> dict:
    """Stage payload used by the garden and streak endpoints."""
    stage = stage_of(streak)
    upcoming = next_stage(streak)
    return {
        "streak": streak,
        "stage": stage.to_dict(),
        "nextStage": upcoming.to_dict() if upcoming else None,
        "daysUntilNextStage": days_until_next_stage(streak),
    }
