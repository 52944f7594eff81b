from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from riven.core.auth import get_bearer_token, get_current_user_id
from riven.features.garden.stages import describe
from riven.features.streaks.engine import StreakEngine
from riven.features.streaks.service import StreakRegistry, get_streak_registry

router = APIRouter()


def _payload(engine: StreakEngine) -> dict:
    snapshot = engine.get_snapshot()
    return {"streak": snapshot.to_dict(), "garden": describe(snapshot.current_streak)}


@router.get("/v1/streaks/current")
async def get_current_streak(
    user_id: str = Depends(get_current_user_id),
    token: Optional[str] = Depends(get_bearer_token),
    registry: StreakRegistry = Depends(get_streak_registry),
):
    """Return the current streak snapshot and garden stage for the caller."""
    engine = await registry.engine_for(user_id, token=token)
    return _payload(engine)


@router.post("/v1/streaks/study")
async def record_study_event(
    user_id: str = Depends(get_current_user_id),
    token: Optional[str] = Depends(get_bearer_token),
    registry: StreakRegistry = Depends(get_streak_registry),
):
    engine = await registry.engine_for(user_id, token=token)
    engine.record_study_event()
    return _payload(engine)


@router.post("/v1/streaks/check")
async def check_streak(
    user_id: str = Depends(get_current_user_id),
    token: Optional[str] = Depends(get_bearer_token),
    registry: StreakRegistry = Depends(get_streak_registry),
):
    engine = await registry.engine_for(user_id, token=token)
    broken = engine.check_and_break_if_lapsed()
    return {"broken": broken, **_payload(engine)}


@router.post("/v1/streaks/reset")
async def reset_streak(
    user_id: str = Depends(get_current_user_id),
    token: Optional[str] = Depends(get_bearer_token),
    registry: StreakRegistry = Depends(get_streak_registry),
):
    engine = await registry.engine_for(user_id, token=token)
    engine.reset()
    return _payload(engine)


@router.post("/v1/streaks/logout")
async def end_streak_session(
    user_id: str = Depends(get_current_user_id),
    registry: StreakRegistry = Depends(get_streak_registry),
):
    """Drop the caller's in-memory streak session. Stored data is kept."""
    ended = await registry.end_session(user_id)
    return {"ended": ended}
