"""
Streak blob endpoints.

The server stores each user's streak as an opaque JSON document; clients
(and HttpStreakGateway) read and overwrite it whole.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from riven.core.auth import get_current_user_id
from riven.core.database import get_db
from riven.features.streaks.gateway import read_streak_blob, write_streak_blob

logger = logging.getLogger("riven")

router = APIRouter()


class StreakUpdate(BaseModel):
    streakData: Dict[str, Any] = Field(default_factory=dict)


@router.get("/streak")
def get_streak(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return read_streak_blob(db, user_id) or {}


@router.put("/streak")
def update_streak(
    body: StreakUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        write_streak_blob(db, user_id, body.streakData)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("streak.blob_saved", extra={"user_id": user_id})
    return {"message": "Streak data saved"}
