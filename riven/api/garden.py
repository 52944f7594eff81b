from fastapi import APIRouter, Query

from riven.features.garden.stages import GARDEN_STAGES, describe

router = APIRouter()


@router.get("/v1/garden/stages")
def list_stages():
    return {"stages": [stage.to_dict() for stage in GARDEN_STAGES]}


@router.get("/v1/garden/stage")
def get_stage(streak: int = Query(..., description="Streak length in days")):
    """Stage reached by a streak, plus the next milestone."""
    return describe(streak)
