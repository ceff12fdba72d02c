"""Decision health endpoints, called by the CRUD layer after an outcome save."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from ..core.dependencies import CronAuthDep, SessionDep, SettingsDep
from ..schemas import HealthSnapshotResponse
from ..services.health_scorer import HealthScorer, UserNotFoundError

router = APIRouter(
    prefix="/decision-health", tags=["decision-health"], dependencies=[CronAuthDep]
)


@router.post("/{user_id}/recalculate", response_model=HealthSnapshotResponse)
async def recalculate_health(
    user_id: UUID,
    session: SessionDep,
    settings: SettingsDep,
):
    """Recompute the user's decision health and upsert today's snapshot."""
    scorer = HealthScorer(session, settings.reference_tz)
    try:
        snapshot = await scorer.recalculate(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return HealthSnapshotResponse.model_validate(snapshot)
