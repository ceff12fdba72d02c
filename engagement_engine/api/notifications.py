"""Event-driven email triggers: welcome and outcome milestones."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from ..core.dependencies import (
    CronAuthDep,
    MailTransportDep,
    SessionDep,
    SettingsDep,
)
from ..schemas import NotificationSendResponse, NotificationSendResult
from ..services.health_scorer import UserNotFoundError
from ..services.milestones import EngagementEmails, MilestoneResult

router = APIRouter(
    prefix="/notifications", tags=["notifications"], dependencies=[CronAuthDep]
)


def _to_response(user_id: UUID, results: list[MilestoneResult]) -> NotificationSendResponse:
    return NotificationSendResponse(
        user_id=user_id,
        results=[
            NotificationSendResult(
                email_type=r.email_type.value,
                status=r.status,
                reason=r.reason,
            )
            for r in results
        ],
    )


@router.post("/{user_id}/welcome", response_model=NotificationSendResponse)
async def send_welcome(
    user_id: UUID,
    session: SessionDep,
    transport: MailTransportDep,
    settings: SettingsDep,
):
    """Send the welcome email (once per 30 days)."""
    emails = EngagementEmails(session, transport, settings)
    try:
        result = await emails.send_welcome(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _to_response(user_id, [result])


@router.post("/{user_id}/outcome-milestones", response_model=NotificationSendResponse)
async def outcome_milestones(
    user_id: UUID,
    session: SessionDep,
    transport: MailTransportDep,
    settings: SettingsDep,
):
    """Send the first-outcome or pro-moment email if a milestone was reached."""
    emails = EngagementEmails(session, transport, settings)
    try:
        results = await emails.on_outcome_recorded(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _to_response(user_id, results)
