"""Cron trigger endpoints.

Each endpoint runs one notification category as a single batch. Callers
authenticate with ``Authorization: Bearer <CRON_SECRET>``.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from ..core.dependencies import (
    CronAuthDep,
    MailTransportDep,
    SessionDep,
    SettingsDep,
)
from ..models import EmailType
from ..schemas import CronRunResponse
from ..services.eligibility import CandidateFetchError
from ..services.notification_jobs import NotificationJobRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[CronAuthDep])


async def _run_job(
    email_type: EmailType,
    session: SessionDep,
    transport: MailTransportDep,
    settings: SettingsDep,
) -> CronRunResponse:
    runner = NotificationJobRunner(session, transport, settings)
    try:
        result = await runner.run(email_type)
    except CandidateFetchError as e:
        logger.error(f"{email_type.value} cron aborted: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch {email_type.value} candidates",
        )
    return CronRunResponse(**result.to_dict())


# =============================================================================
# ENDPOINTS
# =============================================================================


@router.get("/outcome-due", response_model=CronRunResponse)
async def outcome_due(
    session: SessionDep,
    transport: MailTransportDep,
    settings: SettingsDep,
):
    """Remind users about decisions made this week that have no outcome yet."""
    return await _run_job(EmailType.OUTCOME_DUE, session, transport, settings)


@router.get("/outcome-overdue", response_model=CronRunResponse)
async def outcome_overdue(
    session: SessionDep,
    transport: MailTransportDep,
    settings: SettingsDep,
):
    """Nudge users about decisions 7-90 days old that have no outcome."""
    return await _run_job(EmailType.OUTCOME_OVERDUE, session, transport, settings)


@router.get("/streak-save", response_model=CronRunResponse)
async def streak_save(
    session: SessionDep,
    transport: MailTransportDep,
    settings: SettingsDep,
):
    """Warn users whose streak ends unless they are active today."""
    return await _run_job(EmailType.STREAK_SAVE, session, transport, settings)


@router.get("/weekly-review", response_model=CronRunResponse)
async def weekly_review(
    session: SessionDep,
    transport: MailTransportDep,
    settings: SettingsDep,
):
    """Send the weekly review to users who logged decisions this week."""
    return await _run_job(EmailType.WEEKLY_REVIEW, session, transport, settings)
