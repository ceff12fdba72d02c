"""Schemas for cron runs, health snapshots and event-driven emails."""

from datetime import date
from uuid import UUID

from pydantic import Field

from .base import EngagementBaseModel, TimestampMixin


class CronRunResponse(EngagementBaseModel):
    """Summary of one notification job run."""

    message: str
    total: int = Field(ge=0, description="Number of eligible candidates")
    sent: int = Field(ge=0)
    skipped: int = Field(ge=0)


class HealthSnapshotResponse(EngagementBaseModel, TimestampMixin):
    """A persisted decision health reading."""

    id: UUID
    user_id: UUID
    snapshot_date: date
    health_score: int = Field(ge=0, le=100)
    win_rate: float
    avg_calibration_gap: float
    completion_rate: float
    streak_length: int


class NotificationSendResult(EngagementBaseModel):
    email_type: str
    status: str = Field(description="sent, duplicate, failed or skipped")
    reason: str | None = None


class NotificationSendResponse(EngagementBaseModel):
    """Result of an event-driven email trigger."""

    user_id: UUID
    results: list[NotificationSendResult]
