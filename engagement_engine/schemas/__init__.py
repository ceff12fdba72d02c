"""Engagement API Schemas.

Schemas are organized by domain:
- base: Base model configuration and error responses
- engagement: Cron runs, health snapshots, event-driven emails
"""

from .base import (
    EngagementBaseModel,
    ErrorDetail,
    ErrorResponse,
    TimestampMixin,
)
from .engagement import (
    CronRunResponse,
    HealthSnapshotResponse,
    NotificationSendResponse,
    NotificationSendResult,
)

__all__ = [
    # Base
    "EngagementBaseModel",
    "TimestampMixin",
    "ErrorDetail",
    "ErrorResponse",
    # Engagement
    "CronRunResponse",
    "HealthSnapshotResponse",
    "NotificationSendResponse",
    "NotificationSendResult",
]
