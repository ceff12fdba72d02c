"""Engagement and health services."""

from .activity import ActivityAggregator
from .dispatcher import Dispatcher, DispatchOutcome, Recipient
from .eligibility import Candidate, CandidateFetchError, EligibilityFilter
from .email_templates import UnknownEmailTypeError, render_email
from .health_scorer import (
    DecisionHealth,
    HealthScorer,
    HealthTrend,
    UserNotFoundError,
    compute_decision_health,
    health_trend,
)
from .mail import MailTransport, ResendTransport, get_mail_transport
from .milestones import EngagementEmails, MilestoneResult
from .notification_jobs import JobResult, NotificationJobRunner
from .preferences import PREFERENCE_KEYS, is_email_enabled
from .send_log import SendClaim, SendLogGuard
from .streak import calculate_streak, hours_since_last_activity, live_streak

__all__ = [
    # Activity and streaks
    "ActivityAggregator",
    "calculate_streak",
    "live_streak",
    "hours_since_last_activity",
    # Health
    "DecisionHealth",
    "HealthScorer",
    "HealthTrend",
    "UserNotFoundError",
    "compute_decision_health",
    "health_trend",
    # Eligibility and gating
    "Candidate",
    "CandidateFetchError",
    "EligibilityFilter",
    "PREFERENCE_KEYS",
    "is_email_enabled",
    # Sending
    "SendClaim",
    "SendLogGuard",
    "Dispatcher",
    "DispatchOutcome",
    "Recipient",
    "MailTransport",
    "ResendTransport",
    "get_mail_transport",
    "UnknownEmailTypeError",
    "render_email",
    # Jobs
    "JobResult",
    "NotificationJobRunner",
    "EngagementEmails",
    "MilestoneResult",
]
