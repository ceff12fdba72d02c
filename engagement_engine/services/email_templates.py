"""
Email templates for engagement notifications.

Every template returns ``(subject, html)``. Bodies share one layout with a
footer linking to the notification preferences page.
"""

from dataclasses import dataclass, field
from html import escape
from typing import Any, Callable

from ..models import EmailType


class UnknownEmailTypeError(Exception):
    """Raised when no template exists for an email type."""
    pass


@dataclass
class EmailTemplateData:
    """Values available to every template."""
    app_url: str
    display_name: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return escape(self.display_name or "there")

    @property
    def preferences_url(self) -> str:
        return f"{self.app_url}/app/settings/email-preferences"


def _cta(url: str, label: str) -> str:
    return (
        f'<a href="{escape(url)}" style="display:inline-block;background:#4C7DFF;'
        f'color:#ffffff;text-decoration:none;font-weight:700;padding:12px 16px;'
        f'border-radius:10px;">{escape(label)}</a>'
    )


def _base_layout(content: str, data: EmailTemplateData) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="margin:0;padding:0;background:#0B1220;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;color:#E6ECFF;">
    <div style="max-width:560px;margin:0 auto;padding:32px 24px;">
        {content}
        <p style="margin:32px 0 0;font-size:12px;line-height:1.6;opacity:0.6;">
            You are receiving this because you use Decision Journal.
            <a href="{escape(data.preferences_url)}" style="color:#8DB2FF;">Notification preferences</a>
        </p>
    </div>
</body>
</html>"""


def _paragraph(text: str) -> str:
    return f'<p style="margin:0 0 16px;font-size:15px;line-height:1.7;">{text}</p>'


# =============================================================================
# TEMPLATES
# =============================================================================


def render_welcome(data: EmailTemplateData) -> tuple[str, str]:
    content = f"""
        <h1 style="margin:0 0 12px;font-size:24px;">Welcome, {data.name}.</h1>
        {_paragraph("Good judgment is built one decision at a time. Log a decision, pick an option, and come back to record what happened.")}
        {_paragraph("The loop is the point: decide, wait, reflect, recalibrate.")}
        {_cta(f"{data.app_url}/app/new", "Log your first decision")}
    """
    return "Welcome to Decision Journal", _base_layout(content, data)


def render_outcome_due(data: EmailTemplateData) -> tuple[str, str]:
    title = escape(str(data.context.get("decision_title") or "your decision"))
    decision_id = data.context.get("decision_id", "")
    content = f"""
        <h1 style="margin:0 0 12px;font-size:22px;">How did it turn out?</h1>
        {_paragraph(f"You decided on <strong>{title}</strong>. Record the outcome while it is still fresh.")}
        {_cta(f"{data.app_url}/app/decision/{decision_id}?logOutcome=true", "Log the outcome")}
    """
    return "How did your decision turn out?", _base_layout(content, data)


def render_outcome_overdue(data: EmailTemplateData) -> tuple[str, str]:
    title = escape(str(data.context.get("decision_title") or "your decision"))
    decision_id = data.context.get("decision_id", "")
    days = data.context.get("days_since_decided")
    since = f" {days} days ago" if days is not None else ""
    content = f"""
        <h1 style="margin:0 0 12px;font-size:22px;">You're leaving learning on the table.</h1>
        {_paragraph(f"You decided on <strong>{title}</strong>{since} and have not logged an outcome yet.")}
        {_paragraph("Closing the loop is how your calibration improves.")}
        {_cta(f"{data.app_url}/app/decision/{decision_id}?logOutcome=true", "Close the loop")}
    """
    return "An outcome is overdue", _base_layout(content, data)


def render_streak_save(data: EmailTemplateData) -> tuple[str, str]:
    streak = int(data.context.get("streak", 0))
    days = "day" if streak == 1 else "days"
    content = f"""
        <h1 style="margin:0 0 12px;font-size:22px;">Save the streak.</h1>
        {_paragraph(f"You are on a {streak}-day streak. One check-in today keeps it alive.")}
        {_cta(f"{data.app_url}/app", "Check in now")}
    """
    return f"Your {streak} {days} streak ends today", _base_layout(content, data)


def render_weekly_review(data: EmailTemplateData) -> tuple[str, str]:
    ctx = data.context
    count = int(ctx.get("decisions_this_week", 0))
    rows = [
        f"Decisions logged this week: <strong>{count}</strong>",
    ]
    if "health_score" in ctx:
        trend = {"up": "&uarr;", "down": "&darr;"}.get(ctx.get("trend"), "")
        rows.append(
            f"Decision health: <strong>{ctx['health_score']}</strong> {trend}".rstrip()
        )
        rows.append(
            f"Calibration gap: <strong>{ctx.get('avg_calibration_gap', 0):.0f}</strong> points"
        )
        rows.append(
            f"Loops closed: <strong>{ctx.get('completion_rate', 0):.0f}%</strong>"
        )
        gap = ctx.get("avg_calibration_gap", 0)
        if gap > 20:
            challenge = "Before your next decision, write down what would change your mind."
        elif ctx.get("completion_rate", 0) < 50:
            challenge = "Pick one open decision and log its outcome this week."
        else:
            challenge = "Try logging a small decision every day this week."
    else:
        challenge = "Log an outcome this week to unlock your decision health score."

    items = "".join(f'<li style="margin:0 0 8px;">{row}</li>' for row in rows)
    content = f"""
        <h1 style="margin:0 0 12px;font-size:22px;">Your Weekly Review</h1>
        <ul style="margin:0 0 16px;padding-left:20px;font-size:15px;line-height:1.7;">{items}</ul>
        {_paragraph(f"<strong>This week's challenge:</strong> {escape(challenge)}")}
        {_cta(f"{data.app_url}/app/review", "Open your review")}
    """
    return "Your weekly decision review", _base_layout(content, data)


def render_first_outcome(data: EmailTemplateData) -> tuple[str, str]:
    content = f"""
        <h1 style="margin:0 0 12px;font-size:22px;">First loop closed</h1>
        {_paragraph(f"Nice work, {data.name}. You logged your first outcome, which is the step most people skip.")}
        {_paragraph("Every closed loop sharpens your calibration.")}
        {_cta(f"{data.app_url}/app/insights", "See your insights")}
    """
    return "You closed your first loop", _base_layout(content, data)


def render_pro_moment(data: EmailTemplateData) -> tuple[str, str]:
    content = f"""
        <h1 style="margin:0 0 12px;font-size:22px;">Now it gets interesting.</h1>
        {_paragraph("Three outcomes in, patterns start to show: where you are overconfident, and where you undersell yourself.")}
        {_paragraph("Pro unlocks the full calibration breakdown by category.")}
        {_cta(f"{data.app_url}/upgrade", "See what Pro shows")}
    """
    return "Your decision patterns are emerging", _base_layout(content, data)


TEMPLATES: dict[EmailType, Callable[[EmailTemplateData], tuple[str, str]]] = {
    EmailType.WELCOME: render_welcome,
    EmailType.OUTCOME_DUE: render_outcome_due,
    EmailType.OUTCOME_OVERDUE: render_outcome_overdue,
    EmailType.STREAK_SAVE: render_streak_save,
    EmailType.WEEKLY_REVIEW: render_weekly_review,
    EmailType.FIRST_OUTCOME: render_first_outcome,
    EmailType.PRO_MOMENT: render_pro_moment,
}


def render_email(email_type: EmailType, data: EmailTemplateData) -> tuple[str, str]:
    """Render ``(subject, html)`` for an email type."""
    renderer = TEMPLATES.get(email_type)
    if renderer is None:
        raise UnknownEmailTypeError(f"No template for email type {email_type!r}")
    return renderer(data)
