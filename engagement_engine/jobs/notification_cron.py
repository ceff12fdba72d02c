"""
Notification Cron Job: run one notification category from the command line.

For schedulers that run commands instead of calling the HTTP endpoints.

Typical cron schedules:
    0 9 * * *   engagement-cron outcome-due
    0 10 * * *  engagement-cron outcome-overdue
    0 18 * * *  engagement-cron streak-save
    0 9 * * 0   engagement-cron weekly-review
"""

import asyncio
import logging
import sys
import traceback
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, get_settings
from ..core.database import close_db, get_session_context
from ..models import EmailType
from ..services.mail import MailTransport, ResendTransport
from ..services.notification_jobs import NotificationJobRunner


logger = logging.getLogger(__name__)

SessionContext = Callable[[], AbstractAsyncContextManager[AsyncSession]]

JOBS = {
    "outcome-due": EmailType.OUTCOME_DUE,
    "outcome-overdue": EmailType.OUTCOME_OVERDUE,
    "streak-save": EmailType.STREAK_SAVE,
    "weekly-review": EmailType.WEEKLY_REVIEW,
}


# =============================================================================
# ALERTING
# =============================================================================


def slack_alert_payload(
    title: str,
    message: str,
    severity: str,
    details: dict | None,
    raised_at: datetime,
) -> dict:
    """Slack incoming-webhook body: one colored attachment of blocks."""
    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": title}},
        {"type": "section", "text": {"type": "mrkdwn", "text": message}},
    ]
    if details:
        details_text = "\n".join(f"• *{k}*: {v}" for k, v in details.items())
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": details_text}})
    blocks.append({
        "type": "context",
        "elements": [{
            "type": "mrkdwn",
            "text": f"Severity: *{severity.upper()}* | Time: {raised_at.isoformat()}",
        }],
    })

    color = "#dc2626" if severity == "critical" else "#f59e0b"
    return {"attachments": [{"color": color, "blocks": blocks}]}


def webhook_alert_payload(
    title: str,
    message: str,
    severity: str,
    details: dict | None,
    raised_at: datetime,
) -> dict:
    """Generic JSON body for PagerDuty, Opsgenie and similar receivers."""
    return {
        "title": title,
        "message": message,
        "severity": severity,
        "timestamp": raised_at.isoformat(),
        "source": "engagement-cron",
        "details": details or {},
    }


async def send_alert(
    title: str,
    message: str,
    severity: str = "error",
    details: dict | None = None,
    settings: Settings | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """
    Report a job failure.

    Always logs. Also posts to the Slack webhook and the generic webhook when
    their URLs are configured. A delivery failure is logged, never raised.
    """
    settings = settings or get_settings()

    log_message = f"[CRON ALERT] {title}: {message}"
    if details:
        log_message += f" | Details: {details}"
    if severity == "critical":
        logger.critical(log_message)
    else:
        logger.error(log_message)

    raised_at = datetime.now(timezone.utc)
    targets = []
    if settings.slack_alerts_webhook_url:
        targets.append((
            "Slack",
            settings.slack_alerts_webhook_url,
            slack_alert_payload(title, message, severity, details, raised_at),
        ))
    if settings.alert_webhook_url:
        targets.append((
            "webhook",
            settings.alert_webhook_url,
            webhook_alert_payload(title, message, severity, details, raised_at),
        ))
    if not targets:
        return

    async with httpx.AsyncClient(timeout=10, transport=http_transport) as client:
        for channel, url, payload in targets:
            try:
                response = await client.post(url, json=payload)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Failed to send {channel} alert: {e}")


# =============================================================================
# JOB
# =============================================================================


async def run_notification_job(
    email_type: EmailType,
    settings: Settings | None = None,
    transport: MailTransport | None = None,
    session_context: SessionContext = get_session_context,
) -> dict[str, Any]:
    """
    Run one notification category against the configured database.

    Returns:
        The run summary plus timing fields
    """
    settings = settings or get_settings()
    transport = transport or ResendTransport(settings)

    start_time = datetime.now(timezone.utc)
    logger.info(f"Starting {email_type.value} job at {start_time.isoformat()}")

    try:
        async with session_context() as session:
            runner = NotificationJobRunner(session, transport, settings)
            result = await runner.run(email_type)
    except Exception as e:
        await send_alert(
            title=f"{email_type.value} cron job failed",
            message="The notification job crashed before finishing.",
            severity="critical",
            details={
                "error": str(e),
                "traceback": traceback.format_exc()[-500:],
                "started_at": start_time.isoformat(),
            },
            settings=settings,
        )
        raise

    end_time = datetime.now(timezone.utc)
    results = {
        **result.to_dict(),
        "started_at": start_time.isoformat(),
        "completed_at": end_time.isoformat(),
        "duration_seconds": (end_time - start_time).total_seconds(),
    }
    logger.info(
        f"{email_type.value} job completed in {results['duration_seconds']:.2f}s: "
        f"{result.sent} sent, {result.skipped} skipped of {result.total}"
    )
    return results


async def _run_once(email_type: EmailType) -> dict[str, Any]:
    try:
        return await run_notification_job(email_type)
    finally:
        await close_db()


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for notification jobs."""
    import argparse

    parser = argparse.ArgumentParser(description="Run a notification cron job")
    parser.add_argument("job", choices=sorted(JOBS), help="Notification category to run")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        results = asyncio.run(_run_once(JOBS[args.job]))
    except Exception as e:
        logger.error(f"Job failed: {e}")
        return 1

    print(f"Job completed: {results}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
