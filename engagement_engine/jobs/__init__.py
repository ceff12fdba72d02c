"""
Background Jobs for the engagement engine.

This module contains scheduled jobs:
- notification_cron: command-line runner for notification categories
"""

from .notification_cron import run_notification_job, send_alert

__all__ = ["run_notification_job", "send_alert"]
