"""Preference Gate: per-category email opt-outs.

Preferences are an opt-out model. A category is disabled only when the
profile's ``email_preferences`` holds an explicit ``False`` for it; a missing
key or a missing preferences object means enabled.
"""

from typing import Any, Mapping

from ..models import EmailType


# Category -> preference key. None marks system emails that cannot be disabled.
PREFERENCE_KEYS: dict[EmailType, str | None] = {
    EmailType.WELCOME: "welcome",
    EmailType.OUTCOME_DUE: "reminders",
    EmailType.OUTCOME_OVERDUE: "reminders",
    EmailType.STREAK_SAVE: "reminders",
    EmailType.WEEKLY_REVIEW: "weekly_review",
    EmailType.FIRST_OUTCOME: None,
    EmailType.PRO_MOMENT: None,
}


def is_email_enabled(
    preferences: Mapping[str, Any] | None,
    email_type: EmailType,
) -> bool:
    """Check whether a user accepts emails of ``email_type``."""
    key = PREFERENCE_KEYS.get(email_type)
    if key is None or not preferences:
        return True
    return preferences.get(key) is not False
