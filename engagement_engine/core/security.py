"""Security utilities: shared-secret verification for internal triggers."""

import hmac
import logging


logger = logging.getLogger(__name__)


def verify_shared_secret(provided: str | None, expected: str | None) -> bool:
    """
    Constant-time comparison of a presented secret against the configured one.

    Fails closed: with no configured secret nothing is accepted.
    """
    if not expected:
        logger.error("CRON_SECRET is not configured, rejecting trigger")
        return False
    if not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())
