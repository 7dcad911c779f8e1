"""
auth/notifier.py -- Hand-off point for password-reset tokens.

The auth service only mints reset tokens; delivering them (email, SMS, a
ticket queue) belongs to whoever implements ResetNotifier. The default
LoggingResetNotifier writes an audit line and, at DEBUG level only, the raw
token, so a local developer can complete the flow without a mail server.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("gatekeeper.auth.notifier")


class ResetNotifier(Protocol):
    def send_reset(self, email: str, token: str) -> None: ...


class LoggingResetNotifier:
    """ResetNotifier that logs instead of sending mail."""

    def send_reset(self, email: str, token: str) -> None:
        logger.info("Password reset issued for %s", _mask_email(email))
        logger.debug("Password reset token for %s: %s", email, token)


def _mask_email(email: str) -> str:
    """Return 'a***@example.com' -- enough to correlate in logs, not to harvest."""
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"
