"""
Outgoing user notifications.

Delivery is owned by the notification service; this side only records what
would be sent. In development environments the one-time code is logged so
flows can be exercised without a mail server.
"""
import logging
from typing import Optional

from .config import Settings

logger = logging.getLogger(__name__)

TEMPLATES = {
    "welcome-verification": "Welcome to Talaty - Verify Your Email",
    "email-verification": "Verify Your Email - Talaty",
    "password-reset": "Reset Your Password - Talaty",
}


class Notifier:
    def __init__(self, settings: Settings):
        self.settings = settings

    def send_email(self, to: str, template: str, code: Optional[str] = None, expires_in: str = "") -> None:
        subject = TEMPLATES[template]
        logger.info("Email queued: template=%s to=%s subject=%r", template, to, subject)
        if code and self.settings.is_development:
            logger.info("[DEV] %s code for %s: %s (expires in %s)", template, to, code, expires_in)

    def password_reset_url(self, token: str) -> str:
        return f"{self.settings.FRONTEND_URL}/reset-password?token={token}"
