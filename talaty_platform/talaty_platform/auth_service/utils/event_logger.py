"""
Event logger utility for authentication events.
"""
from datetime import datetime
from typing import Optional
from fastapi import Request
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import sys
import logging
import os

from ..config import Settings
from ..models import AuthEvent, User

logger = logging.getLogger(__name__)


ALLOWED_EVENT_TYPES = {
    "register",
    "login_success",
    "login_failure",
    "token_refresh",
    "logout",
    "email_verified",
    "password_reset",
}

SENSITIVE_FIELDS = ("password", "token", "secret", "key", "otp")


def configure_logging(settings: Settings) -> None:
    """Configure stdout logging, plus an auth events file when LOG_DIR is set."""
    handlers = [logging.StreamHandler(sys.stdout)]

    # Continue without the file handler if the directory cannot be created
    if settings.LOG_DIR:
        try:
            os.makedirs(settings.LOG_DIR, exist_ok=True)
            handlers.append(logging.FileHandler(os.path.join(settings.LOG_DIR, "auth_events.log")))
        except OSError as e:
            print(f"WARNING: Could not set up file logging: {e}", file=sys.stderr)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


def sanitize_for_logging(data: Optional[dict]) -> dict:
    """Return a copy of ``data`` with secret-looking fields redacted."""
    sanitized = {}
    for field, value in (data or {}).items():
        if any(marker in field.lower() for marker in SENSITIVE_FIELDS):
            sanitized[field] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[field] = sanitize_for_logging(value)
        else:
            sanitized[field] = value
    return sanitized


def client_ip(request: Request) -> Optional[str]:
    if request.client and request.client.host:
        return request.client.host
    # X-Forwarded-For can contain multiple IPs, take the first one
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return None


def log_auth_event(
    event_type: str,
    user: User,
    request: Request,
    db: Session,
    metadata: dict = None
) -> None:
    """
    Log an authentication event to the database.

    Args:
        event_type: One of ALLOWED_EVENT_TYPES
        user: User object from database
        request: FastAPI Request object
        db: Database session
        metadata: Optional dictionary of additional context (sanitized before storage)

    Raises:
        ValueError: If event_type is invalid
    """
    if event_type not in ALLOWED_EVENT_TYPES:
        raise ValueError(
            f"Invalid event_type '{event_type}'. Must be one of: {', '.join(sorted(ALLOWED_EVENT_TYPES))}"
        )

    ip_address = client_ip(request)
    user_agent = request.headers.get("user-agent")

    try:
        auth_event = AuthEvent(
            user_id=user.id,
            email=user.email,
            event_type=event_type,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=datetime.utcnow(),
            event_metadata=sanitize_for_logging(metadata)
        )

        db.add(auth_event)
        db.commit()

        logger.info(
            "AUTH %s user_id=%s email=%s ip=%s",
            event_type, user.id, user.email, ip_address
        )

    except SQLAlchemyError as e:
        # Logging failure should not break the auth flow
        logger.warning(
            "Failed to log auth event - user_id=%s, event_type=%s, error=%s",
            user.id, event_type, e
        )
        db.rollback()
