from passlib.context import CryptContext
from datetime import datetime, timedelta
from typing import Optional
import logging
import secrets
import string

from sqlalchemy.orm import Session

from .config import Settings

logger = logging.getLogger(__name__)


class PasswordHasher:
    """
    Salted, slow, one-way password hashing.

    pbkdf2_sha256 avoids external bcrypt backend issues in some environments;
    the round count is fixed per deployment through PASSWORD_HASH_ROUNDS.
    Comparison is constant-time inside passlib.
    """

    def __init__(self, settings: Settings):
        self._context = CryptContext(
            schemes=["pbkdf2_sha256"],
            deprecated="auto",
            pbkdf2_sha256__default_rounds=settings.PASSWORD_HASH_ROUNDS,
        )

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, digest: Optional[str]) -> bool:
        """Return True if ``password`` matches ``digest``; malformed digests never match."""
        if not digest:
            return False
        try:
            return self._context.verify(password, digest)
        except (ValueError, TypeError):
            logger.warning("Password digest could not be identified; treating as mismatch")
            return False

    def dummy_verify(self) -> None:
        """Spend the same time as a real verification, for unknown accounts."""
        self._context.dummy_verify()


def generate_otp(length: int = 6) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(length))


def check_login_rate_limit(user_id: str, db: Session, settings: Settings) -> tuple[bool, int]:
    """
    Check if a user has exceeded the failed login limit.

    Args:
        user_id: The user's ID
        db: Database session
        settings: Service settings (attempt limit and window)

    Returns:
        Tuple of (is_rate_limited, minutes_until_reset)
    """
    from .models import AuthEvent

    window = timedelta(minutes=settings.LOGIN_RATE_LIMIT_WINDOW_MINUTES)
    since = datetime.utcnow() - window

    # Only failures after the most recent success count against the user
    last_success = db.query(AuthEvent.timestamp).filter(
        AuthEvent.user_id == user_id,
        AuthEvent.event_type == "login_success",
        AuthEvent.timestamp > since
    ).order_by(AuthEvent.timestamp.desc()).first()
    if last_success is not None:
        since = last_success[0]

    failed_attempts = db.query(AuthEvent).filter(
        AuthEvent.user_id == user_id,
        AuthEvent.event_type == "login_failure",
        AuthEvent.timestamp > since
    ).order_by(AuthEvent.timestamp.asc()).all()

    if len(failed_attempts) >= settings.LOGIN_MAX_FAILED_ATTEMPTS:
        reset_time = failed_attempts[0].timestamp + window
        minutes_until_reset = max(0, int((reset_time - datetime.utcnow()).total_seconds() / 60) + 1)

        logger.warning(
            "Login rate limit exceeded: user_id=%s failed_attempts=%s minutes_until_reset=%s",
            user_id, len(failed_attempts), minutes_until_reset
        )
        return True, minutes_until_reset

    return False, 0
