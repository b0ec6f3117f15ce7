"""
JWT access/refresh token issuance, verification and rotation.

Access tokens are short-lived and stateless. Refresh tokens carry a ``jti``
that is recorded in the ``refresh_tokens`` table; rotating a refresh token
consumes its ``jti`` so a replayed token is rejected as revoked.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import logging
import uuid

import jwt
from sqlalchemy import update
from sqlalchemy.orm import Session

from .config import Settings
from .errors import AuthError, AuthErrorKind
from .models import RefreshToken

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS = "access"
REFRESH = "refresh"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _naive(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


@dataclass(frozen=True)
class Claims:
    user_id: str
    token_type: str
    issued_at: datetime
    expires_at: datetime
    email: Optional[str] = None
    jti: Optional[str] = None


class RefreshTokenStore:
    """Server-side record of issued refresh tokens, keyed by ``jti``."""

    def __init__(self, db: Session):
        self.db = db

    def record(self, jti: str, user_id: str, expires_at: datetime) -> None:
        self.db.add(RefreshToken(jti=jti, user_id=user_id, expires_at=_naive(expires_at), revoked=False))
        self.db.commit()

    def is_revoked(self, jti: str) -> bool:
        row = self.db.query(RefreshToken).filter(RefreshToken.jti == jti).first()
        return row is None or row.revoked

    def consume(self, jti: str) -> bool:
        """
        Mark ``jti`` revoked if it is still live.

        Returns True only for the single caller that flipped it, so two
        concurrent rotations of the same token cannot both succeed.
        """
        result = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.jti == jti, RefreshToken.revoked.is_(False))
            .values(revoked=True)
        )
        self.db.commit()
        return result.rowcount == 1

    def revoke(self, jti: str) -> None:
        self.consume(jti)

    def revoke_all(self, user_id: str) -> int:
        result = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
            .values(revoked=True)
        )
        self.db.commit()
        return result.rowcount


class TokenIssuer:
    def __init__(self, settings: Settings, clock: Callable[[], datetime] = None):
        self._access_secret = settings.JWT_SECRET
        self._refresh_secret = settings.JWT_REFRESH_SECRET
        self._issuer = settings.JWT_ISSUER
        self._access_ttl = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self._refresh_ttl = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self._clock = clock or _utcnow

    def issue(self, user_id: str, email: str = None, store: RefreshTokenStore = None) -> TokenPair:
        """Mint an access/refresh pair for ``user_id``, recording the refresh ``jti`` in ``store``."""
        now = self._clock()
        access_expires_at = now + self._access_ttl
        refresh_expires_at = now + self._refresh_ttl
        jti = uuid.uuid4().hex

        access_payload = {
            "sub": str(user_id),
            "type": ACCESS,
            "iss": self._issuer,
            "iat": now,
            "exp": access_expires_at,
        }
        if email:
            access_payload["email"] = email
        refresh_payload = {
            "sub": str(user_id),
            "type": REFRESH,
            "jti": jti,
            "iss": self._issuer,
            "iat": now,
            "exp": refresh_expires_at,
        }

        access_token = jwt.encode(access_payload, self._access_secret, algorithm=ALGORITHM)
        refresh_token = jwt.encode(refresh_payload, self._refresh_secret, algorithm=ALGORITHM)

        if store is not None:
            store.record(jti, str(user_id), refresh_expires_at)

        return TokenPair(access_token, refresh_token, access_expires_at, refresh_expires_at)

    def verify_access(self, token: str) -> Claims:
        return self._decode(token, self._access_secret, ACCESS)

    def verify_refresh(self, token: str, store: RefreshTokenStore = None) -> Claims:
        claims = self._decode(token, self._refresh_secret, REFRESH)
        if store is not None and store.is_revoked(claims.jti):
            raise AuthError(AuthErrorKind.REVOKED)
        return claims

    def rotate(self, refresh_token: str, store: RefreshTokenStore, email: str = None) -> TokenPair:
        """Exchange a live refresh token for a new pair; the presented token is consumed."""
        claims = self._decode(refresh_token, self._refresh_secret, REFRESH)
        if not store.consume(claims.jti):
            logger.warning("Rejected reuse of refresh token: user_id=%s jti=%s", claims.user_id, claims.jti)
            raise AuthError(AuthErrorKind.REVOKED)
        return self.issue(claims.user_id, email=email, store=store)

    def revoke(self, refresh_token: str, store: RefreshTokenStore) -> Claims:
        claims = self._decode(refresh_token, self._refresh_secret, REFRESH)
        store.revoke(claims.jti)
        return claims

    def _decode(self, token: str, secret: str, expected_type: str) -> Claims:
        if not token or not isinstance(token, str):
            raise AuthError(AuthErrorKind.MALFORMED)
        required = ["sub", "iat", "exp", "type"] + (["jti"] if expected_type == REFRESH else [])
        try:
            # Expiry is checked against our own clock below
            payload = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={"verify_exp": False, "verify_iat": False, "require": required},
            )
        except jwt.InvalidSignatureError as exc:
            raise AuthError(AuthErrorKind.SIGNATURE_INVALID) from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError(AuthErrorKind.MALFORMED) from exc

        if payload.get("type") != expected_type:
            raise AuthError(AuthErrorKind.MALFORMED, f"Expected a {expected_type} token")

        try:
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError) as exc:
            raise AuthError(AuthErrorKind.MALFORMED) from exc

        if self._clock() >= expires_at:
            raise AuthError(AuthErrorKind.EXPIRED)

        return Claims(
            user_id=str(payload["sub"]),
            token_type=payload["type"],
            issued_at=issued_at,
            expires_at=expires_at,
            email=payload.get("email"),
            jti=payload.get("jti"),
        )
