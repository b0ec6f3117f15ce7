from typing import Optional

from fastapi import Depends, Header, Request, status
from sqlalchemy.orm import Session

from .auth import PasswordHasher
from .cipher import SensitiveDataCipher
from .config import Settings
from .db import get_db
from .errors import RequestValidationFailed
from .models import User
from .notifications import Notifier
from .responses import api_error
from .tokens import RefreshTokenStore, TokenIssuer
from .validation import validate


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_hasher(request: Request) -> PasswordHasher:
    return request.app.state.hasher


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.tokens


def get_cipher(request: Request) -> SensitiveDataCipher:
    return request.app.state.cipher


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_token_store(db: Session = Depends(get_db)) -> RefreshTokenStore:
    return RefreshTokenStore(db)


def validated(operation: str):
    """Dependency that validates the JSON body for ``operation`` and returns the normalized model."""

    async def dependency(request: Request):
        body = await request.body()
        if not body.strip():
            data = {}
        else:
            try:
                data = await request.json()
            except ValueError:
                data = None
        result = validate(operation, data)
        if not result.ok:
            raise RequestValidationFailed(result.errors)
        return result.value

    return dependency


def get_current_user(
    db: Session = Depends(get_db),
    tokens: TokenIssuer = Depends(get_token_issuer),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise api_error(status.HTTP_401_UNAUTHORIZED, "Access token required", "MISSING_TOKEN")
    token = authorization.split(" ", 1)[1].strip()

    # AuthError propagates to the app-level handler
    claims = tokens.verify_access(token)

    user = db.query(User).filter(User.id == claims.user_id).first()
    if not user:
        raise api_error(status.HTTP_401_UNAUTHORIZED, "User not found", "USER_NOT_FOUND")
    if not user.is_active:
        raise api_error(status.HTTP_403_FORBIDDEN, "Account is disabled", "ACCOUNT_DISABLED")
    return user

