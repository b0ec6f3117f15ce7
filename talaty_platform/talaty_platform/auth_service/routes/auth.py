"""
Auth Router - registration, login, token rotation, email verification and
password reset.

Handlers are plain ``def`` functions so FastAPI runs them on its worker
thread pool; password hashing never blocks the event loop.
"""
from datetime import datetime, timedelta
import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import PasswordHasher, check_login_rate_limit, generate_otp
from ..cipher import SensitiveDataCipher, generate_hash, generate_secure_token
from ..config import Settings
from ..db import get_db
from ..dependencies import (
    get_cipher,
    get_current_user,
    get_hasher,
    get_notifier,
    get_settings,
    get_token_issuer,
    get_token_store,
    validated,
)
from ..errors import AuthError
from ..models import OTPVerification, User
from ..notifications import Notifier
from ..responses import api_error, success_response
from ..schemas import (
    LoginRequest,
    LogoutRequest,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshTokenRequest,
    RegisterRequest,
    TokensResponse,
    UpdateProfileRequest,
    UserResponse,
    VerifyEmailRequest,
)
from ..tokens import RefreshTokenStore, TokenIssuer, TokenPair
from ..utils.event_logger import log_auth_event

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset link has been sent"


def serialize_user(user: User, cipher: SensitiveDataCipher) -> dict:
    data = UserResponse.model_validate(user)
    if user.registration_number_encrypted and user.registration_number_iv:
        data.registration_number = cipher.decrypt(
            user.registration_number_encrypted, user.registration_number_iv
        )
    return data.model_dump(by_alias=True, mode="json")


def serialize_tokens(pair: TokenPair) -> dict:
    return TokensResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_at=pair.access_expires_at,
    ).model_dump(by_alias=True, mode="json")


def _issue_otp(db: Session, user: User, purpose: str, code: str, lifetime: timedelta) -> None:
    # Only the latest code for a purpose stays usable
    db.query(OTPVerification).filter(
        OTPVerification.user_id == user.id,
        OTPVerification.purpose == purpose,
        OTPVerification.is_used.is_(False)
    ).update({OTPVerification.is_used: True}, synchronize_session=False)
    db.add(OTPVerification(
        user_id=user.id,
        code_hash=generate_hash(code),
        channel="EMAIL",
        purpose=purpose,
        expires_at=datetime.utcnow() + lifetime,
        is_used=False
    ))
    db.commit()


def _find_otp(db: Session, purpose: str, code: str, user_id: str = None):
    query = db.query(OTPVerification).filter(
        OTPVerification.code_hash == generate_hash(code),
        OTPVerification.purpose == purpose,
        OTPVerification.is_used.is_(False)
    )
    if user_id is not None:
        query = query.filter(OTPVerification.user_id == user_id)
    return query.first()


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    payload: RegisterRequest = Depends(validated("register")),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    hasher: PasswordHasher = Depends(get_hasher),
    tokens: TokenIssuer = Depends(get_token_issuer),
    store: RefreshTokenStore = Depends(get_token_store),
    cipher: SensitiveDataCipher = Depends(get_cipher),
    notifier: Notifier = Depends(get_notifier),
):
    if db.query(User).filter(User.email == payload.email).first():
        raise api_error(status.HTTP_409_CONFLICT, "User already exists with this email", "USER_EXISTS")

    user = User(
        email=payload.email,
        password=hasher.hash(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        business_name=payload.business_name,
        business_type=payload.business_type,
        ekyc_status="PENDING"
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        # Lost a race against a concurrent registration for the same email
        db.rollback()
        raise api_error(status.HTTP_409_CONFLICT, "User already exists with this email", "USER_EXISTS") from exc
    db.refresh(user)

    pair = tokens.issue(user.id, email=user.email, store=store)

    otp = generate_otp()
    _issue_otp(db, user, "EMAIL_VERIFICATION", otp, timedelta(minutes=settings.EMAIL_OTP_EXPIRE_MINUTES))
    notifier.send_email(
        user.email, "welcome-verification", code=otp,
        expires_in=f"{settings.EMAIL_OTP_EXPIRE_MINUTES} minutes"
    )

    log_auth_event("register", user, request, db)
    logger.info("User registered successfully: %s", user.email)

    return success_response(
        "Registration successful",
        {"user": serialize_user(user, cipher), "tokens": serialize_tokens(pair)},
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/login")
def login(
    request: Request,
    payload: LoginRequest = Depends(validated("login")),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    hasher: PasswordHasher = Depends(get_hasher),
    tokens: TokenIssuer = Depends(get_token_issuer),
    store: RefreshTokenStore = Depends(get_token_store),
    cipher: SensitiveDataCipher = Depends(get_cipher),
):
    user = db.query(User).filter(User.email == payload.email).first()
    if not user:
        hasher.dummy_verify()
        raise api_error(status.HTTP_401_UNAUTHORIZED, "Invalid email or password", "INVALID_CREDENTIALS")

    is_rate_limited, minutes_until_reset = check_login_rate_limit(user.id, db, settings)
    if is_rate_limited:
        raise api_error(
            status.HTTP_429_TOO_MANY_REQUESTS,
            f"Too many failed attempts. Try again in {minutes_until_reset} minute{'s' if minutes_until_reset != 1 else ''}",
            "RATE_LIMIT_EXCEEDED"
        )

    if not hasher.verify(payload.password, user.password):
        log_auth_event("login_failure", user, request, db)
        raise api_error(status.HTTP_401_UNAUTHORIZED, "Invalid email or password", "INVALID_CREDENTIALS")

    if not user.is_active:
        raise api_error(status.HTTP_403_FORBIDDEN, "Account is disabled", "ACCOUNT_DISABLED")

    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)

    pair = tokens.issue(user.id, email=user.email, store=store)
    log_auth_event("login_success", user, request, db)
    logger.info("User logged in successfully: %s", user.email)

    return success_response(
        "Login successful",
        {"user": serialize_user(user, cipher), "tokens": serialize_tokens(pair)},
    )


@router.post("/refresh")
def refresh(
    request: Request,
    payload: RefreshTokenRequest = Depends(validated("refresh")),
    db: Session = Depends(get_db),
    tokens: TokenIssuer = Depends(get_token_issuer),
    store: RefreshTokenStore = Depends(get_token_store),
):
    claims = tokens.verify_refresh(payload.refresh_token, store)

    user = db.query(User).filter(User.id == claims.user_id).first()
    if not user or not user.is_active:
        raise api_error(status.HTTP_401_UNAUTHORIZED, "Invalid or expired refresh token", "INVALID_REFRESH_TOKEN")

    pair = tokens.rotate(payload.refresh_token, store, email=user.email)
    log_auth_event("token_refresh", user, request, db)

    return success_response("Token refreshed successfully", {"tokens": serialize_tokens(pair)})


@router.post("/logout")
def logout(
    request: Request,
    payload: LogoutRequest = Depends(validated("logout")),
    db: Session = Depends(get_db),
    tokens: TokenIssuer = Depends(get_token_issuer),
    store: RefreshTokenStore = Depends(get_token_store),
):
    if payload.refresh_token:
        try:
            claims = tokens.revoke(payload.refresh_token, store)
        except AuthError as exc:
            # Nothing to revoke; logout still succeeds for the client
            logger.info("Logout with unusable refresh token: %s", exc.code)
        else:
            user = db.query(User).filter(User.id == claims.user_id).first()
            if user:
                log_auth_event("logout", user, request, db)

    return success_response("Logout successful")


@router.get("/me")
def get_me(
    user: User = Depends(get_current_user),
    cipher: SensitiveDataCipher = Depends(get_cipher),
):
    return success_response("User data retrieved successfully", serialize_user(user, cipher))


@router.patch("/me")
def update_me(
    payload: UpdateProfileRequest = Depends(validated("update-profile")),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cipher: SensitiveDataCipher = Depends(get_cipher),
):
    for field in payload.model_fields_set:
        value = getattr(payload, field)
        if field == "registration_number":
            if value is None:
                user.registration_number_encrypted = None
                user.registration_number_iv = None
            else:
                encrypted = cipher.encrypt(value)
                user.registration_number_encrypted = encrypted.ciphertext
                user.registration_number_iv = encrypted.iv
        else:
            setattr(user, field, value)
    db.commit()
    db.refresh(user)

    return success_response("Profile updated successfully", serialize_user(user, cipher))


@router.post("/verify-email/send")
def send_email_verification(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
):
    if user.email_verified_at:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Email already verified", "EMAIL_ALREADY_VERIFIED")

    otp = generate_otp()
    _issue_otp(db, user, "EMAIL_VERIFICATION", otp, timedelta(minutes=settings.EMAIL_OTP_EXPIRE_MINUTES))
    notifier.send_email(
        user.email, "email-verification", code=otp,
        expires_in=f"{settings.EMAIL_OTP_EXPIRE_MINUTES} minutes"
    )

    return success_response("Verification email sent successfully")


@router.post("/verify-email")
def verify_email(
    request: Request,
    payload: VerifyEmailRequest = Depends(validated("verify-email")),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    record = _find_otp(db, "EMAIL_VERIFICATION", payload.otp, user_id=user.id)
    if not record:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Invalid or expired OTP", "INVALID_OTP")
    if record.expires_at < datetime.utcnow():
        raise api_error(status.HTTP_400_BAD_REQUEST, "OTP has expired", "OTP_EXPIRED")

    record.is_used = True
    user.email_verified_at = datetime.utcnow()
    user.is_verified = True
    db.commit()

    log_auth_event("email_verified", user, request, db)
    return success_response("Email verified successfully")


# ---------------- Password Reset Flow ----------------

@router.post("/password/reset")
def request_password_reset(
    payload: PasswordResetRequest = Depends(validated("password-reset")),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
):
    # Same response either way to prevent user enumeration
    user = db.query(User).filter(User.email == payload.email).first()
    if not user:
        return success_response(RESET_REQUESTED_MESSAGE)

    reset_token = generate_secure_token(32)
    _issue_otp(db, user, "PASSWORD_RESET", reset_token, timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES))
    notifier.send_email(
        user.email, "password-reset", code=notifier.password_reset_url(reset_token),
        expires_in=f"{settings.PASSWORD_RESET_EXPIRE_MINUTES} minutes"
    )

    return success_response(RESET_REQUESTED_MESSAGE)


@router.post("/password/reset/confirm")
def confirm_password_reset(
    request: Request,
    payload: PasswordResetConfirm = Depends(validated("password-reset-confirm")),
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    store: RefreshTokenStore = Depends(get_token_store),
):
    record = _find_otp(db, "PASSWORD_RESET", payload.token)
    if not record:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Invalid or expired reset token", "INVALID_RESET_TOKEN")
    if record.expires_at < datetime.utcnow():
        raise api_error(status.HTTP_400_BAD_REQUEST, "Reset token has expired", "TOKEN_EXPIRED")

    user = db.query(User).filter(User.id == record.user_id).first()
    if not user:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Invalid or expired reset token", "INVALID_RESET_TOKEN")
    if not user.is_active:
        raise api_error(status.HTTP_403_FORBIDDEN, "Account is disabled", "ACCOUNT_DISABLED")

    user.password = hasher.hash(payload.new_password)
    record.is_used = True
    db.commit()

    # Every existing session ends with the old password
    revoked = store.revoke_all(user.id)
    logger.info("Password reset: user_id=%s revoked_refresh_tokens=%s", user.id, revoked)

    log_auth_event("password_reset", user, request, db)
    return success_response("Password reset successful")
