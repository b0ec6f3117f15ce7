import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from .models import BusinessType

PHONE_PATTERN = re.compile(r"\+?[0-9\s\-()]{10,}")
OTP_PATTERN = re.compile(r"[0-9]{6}")

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
PASSWORD_SYMBOLS = "@$!%*?&"
_PASSWORD_ALLOWED = re.compile(r"[A-Za-z0-9@$!%*?&]+")


# ---------------- Field rules ----------------

def strip_text(value):
    return value.strip() if isinstance(value, str) else value


def normalize_email(value: str) -> str:
    # EmailStr only lowercases the domain
    return value.lower()


def check_password_policy(value: str, label: str = "Password") -> str:
    """Apply the password policy clause by clause, reporting the first failure."""
    if len(value) < PASSWORD_MIN_LENGTH:
        raise PydanticCustomError(
            "password_policy", f"{label} must be at least {PASSWORD_MIN_LENGTH} characters long"
        )
    if len(value) > PASSWORD_MAX_LENGTH:
        raise PydanticCustomError(
            "password_policy", f"{label} cannot exceed {PASSWORD_MAX_LENGTH} characters"
        )
    if not re.search(r"[A-Z]", value):
        raise PydanticCustomError("password_policy", f"{label} must contain at least one uppercase letter")
    if not re.search(r"[a-z]", value):
        raise PydanticCustomError("password_policy", f"{label} must contain at least one lowercase letter")
    if not re.search(r"[0-9]", value):
        raise PydanticCustomError("password_policy", f"{label} must contain at least one number")
    if not any(ch in PASSWORD_SYMBOLS for ch in value):
        raise PydanticCustomError(
            "password_policy", f"{label} must contain at least one special character ({PASSWORD_SYMBOLS})"
        )
    if not _PASSWORD_ALLOWED.fullmatch(value):
        raise PydanticCustomError(
            "password_policy",
            f"{label} may only contain letters, numbers and the special characters {PASSWORD_SYMBOLS}",
        )
    return value


def check_length(value: str, label: str, minimum: int, maximum: int) -> str:
    value = value.strip()
    if len(value) < minimum:
        raise PydanticCustomError("too_short", f"{label} must be at least {minimum} characters long")
    if len(value) > maximum:
        raise PydanticCustomError("too_long", f"{label} cannot exceed {maximum} characters")
    return value


def check_phone(value: str) -> str:
    if not PHONE_PATTERN.fullmatch(value):
        raise PydanticCustomError("invalid_format", "Please provide a valid phone number")
    return value


def check_business_type(value: str) -> str:
    value = value.strip()
    if value not in BusinessType.__members__:
        raise PydanticCustomError("invalid_choice", "Please select a valid business type")
    return value


class RequestModel(BaseModel):
    """Base for request payloads: camelCase on the wire, unknown fields rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class EmailRequest(RequestModel):
    """Payloads identified by an email address, compared lowercase everywhere."""

    email: EmailStr = Field(title="Email")

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value):
        return strip_text(value)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)


# ---------------- Requests ----------------

class RegisterRequest(EmailRequest):
    password: str = Field(title="Password")
    first_name: str = Field(title="First name")
    last_name: str = Field(title="Last name")
    phone: Optional[str] = Field(default=None, title="Phone")
    business_name: Optional[str] = Field(default=None, title="Business name")
    business_type: Optional[str] = Field(default=None, title="Business type")

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_password_policy(value)

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, value: str) -> str:
        return check_length(value, "First name", 2, 50)

    @field_validator("last_name")
    @classmethod
    def validate_last_name(cls, value: str) -> str:
        return check_length(value, "Last name", 2, 50)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else check_phone(value)

    @field_validator("business_name")
    @classmethod
    def validate_business_name(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else check_length(value, "Business name", 2, 100)

    @field_validator("business_type")
    @classmethod
    def validate_business_type(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else check_business_type(value)


class LoginRequest(EmailRequest):
    # Policy is only enforced when a password is set, not at login
    password: str = Field(title="Password")

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if not value:
            raise PydanticCustomError("required", "Password is required")
        return value


class RefreshTokenRequest(RequestModel):
    refresh_token: str = Field(title="Refresh token")

    @field_validator("refresh_token")
    @classmethod
    def validate_refresh_token(cls, value: str) -> str:
        if not value.strip():
            raise PydanticCustomError("required", "Refresh token is required")
        return value.strip()


class LogoutRequest(RequestModel):
    refresh_token: Optional[str] = Field(default=None, title="Refresh token")


class VerifyEmailRequest(RequestModel):
    otp: str = Field(title="OTP")

    @field_validator("otp")
    @classmethod
    def validate_otp(cls, value: str) -> str:
        if len(value) != 6:
            raise PydanticCustomError("invalid_format", "OTP must be exactly 6 digits")
        if not OTP_PATTERN.fullmatch(value):
            raise PydanticCustomError("invalid_format", "OTP must contain only numbers")
        return value


class PasswordResetRequest(EmailRequest):
    pass


class PasswordResetConfirm(RequestModel):
    token: str = Field(title="Reset token")
    new_password: str = Field(title="New password")

    @field_validator("token")
    @classmethod
    def validate_token(cls, value: str) -> str:
        if not value.strip():
            raise PydanticCustomError("required", "Reset token is required")
        return value.strip()

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, value: str) -> str:
        return check_password_policy(value, label="New password")


class UpdateProfileRequest(RequestModel):
    """Partial profile update. An empty string clears an optional field."""

    first_name: Optional[str] = Field(default=None, title="First name")
    last_name: Optional[str] = Field(default=None, title="Last name")
    phone: Optional[str] = Field(default=None, title="Phone")
    business_name: Optional[str] = Field(default=None, title="Business name")
    business_type: Optional[str] = Field(default=None, title="Business type")
    registration_number: Optional[str] = Field(default=None, title="Registration number")
    address: Optional[str] = Field(default=None, title="Address")
    city: Optional[str] = Field(default=None, title="City")
    country: Optional[str] = Field(default=None, title="Country")

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            raise PydanticCustomError("invalid_type", "First name cannot be empty")
        return check_length(value, "First name", 2, 50)

    @field_validator("last_name")
    @classmethod
    def validate_last_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            raise PydanticCustomError("invalid_type", "Last name cannot be empty")
        return check_length(value, "Last name", 2, 50)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return check_phone(value)

    @field_validator("business_type")
    @classmethod
    def validate_business_type(cls, value: Optional[str]) -> Optional[str]:
        if not value or not value.strip():
            return None
        return check_business_type(value)

    @field_validator("business_name", "registration_number", "address", "city", "country")
    @classmethod
    def validate_clearable_text(cls, value: Optional[str], info) -> Optional[str]:
        if value is None or not value.strip():
            return None
        low, high = _CLEARABLE_LIMITS[info.field_name]
        return check_length(value, cls.model_fields[info.field_name].title, low, high)


_CLEARABLE_LIMITS = {
    "business_name": (2, 100),
    "registration_number": (3, 50),
    "address": (5, 200),
    "city": (2, 100),
    "country": (2, 100),
}


# ---------------- Responses ----------------

class ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserResponse(ResponseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    business_name: Optional[str] = None
    business_type: Optional[str] = None
    registration_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    ekyc_status: str
    is_verified: bool
    email_verified_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime


class TokensResponse(ResponseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
