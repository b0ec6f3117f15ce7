"""
Configuration management for the Talaty auth service
"""
import re
from typing import List

from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


class Settings(BaseSettings):
    """Auth service configuration loaded from environment variables"""

    # Signing and encryption secrets (required)
    JWT_SECRET: str
    JWT_REFRESH_SECRET: str
    ENCRYPTION_KEY: str

    # Token lifetimes
    JWT_ISSUER: str = "talaty-auth-service"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Password hashing
    PASSWORD_HASH_ROUNDS: int = 390000

    # One-time codes
    EMAIL_OTP_EXPIRE_MINUTES: int = 15
    PASSWORD_RESET_EXPIRE_MINUTES: int = 30

    # Login throttling
    LOGIN_MAX_FAILED_ATTEMPTS: int = 5
    LOGIN_RATE_LIMIT_WINDOW_MINUTES: int = 15

    # Server configuration
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = ""
    DATABASE_URL: str = "sqlite:///./talaty_auth.db"
    FRONTEND_URL: str = "http://localhost:3000"

    # CORS Configuration
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
        "https://talaty.app",
        "https://www.talaty.app",
        "https://app.talaty.com",
    ]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("JWT_SECRET", "JWT_REFRESH_SECRET")
    @classmethod
    def _secret_strength(cls, value: str) -> str:
        if len(value) < 32:
            raise ValueError("must be at least 32 characters long")
        return value

    @field_validator("ENCRYPTION_KEY")
    @classmethod
    def _encryption_key_format(cls, value: str) -> str:
        if not _HEX_KEY.match(value):
            raise ValueError("must be 64 hex characters (a 256-bit key)")
        return value

    @model_validator(mode="after")
    def _distinct_secrets(self) -> "Settings":
        if self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must differ")
        return self

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() in ("local", "development", "dev", "test")


def load_settings(**overrides) -> Settings:
    """
    Build the process-wide settings object.

    Raises:
        ConfigurationError: if a required secret or key is missing or invalid
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = ", ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'settings'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid auth service configuration ({problems})") from exc
