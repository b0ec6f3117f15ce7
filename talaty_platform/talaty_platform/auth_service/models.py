from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Enum, Index, JSON
from datetime import datetime
from .db import Base
from sqlalchemy.orm import relationship
import enum
import uuid


class BusinessType(str, enum.Enum):
    SOLE_PROPRIETORSHIP = "SOLE_PROPRIETORSHIP"
    PARTNERSHIP = "PARTNERSHIP"
    CORPORATION = "CORPORATION"
    LLC = "LLC"
    NONPROFIT = "NONPROFIT"
    COOPERATIVE = "COOPERATIVE"
    OTHER = "OTHER"


EKYC_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "REJECTED")
OTP_CHANNELS = ("EMAIL", "SMS")
OTP_PURPOSES = ("EMAIL_VERIFICATION", "PASSWORD_RESET")


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=_new_id)
    # Always stored lowercase
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    business_name = Column(String, nullable=True)
    business_type = Column(String, nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    country = Column(String, nullable=True)
    # Encrypted at rest: hex ciphertext plus the IV it was encrypted with
    registration_number_encrypted = Column(String, nullable=True)
    registration_number_iv = Column(String, nullable=True)

    ekyc_status = Column(Enum(*EKYC_STATUSES, name="ekyc_status"), default="PENDING", nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    # Soft status; users are never hard-deleted
    is_active = Column(Boolean, default=True, nullable=False)
    email_verified_at = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    refresh_tokens = relationship("RefreshToken", back_populates="user")
    otp_verifications = relationship("OTPVerification", back_populates="user")


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"
    id = Column(Integer, primary_key=True, index=True)
    jti = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="refresh_tokens")


class OTPVerification(Base):
    __tablename__ = "otp_verifications"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    # SHA-256 of the code; the plaintext is only ever sent to the user
    code_hash = Column(String, index=True, nullable=False)
    channel = Column(Enum(*OTP_CHANNELS, name="otp_channel"), default="EMAIL", nullable=False)
    purpose = Column(Enum(*OTP_PURPOSES, name="otp_purpose"), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    is_used = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="otp_verifications")

    __table_args__ = (
        Index('ix_otp_verifications_user_purpose', 'user_id', 'purpose', 'is_used'),
    )


class AuthEvent(Base):
    __tablename__ = "auth_events"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    email = Column(String, nullable=False)
    event_type = Column(
        Enum("register", "login_success", "login_failure", "token_refresh", "logout",
             "email_verified", "password_reset",
             name="auth_event_type"),
        nullable=False
    )
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    event_metadata = Column(JSON, nullable=True)

    __table_args__ = (
        Index('ix_auth_events_user_id', 'user_id'),
        Index('ix_auth_events_timestamp', 'timestamp'),
        Index('ix_auth_events_event_type', 'event_type'),
        Index('ix_auth_events_user_id_timestamp', 'user_id', 'timestamp'),
    )

    def to_dict(self) -> dict:
        """
        Serialize AuthEvent to a dictionary.

        Returns:
            Dictionary with all event fields, datetimes in ISO 8601 format
        """
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "email": self.email,
            "event_type": self.event_type,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "metadata": self.event_metadata or {}
        }
