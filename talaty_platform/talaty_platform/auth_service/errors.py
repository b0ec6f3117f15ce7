"""
Error taxonomy for the auth service.

Validation and token errors are recoverable and rendered as 4xx responses
with a stable machine-readable code. Configuration and crypto errors are
operational failures that never reach the end user in detail.
"""
import enum
from typing import List


class AuthErrorKind(str, enum.Enum):
    EXPIRED = "EXPIRED"
    MALFORMED = "MALFORMED"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    REVOKED = "REVOKED"


_AUTH_ERROR_CODES = {
    AuthErrorKind.EXPIRED: "TOKEN_EXPIRED",
    AuthErrorKind.MALFORMED: "TOKEN_MALFORMED",
    AuthErrorKind.SIGNATURE_INVALID: "TOKEN_SIGNATURE_INVALID",
    AuthErrorKind.REVOKED: "TOKEN_REVOKED",
}

_AUTH_ERROR_MESSAGES = {
    AuthErrorKind.EXPIRED: "Token has expired",
    AuthErrorKind.MALFORMED: "Token is malformed",
    AuthErrorKind.SIGNATURE_INVALID: "Token signature is invalid",
    AuthErrorKind.REVOKED: "Token has been revoked",
}


class AuthError(Exception):
    """A presented token could not be accepted."""

    def __init__(self, kind: AuthErrorKind, message: str = None):
        self.kind = kind
        self.message = message or _AUTH_ERROR_MESSAGES[kind]
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return _AUTH_ERROR_CODES[self.kind]


class ConfigurationError(RuntimeError):
    """A required secret or key is missing or unusable. Fatal at startup."""


class CryptoError(RuntimeError):
    """Unexpected failure inside an encryption or hashing primitive."""


class RequestValidationFailed(Exception):
    """Raised by the HTTP layer when a payload fails validation."""

    def __init__(self, errors: List):
        self.errors = errors
        super().__init__("Validation failed")
