"""
Credential validation.

Each operation is described by a declarative pydantic model in ``schemas``.
``validate`` evaluates every field independently and reports one message
per failing field, so a client sees all problems at once.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from .schemas import (
    LoginRequest,
    LogoutRequest,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshTokenRequest,
    RegisterRequest,
    UpdateProfileRequest,
    VerifyEmailRequest,
)

SCHEMAS: Dict[str, Type[BaseModel]] = {
    "register": RegisterRequest,
    "login": LoginRequest,
    "refresh": RefreshTokenRequest,
    "logout": LogoutRequest,
    "verify-email": VerifyEmailRequest,
    "password-reset": PasswordResetRequest,
    "password-reset-confirm": PasswordResetConfirm,
    "update-profile": UpdateProfileRequest,
}

# pydantic type errors that mean "wrong JSON type" for a field
_TYPE_ERRORS = {"string_type", "bool_type", "int_type", "dict_type", "model_type"}

# Messages for errors raised by pydantic types rather than by our field rules
_FORMAT_MESSAGES = {"email": "Please provide a valid email address"}


@dataclass(frozen=True)
class FieldError:
    field: str
    code: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "code": self.code, "message": self.message}


@dataclass
class ValidationResult:
    value: Optional[BaseModel] = None
    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _labels(schema: Type[BaseModel]) -> Dict[str, str]:
    labels = {}
    for name, info in schema.model_fields.items():
        label = info.title or name
        labels[name] = label
        if info.alias:
            labels[info.alias] = label
    return labels


def _to_field_error(error: dict, labels: Dict[str, str]) -> FieldError:
    loc = error.get("loc") or ()
    name = str(loc[0]) if loc else "body"
    label = labels.get(name, name)
    error_type = error["type"]

    if error_type == "missing":
        return FieldError(name, "required", f"{label} is required")
    if error_type == "extra_forbidden":
        return FieldError(name, "not_allowed", f"{name} is not allowed")
    if error_type in _TYPE_ERRORS:
        return FieldError(name, "invalid_type", f"{label} must be a string")
    if error_type == "value_error":
        return FieldError(name, "invalid_format", _FORMAT_MESSAGES.get(name, f"{label} is invalid"))
    # PydanticCustomError raised by our field rules carries its own code and message
    return FieldError(name, error_type, error["msg"])


def validate(operation: str, data: Any) -> ValidationResult:
    """
    Validate ``data`` for ``operation``.

    Returns:
        ValidationResult with the normalized model, or one FieldError per
        failing field.

    Raises:
        KeyError: if ``operation`` has no schema
    """
    schema = SCHEMAS[operation]
    labels = _labels(schema)

    if not isinstance(data, dict):
        return ValidationResult(errors=[FieldError("body", "invalid_type", "Request body must be a JSON object")])

    try:
        return ValidationResult(value=schema.model_validate(data))
    except ValidationError as exc:
        errors: List[FieldError] = []
        seen = set()
        for raw in exc.errors(include_url=False):
            error = _to_field_error(raw, labels)
            if error.field in seen:
                continue
            seen.add(error.field)
            errors.append(error)
        return ValidationResult(errors=errors)
