"""
JSON response envelope shared by every endpoint.
"""
from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

_DEFAULT_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMIT_EXCEEDED",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def success_response(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    body = {"success": True, "message": message, "timestamp": _timestamp()}
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def error_response(
    status_code: int,
    message: str,
    code: Optional[str] = None,
    details: Optional[List[dict]] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    body = {
        "success": False,
        "message": message,
        "error": code or _DEFAULT_CODES.get(status_code, "ERROR"),
        "timestamp": _timestamp(),
    }
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


def api_error(status_code: int, message: str, code: str) -> HTTPException:
    """Build an HTTPException whose detail carries a stable error code."""
    return HTTPException(status_code=status_code, detail={"message": message, "code": code})
