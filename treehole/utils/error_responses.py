"""Builders for the structured error payloads returned by the API.

Every exception handler in :mod:`treehole.main` renders through
:func:`error_json_response` so payloads share one shape, carry the request id
and, for retryable storage failures, a ``Retry-After`` header.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from fastapi.responses import JSONResponse

from treehole.schemas.error import (
    ErrorResponse,
    ErrorType,
    ValidationErrorDetail,
    ValidationErrorResponse,
)
from treehole.utils.request_context import get_request_id

__all__ = [
    "build_error_response",
    "build_validation_error_response",
    "error_json_response",
]


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def build_validation_error_response(
    *,
    errors: Sequence[ValidationErrorDetail],
    path: str,
    request_id: str | None = None,
) -> ValidationErrorResponse:
    return ValidationErrorResponse(
        message="Request validation failed",
        detail=f"{len(errors)} validation error(s)",
        status_code=422,
        timestamp=_current_timestamp(),
        request_id=request_id or get_request_id(),
        path=path,
        errors=list(errors),
    )


def build_error_response(
    *,
    error_type: ErrorType,
    message: str,
    detail: str,
    status_code: int,
    path: str,
    retry_after: int | None = None,
    request_id: str | None = None,
) -> ErrorResponse:
    """Construct an ``ErrorResponse``; ``retry_after`` only for retryable failures."""

    return ErrorResponse(
        error_type=error_type,
        message=message,
        detail=detail,
        status_code=status_code,
        timestamp=_current_timestamp(),
        request_id=request_id or get_request_id(),
        path=path,
        retry_after=retry_after,
    )


def error_json_response(payload: ErrorResponse) -> JSONResponse:
    """Serialize ``payload``, mirroring ``retry_after`` as a ``Retry-After`` header."""

    headers = None
    if payload.retry_after is not None:
        headers = {"Retry-After": str(payload.retry_after)}
    return JSONResponse(
        status_code=payload.status_code,
        content=payload.model_dump(mode="json"),
        headers=headers,
    )
