"""Payload shapes every error response of the API is rendered with."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorType(str, Enum):
    """Machine-readable category carried in ``error_type``."""

    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    DATABASE_ERROR = "database_error"
    INTERNAL_ERROR = "internal_error"
    TIMEOUT_ERROR = "timeout_error"
    AUTHENTICATION_ERROR = "authentication_error"
    AUTHORIZATION_ERROR = "authorization_error"


class ErrorResponse(BaseModel):
    """Body returned for any request that did not succeed."""

    error_type: ErrorType = Field(..., description="Failure category")
    message: str = Field(..., description="Short headline for the failure")
    detail: str | None = Field(None, description="What exactly went wrong, when known")
    status_code: int = Field(..., description="HTTP status mirrored into the body")
    timestamp: datetime = Field(default_factory=_utcnow, description="UTC time of the failure")
    request_id: str | None = Field(None, description="Value echoed in X-Request-ID")
    path: str | None = Field(None, description="Route the client called")
    retry_after: int | None = Field(
        None, description="Seconds the client should back off when the storage tier is unavailable"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error_type": "conflict",
                "message": "Favorite already exists",
                "detail": "hole 42 is already in favorite group 3",
                "status_code": 409,
                "timestamp": "2025-11-03T10:30:00Z",
                "request_id": "0f4c2f0e-7d0a-4a53-9d7e-0d4f8c1b5e21",
                "path": "/user/favorites",
                "retry_after": None,
            }
        }
    )


class ValidationErrorDetail(BaseModel):
    """One rejected field of a request."""

    field: str = Field(..., description="Dotted location, e.g. body.hole_id")
    message: str = Field(..., description="Why the value was rejected")
    value: Any = Field(None, description="The rejected input")


class ValidationErrorResponse(ErrorResponse):
    error_type: ErrorType = Field(default=ErrorType.VALIDATION_ERROR)
    errors: list[ValidationErrorDetail] = Field(
        default_factory=list, description="Every field that failed validation"
    )
