"""Error response models for consistent API error handling."""

from pydantic import BaseModel

from liaison.errors import ErrorCode


class ErrorDetail(BaseModel):
    """Field-level error information for validation failures."""

    field: str | None = None
    """The field that caused the error, if applicable."""

    message: str
    """Human-readable error description."""


class ErrorBody(BaseModel):
    """Error body content for API error responses."""

    code: ErrorCode
    """Machine-readable error code."""

    message: str
    """Human-readable error message."""

    details: list[ErrorDetail] | None = None
    """Additional error details for validation failures."""

    retry_after_seconds: int | None = None
    """Seconds to wait before retrying, for rate limited requests."""


class ErrorResponse(BaseModel):
    """Standard error response format for all API errors.

    Example:
        {
            "error": {
                "code": "ALREADY_ACCEPTED",
                "message": "Session 3f2a... was already accepted"
            }
        }
    """

    error: ErrorBody
