"""Domain exception hierarchy.

Every error a session operation can surface inherits from LiaisonError,
which carries the status_code and error_code the API layer renders.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable error codes returned to clients."""

    INVALID_REQUEST = "INVALID_REQUEST"
    """Request validation failed (malformed JSON, missing fields, etc.)."""

    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    """The specified session does not exist."""

    OPERATOR_NOT_FOUND = "OPERATOR_NOT_FOUND"
    """The specified operator does not exist."""

    NOTE_NOT_FOUND = "NOTE_NOT_FOUND"
    """The specified internal note does not exist on the session."""

    INVALID_TRANSITION = "INVALID_TRANSITION"
    """The action is not allowed from the session's current status."""

    ALREADY_ACCEPTED = "ALREADY_ACCEPTED"
    """Another operator accepted the session first."""

    FORBIDDEN = "FORBIDDEN"
    """The caller does not own the resource it tried to change."""

    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    """The visitor sent too many messages in the current window."""

    SESSION_EXPIRED = "SESSION_EXPIRED"
    """The session is older than the maximum session age."""

    REOPEN_WINDOW_EXPIRED = "REOPEN_WINDOW_EXPIRED"
    """The session was closed too long ago to be reopened."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred."""


class LiaisonError(Exception):
    """Base exception for all session errors.

    Subclasses set status_code and error_code; the global exception handler
    turns them into an ErrorResponse.
    """

    status_code: int = 500
    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRequestError(LiaisonError):
    """Raised when request validation fails."""

    status_code = 400
    error_code = ErrorCode.INVALID_REQUEST


class NotFoundError(LiaisonError):
    """Raised when a referenced record does not exist."""

    status_code = 404


class SessionNotFoundError(NotFoundError):
    error_code = ErrorCode.SESSION_NOT_FOUND

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class OperatorNotFoundError(NotFoundError):
    error_code = ErrorCode.OPERATOR_NOT_FOUND

    def __init__(self, operator_id: str) -> None:
        super().__init__(f"Operator {operator_id} not found")
        self.operator_id = operator_id


class NoteNotFoundError(NotFoundError):
    error_code = ErrorCode.NOTE_NOT_FOUND

    def __init__(self, note_id: str) -> None:
        super().__init__(f"Note {note_id} not found")
        self.note_id = note_id


class InvalidTransitionError(LiaisonError):
    """Raised when an action is attempted from the wrong status."""

    status_code = 409
    error_code = ErrorCode.INVALID_TRANSITION


class AlreadyAcceptedError(LiaisonError):
    """Raised to every operator that lost the race to accept a session."""

    status_code = 409
    error_code = ErrorCode.ALREADY_ACCEPTED

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} was already accepted")
        self.session_id = session_id


class ForbiddenError(LiaisonError):
    """Raised when an operator acts on something another operator owns."""

    status_code = 403
    error_code = ErrorCode.FORBIDDEN


class RateLimitedError(LiaisonError):
    """Raised when the visitor exceeds the message rate limit."""

    status_code = 429
    error_code = ErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(self, message: str, retry_after_seconds: int) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class ExpiredError(LiaisonError):
    """Raised for sessions past their maximum age or reopen window."""

    status_code = 410

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SESSION_EXPIRED,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code


class InternalError(LiaisonError):
    """Raised when the store or transport fails in a way callers cannot fix."""

    status_code = 500
    error_code = ErrorCode.INTERNAL_ERROR
