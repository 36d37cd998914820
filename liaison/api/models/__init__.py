"""API request and response models."""

from liaison.api.models.errors import ErrorBody, ErrorDetail, ErrorResponse
from liaison.api.models.health import ComponentHealth, HealthResponse
from liaison.api.models.session import (
    AvailabilityUpdate,
    CreateSessionRequest,
    MessageListResponse,
    NoteCreate,
    NoteListResponse,
    NoteUpdate,
    OperatorRequestResponse,
    OperatorResponse,
    PriorityUpdate,
    SendMessageRequest,
    SendMessageResponse,
    SessionResponse,
    TransferRequest,
)

__all__ = [
    "AvailabilityUpdate",
    "ComponentHealth",
    "CreateSessionRequest",
    "ErrorBody",
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    "MessageListResponse",
    "NoteCreate",
    "NoteListResponse",
    "NoteUpdate",
    "OperatorRequestResponse",
    "OperatorResponse",
    "PriorityUpdate",
    "SendMessageRequest",
    "SendMessageResponse",
    "SessionResponse",
    "TransferRequest",
]
