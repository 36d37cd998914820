"""Request and response models for session endpoints."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from liaison.conversation.models import (
    Attachment,
    ChatSession,
    ClosureReason,
    InternalNote,
    Message,
    Priority,
    SessionStatus,
)


class CreateSessionRequest(BaseModel):
    """Start a new conversation from the visitor widget."""

    user_name: str | None = Field(default=None, max_length=100)
    user_id: str | None = Field(default=None, max_length=200)
    user_email: str | None = Field(default=None, max_length=254)


class SendMessageRequest(BaseModel):
    """A message sent by a visitor or operator."""

    content: str = Field(..., min_length=1, max_length=10000)
    attachment: Attachment | None = None


class SessionResponse(BaseModel):
    """Session as returned to visitors and operators.

    Internal notes are never part of this response; operators read them
    through the notes endpoints.
    """

    session_id: UUID
    status: SessionStatus
    operator_id: str | None = None
    operator_online: bool = False
    user_name: str | None = None
    user_id: str | None = None
    unread_count: int = 0
    priority: Priority
    closure_reason: ClosureReason | None = None
    closed_at: datetime | None = None
    created_at: datetime
    last_message_at: datetime | None = None

    @classmethod
    def from_session(
        cls, session: ChatSession, operator_online: bool = False
    ) -> "SessionResponse":
        return cls(
            session_id=session.session_id,
            status=session.status,
            operator_id=session.operator_id,
            operator_online=operator_online,
            user_name=session.user_name,
            user_id=session.user_id,
            unread_count=session.unread_count,
            priority=session.priority,
            closure_reason=session.closure_reason,
            closed_at=session.closed_at,
            created_at=session.created_at,
            last_message_at=session.last_message_at,
        )


class OperatorSessionResponse(SessionResponse):
    """Session plus the dashboard housekeeping fields only operators see."""

    user_email: str | None = None
    tags: list[str] = Field(default_factory=list)
    is_archived: bool = False
    is_flagged: bool = False
    flag_reason: str | None = None

    @classmethod
    def from_session(
        cls, session: ChatSession, operator_online: bool = False
    ) -> "OperatorSessionResponse":
        base = SessionResponse.from_session(session, operator_online)
        return cls(
            **base.model_dump(),
            user_email=session.user_email,
            tags=session.tags,
            is_archived=session.is_archived,
            is_flagged=session.is_flagged,
            flag_reason=session.flag_reason,
        )


class SendMessageResponse(BaseModel):
    """Stored visitor message plus the responder's reply, if any."""

    message: Message
    ai_message: Message | None = None
    with_operator: bool = False
    suggest_operator: bool = False


class OperatorRequestResponse(BaseModel):
    """Outcome of asking for a human operator."""

    operator_available: bool
    operators_notified: int = 0
    status: SessionStatus


class MessageListResponse(BaseModel):
    """Session transcript, oldest first."""

    messages: list[Message]


class TransferRequest(BaseModel):
    """Hand the session to another operator."""

    to_operator_id: str = Field(..., min_length=1)
    reason: str | None = Field(default=None, max_length=500)


class PriorityUpdate(BaseModel):
    priority: Priority


class AvailabilityUpdate(BaseModel):
    available: bool


class OperatorResponse(BaseModel):
    operator_id: str
    name: str
    is_available: bool
    total_chats_handled: int


class NoteCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class NoteUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class NoteListResponse(BaseModel):
    notes: list[InternalNote]



class FlagRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class TagsUpdate(BaseModel):
    tags: list[str] = Field(..., description="Replaces the current tags")


class SessionHistoryEntry(BaseModel):
    session: OperatorSessionResponse
    messages: list[Message]
    message_count: int


class UserHistoryResponse(BaseModel):
    """A visitor's sessions, newest first."""

    user_id: str
    sessions: list[SessionHistoryEntry]


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(default=None, max_length=2000)
