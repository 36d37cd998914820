"""Transcript message models."""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from liaison.conversation.models.enums import MessageType


class Attachment(BaseModel):
    """Descriptor of a file stored elsewhere."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="Where the file can be fetched")
    name: str = Field(..., description="Original file name")
    mime_type: str = Field(..., description="Content type")
    size: int = Field(..., ge=0, description="Size in bytes")


class Message(BaseModel):
    """An immutable transcript entry.

    ``created_at`` is left unset by callers; the store assigns it at append
    time so that timestamps are strictly increasing within a session.
    """

    model_config = ConfigDict(frozen=True)

    message_id: UUID = Field(default_factory=uuid4, description="Unique identifier")
    session_id: UUID = Field(..., description="Owning session")
    type: MessageType = Field(..., description="Author category")
    content: str = Field(..., description="Message text")
    attachment: Attachment | None = Field(
        default=None, description="Optional file descriptor"
    )
    operator_id: str | None = Field(
        default=None, description="Author, for operator messages"
    )
    operator_name: str | None = Field(
        default=None, description="Author display name, for operator messages"
    )
    ai_confidence: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Responder confidence"
    )
    ai_suggest_operator: bool = Field(
        default=False, description="Responder suggests handing over to a human"
    )
    created_at: datetime | None = Field(
        default=None, description="Assigned by the store on append"
    )
