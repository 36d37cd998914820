"""Chat session models."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from liaison.conversation.models.enums import ClosureReason, Priority, SessionStatus


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


class InternalNote(BaseModel):
    """Operator-only annotation attached to a session."""

    note_id: UUID = Field(default_factory=uuid4, description="Unique identifier")
    content: str = Field(..., min_length=1, description="Note text")
    author_id: str = Field(..., description="Operator who wrote the note")
    author_name: str = Field(..., description="Author display name")
    created_at: datetime = Field(default_factory=utc_now, description="Creation time")
    updated_at: datetime = Field(default_factory=utc_now, description="Last edit")


class ChatSession(BaseModel):
    """One visitor's conversation.

    Two invariants are checked on every construction, which is how every
    write reaches the store (see ``with_changes``):

    - ``operator_id`` is set exactly when the status is WITH_OPERATOR
    - ``closure_reason`` and ``closed_at`` are set exactly when CLOSED
    """

    session_id: UUID = Field(default_factory=uuid4, description="Unique identifier")
    status: SessionStatus = Field(
        default=SessionStatus.ACTIVE, description="Current status"
    )
    operator_id: str | None = Field(default=None, description="Owning operator")
    operator_assigned_at: datetime | None = Field(
        default=None, description="When the current owner took the session"
    )
    last_operator_id: str | None = Field(
        default=None, description="Most recent owner, kept through CLOSED"
    )
    user_name: str | None = Field(default=None, description="Visitor name")
    user_id: str | None = Field(default=None, description="Visitor identifier")
    user_email: str | None = Field(default=None, description="Visitor email")
    unread_count: int = Field(default=0, ge=0, description="Unread visitor messages")
    priority: Priority = Field(default=Priority.NORMAL, description="Queue priority")
    closure_reason: ClosureReason | None = Field(
        default=None, description="Why the session closed"
    )
    closed_at: datetime | None = Field(default=None, description="Closure time")
    tags: list[str] = Field(default_factory=list, description="Operator labels")
    archived_at: datetime | None = Field(default=None, description="Archive time")
    archived_by: str | None = Field(default=None, description="Archiving operator")
    flag_reason: str | None = Field(default=None, description="Why it was flagged")
    flagged_at: datetime | None = Field(default=None, description="Flag time")
    flagged_by: str | None = Field(default=None, description="Flagging operator")
    deleted_at: datetime | None = Field(
        default=None, description="Soft delete time; deleted sessions read as missing"
    )
    created_at: datetime = Field(default_factory=utc_now, description="Creation time")
    last_message_at: datetime | None = Field(
        default=None, description="Time of the latest message"
    )
    updated_at: datetime = Field(default_factory=utc_now, description="Last write")

    @model_validator(mode="after")
    def check_status_invariants(self) -> "ChatSession":
        with_operator = self.status == SessionStatus.WITH_OPERATOR
        if with_operator != (self.operator_id is not None):
            raise ValueError(
                f"operator_id must be set iff status is WITH_OPERATOR "
                f"(status={self.status.value}, operator_id={self.operator_id})"
            )
        closed = self.status == SessionStatus.CLOSED
        if closed != (self.closure_reason is not None) or closed != (
            self.closed_at is not None
        ):
            raise ValueError(
                "closure_reason and closed_at must be set iff status is CLOSED"
            )
        return self

    def with_changes(self, **changes: Any) -> "ChatSession":
        """Return a re-validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return ChatSession.model_validate(data)

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @property
    def is_flagged(self) -> bool:
        return self.flagged_at is not None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
