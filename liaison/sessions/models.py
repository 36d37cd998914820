"""Results returned by session lifecycle operations."""

from pydantic import BaseModel, Field

from liaison.conversation.models import ChatRating, ChatSession, Message


class SessionSnapshot(BaseModel):
    """A session as seen by a reader."""

    session: ChatSession
    operator_online: bool = Field(
        default=False, description="The owning operator has a live connection"
    )


class SendMessageResult(BaseModel):
    """Outcome of a visitor message."""

    message: Message = Field(..., description="The stored visitor message")
    ai_message: Message | None = Field(
        default=None, description="Responder reply, when no operator owns the session"
    )
    with_operator: bool = Field(
        default=False, description="The message was routed to an operator"
    )
    session: ChatSession


class OperatorRequestResult(BaseModel):
    """Outcome of a visitor asking for a human."""

    operator_available: bool
    operators_notified: int = 0
    session: ChatSession


class SessionHistory(BaseModel):
    """One past session of a visitor, with its most recent messages."""

    session: ChatSession
    messages: list[Message] = Field(default_factory=list)
    message_count: int = Field(default=0, ge=0, description="Messages included")


class OperatorRatingStats(BaseModel):
    operator_id: str
    operator_name: str | None = None
    total_ratings: int
    average_rating: float


class RatingsSummary(BaseModel):
    """Aggregate view over a set of visitor ratings."""

    total_ratings: int = 0
    average_rating: float = Field(default=0.0, description="Rounded to one decimal")
    distribution: dict[int, int] = Field(
        default_factory=lambda: dict.fromkeys(range(1, 6), 0),
        description="Count per score from 1 to 5",
    )
    by_operator: list[OperatorRatingStats] = Field(default_factory=list)
    recent: list[ChatRating] = Field(default_factory=list, description="Newest first")
