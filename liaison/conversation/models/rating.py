"""Visitor satisfaction rating."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from liaison.conversation.models.session import utc_now


class ChatRating(BaseModel):
    """One rating per session, left by the visitor."""

    session_id: UUID = Field(..., description="Rated session")
    rating: int = Field(..., ge=1, le=5, description="Score from 1 to 5")
    comment: str | None = Field(default=None, max_length=2000, description="Free text")
    user_id: str | None = Field(default=None, description="Visitor identifier")
    user_email: str | None = Field(default=None, description="Visitor email")
    operator_id: str | None = Field(
        default=None, description="Operator who last handled the session"
    )
    operator_name: str | None = Field(default=None, description="Operator display name")
    created_at: datetime = Field(default_factory=utc_now, description="Submission time")
