"""Operator model."""

from pydantic import BaseModel, Field


class Operator(BaseModel):
    """A human support agent."""

    operator_id: str = Field(..., description="Opaque operator identifier")
    name: str = Field(..., description="Display name")
    is_available: bool = Field(
        default=True, description="Eligible for new chat requests"
    )
    total_chats_handled: int = Field(
        default=0, ge=0, description="Accepted, intervened and closed chats"
    )
