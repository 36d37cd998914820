"""Responder interface and data models.

A responder answers visitor messages while no operator owns the session.
How it produces text is its own business; the session core only consumes
the reply.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from liaison.conversation.models import Message


class ResponderReply(BaseModel):
    """Reply produced for one visitor message."""

    text: str = Field(..., description="Reply shown to the visitor")
    confidence: float = Field(
        default=1.0, ge=0.0, le=1.0, description="Self-reported confidence"
    )
    should_escalate: bool = Field(
        default=False, description="Responder thinks a human should take over"
    )


class ResponderError(Exception):
    """Base exception for responder failures."""

    pass


class Responder(ABC):
    """Abstract automated responder."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def respond(self, message: str, history: list[Message]) -> ResponderReply:
        """Answer ``message`` given the session's recent ``history``.

        Args:
            message: The visitor's new message
            history: Most recent transcript entries, oldest first

        Raises:
            ResponderError: The reply could not be produced
        """
        pass
