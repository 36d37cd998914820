"""Transcript hand-off for closed sessions.

Delivery (email, SMS) is outside this package; a sender receives the closed
session with its full transcript and does whatever its channel requires.
"""

from abc import ABC, abstractmethod

from liaison.conversation.models import ChatSession, Message
from liaison.observability.logging import get_logger

logger = get_logger(__name__)


class TranscriptSender(ABC):
    @abstractmethod
    async def send_transcript(self, session: ChatSession, messages: list[Message]) -> None:
        """Hand the transcript of a closed session to a delivery channel."""
        pass


class LoggingTranscriptSender(TranscriptSender):
    """Records the hand-off in the log. Default when no channel is configured."""

    async def send_transcript(self, session: ChatSession, messages: list[Message]) -> None:
        logger.info(
            "transcript_handoff",
            session_id=str(session.session_id),
            user_email=session.user_email,
            message_count=len(messages),
        )


class RecordingTranscriptSender(TranscriptSender):
    """Keeps every hand-off in memory for tests."""

    def __init__(self) -> None:
        self.sent: list[tuple[ChatSession, list[Message]]] = []

    async def send_transcript(self, session: ChatSession, messages: list[Message]) -> None:
        self.sent.append((session, list(messages)))
