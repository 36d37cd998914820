"""Mock responder for development and testing."""

from typing import Any

from liaison.conversation.models import Message
from liaison.providers.responder.base import Responder, ResponderReply

DEFAULT_ESCALATION_KEYWORDS = ("operator", "human", "agent", "person")


class MockResponder(Responder):
    """Canned responder.

    Returns configurable replies without calling any service. Messages that
    mention one of the escalation keywords get a low-confidence reply that
    suggests handing over to an operator.
    """

    def __init__(
        self,
        default_reply: str = "Thanks for your message! How else can I help?",
        replies: dict[str, str] | None = None,
        escalation_keywords: tuple[str, ...] = DEFAULT_ESCALATION_KEYWORDS,
        confidence: float = 0.9,
    ):
        """Initialize mock responder.

        Args:
            default_reply: Reply when no exact match is configured
            replies: Map of exact message text to reply
            escalation_keywords: Words that trigger an escalation suggestion
            confidence: Confidence reported for ordinary replies
        """
        self._default_reply = default_reply
        self._replies = replies or {}
        self._escalation_keywords = escalation_keywords
        self._confidence = confidence
        self._call_history: list[dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    @property
    def call_history(self) -> list[dict[str, Any]]:
        """Return history of calls for testing assertions."""
        return self._call_history

    def set_reply(self, trigger: str, reply: str) -> None:
        self._replies[trigger] = reply

    async def respond(self, message: str, history: list[Message]) -> ResponderReply:
        self._call_history.append({"message": message, "history": list(history)})

        lowered = message.lower()
        if any(word in lowered for word in self._escalation_keywords):
            return ResponderReply(
                text="Let me connect you with one of our operators.",
                confidence=0.2,
                should_escalate=True,
            )

        return ResponderReply(
            text=self._replies.get(message, self._default_reply),
            confidence=self._confidence,
        )
