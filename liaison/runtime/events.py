"""Real-time event types.

Every notification pushed to a room is one of the variants below, tagged by
its ``type`` field. Producers build the variant; consumers (the WebSocket
transport, tests) parse with ``parse_event``.
"""

from datetime import UTC, datetime
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter

from liaison.conversation.models import ClosureReason, Message, Priority


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


class Room:
    """Room naming.

    - operator_{id}: one operator's console
    - dashboard: every operator console
    - chat_{id}: the visitor widget plus operators viewing that session
    """

    DASHBOARD = "dashboard"

    @staticmethod
    def operator(operator_id: str) -> str:
        return f"operator_{operator_id}"

    @staticmethod
    def session(session_id: Any) -> str:
        return f"chat_{session_id}"

    @staticmethod
    def kind(room: str) -> str:
        """Category label used for metrics."""
        if room == Room.DASHBOARD:
            return "dashboard"
        return room.split("_", 1)[0]


class LiveEvent(BaseModel):
    """Base of every real-time notification."""

    type: str
    session_id: UUID = Field(..., description="Session the event concerns")
    timestamp: datetime = Field(default_factory=utc_now)


# Session creation and operator requests


class NewChatCreated(LiveEvent):
    type: Literal["new_chat_created"] = "new_chat_created"
    user_name: str | None = None


class NewChatRequest(LiveEvent):
    type: Literal["new_chat_request"] = "new_chat_request"
    user_name: str | None = None
    priority: Priority = Priority.NORMAL
    last_message: str | None = Field(
        default=None, description="Latest visitor message, for the request preview"
    )


class ChatWaitingOperator(LiveEvent):
    type: Literal["chat_waiting_operator"] = "chat_waiting_operator"
    user_name: str | None = None
    operators_notified: int = 0


class OperatorRequestSent(LiveEvent):
    type: Literal["operator_request_sent"] = "operator_request_sent"
    operators_notified: int
    timeout_seconds: int


class OperatorRequestCancelled(LiveEvent):
    type: Literal["operator_request_cancelled"] = "operator_request_cancelled"


class ChatRequestCancelled(LiveEvent):
    type: Literal["chat_request_cancelled"] = "chat_request_cancelled"
    reason: Literal["accepted", "cancelled_by_user", "timeout", "intervened"]


class OperatorWaitTimeout(LiveEvent):
    type: Literal["operator_wait_timeout"] = "operator_wait_timeout"
    message: str


# Operator assignment


class ChatAccepted(LiveEvent):
    type: Literal["chat_accepted"] = "chat_accepted"
    operator_id: str
    operator_name: str


class AiChatIntervened(LiveEvent):
    type: Literal["ai_chat_intervened"] = "ai_chat_intervened"
    operator_id: str
    operator_name: str


class OperatorJoined(LiveEvent):
    type: Literal["operator_joined"] = "operator_joined"
    operator_id: str
    operator_name: str
    message: Message


class ChatTransferred(LiveEvent):
    type: Literal["chat_transferred"] = "chat_transferred"
    from_operator_id: str
    to_operator_id: str
    to_operator_name: str
    reason: str | None = None


# Transcript


class UserMessage(LiveEvent):
    type: Literal["user_message"] = "user_message"
    message: Message
    unread_count: int = 0


class OperatorMessage(LiveEvent):
    type: Literal["operator_message"] = "operator_message"
    message: Message


class AiChatUpdated(LiveEvent):
    type: Literal["ai_chat_updated"] = "ai_chat_updated"
    user_message: Message
    ai_message: Message


class UserNameCaptured(LiveEvent):
    type: Literal["user_name_captured"] = "user_name_captured"
    user_name: str


class Typing(LiveEvent):
    """Typing indicator. Relayed, never stored."""

    type: Literal["typing"] = "typing"
    sender: Literal["user", "operator"]
    is_typing: bool
    operator_id: str | None = None


# Closing and reopening


class ChatClosed(LiveEvent):
    type: Literal["chat_closed"] = "chat_closed"
    closure_reason: ClosureReason
    operator_id: str | None = None
    message: str | None = None


class ChatAutoClosed(LiveEvent):
    type: Literal["chat_auto_closed"] = "chat_auto_closed"
    closure_reason: ClosureReason
    operator_id: str


class ChatReopened(LiveEvent):
    type: Literal["chat_reopened"] = "chat_reopened"
    operator_id: str | None = None
    message: Message


# Escalation notices


class OperatorNotResponding(LiveEvent):
    type: Literal["operator_not_responding"] = "operator_not_responding"
    message: str


class ChatTimeoutCancelled(LiveEvent):
    type: Literal["chat_timeout_cancelled"] = "chat_timeout_cancelled"
    operator_id: str


class UserPresenceCheck(LiveEvent):
    type: Literal["user_presence_check"] = "user_presence_check"
    message: str
    countdown_seconds: int


class UserInactivityWarning(LiveEvent):
    type: Literal["user_inactivity_warning"] = "user_inactivity_warning"
    countdown_seconds: int


class UserConfirmedPresence(LiveEvent):
    type: Literal["user_confirmed_presence"] = "user_confirmed_presence"


class OperatorDisconnected(LiveEvent):
    type: Literal["operator_disconnected"] = "operator_disconnected"
    operator_id: str
    message: str


class UserDisconnected(LiveEvent):
    type: Literal["user_disconnected"] = "user_disconnected"
    timeout_seconds: int


class UserSpamDetected(LiveEvent):
    type: Literal["user_spam_detected"] = "user_spam_detected"
    attempts: int


# Dashboard housekeeping


class ChatArchived(LiveEvent):
    type: Literal["chat_archived"] = "chat_archived"
    operator_id: str


class ChatUnarchived(LiveEvent):
    type: Literal["chat_unarchived"] = "chat_unarchived"
    operator_id: str


class ChatFlagged(LiveEvent):
    type: Literal["chat_flagged"] = "chat_flagged"
    operator_id: str
    reason: str


class ChatUnflagged(LiveEvent):
    type: Literal["chat_unflagged"] = "chat_unflagged"
    operator_id: str


class ChatDeleted(LiveEvent):
    type: Literal["chat_deleted"] = "chat_deleted"
    operator_id: str


EVENT_VARIANTS: tuple[type[LiveEvent], ...] = (
    NewChatCreated,
    NewChatRequest,
    ChatWaitingOperator,
    OperatorRequestSent,
    OperatorRequestCancelled,
    ChatRequestCancelled,
    OperatorWaitTimeout,
    ChatAccepted,
    AiChatIntervened,
    OperatorJoined,
    ChatTransferred,
    UserMessage,
    OperatorMessage,
    AiChatUpdated,
    UserNameCaptured,
    Typing,
    ChatClosed,
    ChatAutoClosed,
    ChatReopened,
    OperatorNotResponding,
    ChatTimeoutCancelled,
    UserPresenceCheck,
    UserInactivityWarning,
    UserConfirmedPresence,
    OperatorDisconnected,
    UserDisconnected,
    UserSpamDetected,
    ChatArchived,
    ChatUnarchived,
    ChatFlagged,
    ChatUnflagged,
    ChatDeleted,
)

AnyLiveEvent = Annotated[Union[EVENT_VARIANTS], Field(discriminator="type")]

_adapter: TypeAdapter[AnyLiveEvent] = TypeAdapter(AnyLiveEvent)


def parse_event(data: dict[str, Any] | str | bytes) -> LiveEvent:
    """Parse a serialized event back into its variant."""
    if isinstance(data, (str, bytes)):
        return _adapter.validate_json(data)
    return _adapter.validate_python(data)


EVENT_TYPES: frozenset[str] = frozenset(
    variant.model_fields["type"].default for variant in EVENT_VARIANTS
)
