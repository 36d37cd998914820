"""Conversation domain models.

- ChatSession and InternalNote for session state
- Message and Attachment for transcript entries
- Operator for support agents
- ChatRating for visitor feedback
"""

from liaison.conversation.models.enums import (
    ClosureReason,
    MessageType,
    Priority,
    SessionStatus,
)
from liaison.conversation.models.message import Attachment, Message
from liaison.conversation.models.operator import Operator
from liaison.conversation.models.rating import ChatRating
from liaison.conversation.models.session import ChatSession, InternalNote, utc_now

__all__ = [
    # Enums
    "ClosureReason",
    "MessageType",
    "Priority",
    "SessionStatus",
    # Session models
    "ChatSession",
    "InternalNote",
    # Transcript
    "Attachment",
    "Message",
    # Operators
    "Operator",
    # Ratings
    "ChatRating",
    "utc_now",
]
