"""Enums for the conversation domain."""

from enum import Enum


class SessionStatus(str, Enum):
    """Session lifecycle states.

    - ACTIVE: the automated responder handles visitor traffic
    - WAITING: the visitor asked for a human and nobody has accepted yet
    - WITH_OPERATOR: one operator owns the conversation
    - CLOSED: terminal, reopenable within the grace window
    """

    ACTIVE = "ACTIVE"
    WAITING = "WAITING"
    WITH_OPERATOR = "WITH_OPERATOR"
    CLOSED = "CLOSED"

    @property
    def is_open(self) -> bool:
        return self is not SessionStatus.CLOSED


class ClosureReason(str, Enum):
    """Why a session entered CLOSED."""

    OPERATOR_CLOSED = "OPERATOR_CLOSED"
    USER_ENDED = "USER_ENDED"
    OPERATOR_TIMEOUT = "OPERATOR_TIMEOUT"
    WAITING_TIMEOUT = "WAITING_TIMEOUT"
    USER_DISCONNECT_TIMEOUT = "USER_DISCONNECT_TIMEOUT"
    USER_INACTIVITY_TIMEOUT = "USER_INACTIVITY_TIMEOUT"
    AI_INACTIVITY_TIMEOUT = "AI_INACTIVITY_TIMEOUT"


class Priority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class MessageType(str, Enum):
    """Who authored a transcript entry."""

    USER = "USER"
    OPERATOR = "OPERATOR"
    AI = "AI"
    SYSTEM = "SYSTEM"
