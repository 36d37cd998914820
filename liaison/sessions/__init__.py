"""Session lifecycle: state machine, mutation protocol and escalations."""

from liaison.sessions.escalation import EscalationScheduler
from liaison.sessions.lifecycle import SessionLifecycle
from liaison.sessions.models import (
    OperatorRatingStats,
    OperatorRequestResult,
    RatingsSummary,
    SendMessageResult,
    SessionHistory,
    SessionSnapshot,
)
from liaison.sessions.mutations import SessionMutations
from liaison.sessions.ratings import summarize_ratings

__all__ = [
    "EscalationScheduler",
    "OperatorRatingStats",
    "OperatorRequestResult",
    "RatingsSummary",
    "SendMessageResult",
    "SessionHistory",
    "SessionLifecycle",
    "SessionMutations",
    "SessionSnapshot",
    "summarize_ratings",
]
