"""Operator console endpoints.

The calling operator is identified by the ``X-Operator-Id`` header.
"""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Query, Response

from liaison.api.dependencies import LifecycleDep, OperatorIdDep
from liaison.api.models.session import (
    AvailabilityUpdate,
    FlagRequest,
    OperatorResponse,
    OperatorSessionResponse,
    PriorityUpdate,
    SendMessageRequest,
    SessionHistoryEntry,
    SessionResponse,
    TagsUpdate,
    TransferRequest,
    UserHistoryResponse,
)
from liaison.conversation.models import Message, SessionStatus
from liaison.errors import ForbiddenError
from liaison.observability.logging import get_logger
from liaison.sessions.models import RatingsSummary

logger = get_logger(__name__)

router = APIRouter()


@router.get("/operator/sessions", response_model=list[OperatorSessionResponse])
async def list_sessions(
    lifecycle: LifecycleDep,
    _operator_id: OperatorIdDep,
    status: SessionStatus | None = Query(default=None, description="Filter by status"),
    mine: bool = Query(default=False, description="Only sessions the caller owns"),
    archived: bool | None = Query(default=None, description="Filter by archive state"),
    flagged: bool | None = Query(default=None, description="Filter by flag state"),
    limit: int = Query(default=100, ge=1, le=500),
) -> list[OperatorSessionResponse]:
    """List sessions, most recently active first. Deleted sessions never appear."""
    sessions = await lifecycle.list_sessions(
        status=status,
        operator_id=_operator_id if mine else None,
        archived=archived,
        flagged=flagged,
        limit=limit,
    )
    return [OperatorSessionResponse.from_session(s) for s in sessions]


@router.post("/operator/sessions/{session_id}/accept", response_model=SessionResponse)
async def accept_session(
    session_id: UUID,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
) -> SessionResponse:
    """Accept a waiting session. Losers of a concurrent accept get 409."""
    logger.info("accept_request", session_id=str(session_id), operator_id=operator_id)
    session = await lifecycle.accept(session_id, operator_id)
    return SessionResponse.from_session(session, operator_online=True)


@router.post("/operator/sessions/{session_id}/intervene", response_model=SessionResponse)
async def intervene_session(
    session_id: UUID,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
) -> SessionResponse:
    """Take over a session the responder is handling."""
    session = await lifecycle.intervene(session_id, operator_id)
    return SessionResponse.from_session(session, operator_online=True)


@router.post(
    "/operator/sessions/{session_id}/messages", response_model=Message, status_code=201
)
async def send_operator_message(
    session_id: UUID,
    request: SendMessageRequest,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
) -> Message:
    return await lifecycle.send_operator_message(
        session_id, operator_id, request.content, request.attachment
    )


@router.post("/operator/sessions/{session_id}/close", response_model=SessionResponse)
async def close_session(
    session_id: UUID,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
) -> SessionResponse:
    session = await lifecycle.close_session(session_id, operator_id)
    return SessionResponse.from_session(session)


@router.post("/operator/sessions/{session_id}/transfer", response_model=SessionResponse)
async def transfer_session(
    session_id: UUID,
    request: TransferRequest,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
) -> SessionResponse:
    """Hand an owned session to another available operator."""
    session = await lifecycle.transfer_session(
        session_id, operator_id, request.to_operator_id, request.reason
    )
    return SessionResponse.from_session(session)


@router.post("/operator/sessions/{session_id}/mark-read", response_model=SessionResponse)
async def mark_read(
    session_id: UUID,
    lifecycle: LifecycleDep,
    _operator_id: OperatorIdDep,
) -> SessionResponse:
    session = await lifecycle.mark_read(session_id)
    return SessionResponse.from_session(session)


@router.put("/operator/sessions/{session_id}/priority", response_model=SessionResponse)
async def update_priority(
    session_id: UUID,
    request: PriorityUpdate,
    lifecycle: LifecycleDep,
    _operator_id: OperatorIdDep,
) -> SessionResponse:
    session = await lifecycle.update_priority(session_id, request.priority)
    return SessionResponse.from_session(session)


@router.put("/operators/{operator_id}/availability", response_model=OperatorResponse)
async def set_availability(
    operator_id: str,
    request: AvailabilityUpdate,
    lifecycle: LifecycleDep,
    caller_id: OperatorIdDep,
) -> OperatorResponse:
    """Operators can only change their own availability."""
    if caller_id != operator_id:
        raise ForbiddenError("Operators can only change their own availability")
    operator = await lifecycle.set_operator_availability(operator_id, request.available)
    return OperatorResponse(
        operator_id=operator.operator_id,
        name=operator.name,
        is_available=operator.is_available,
        total_chats_handled=operator.total_chats_handled,
    )


# Dashboard housekeeping


@router.post(
    "/operator/sessions/{session_id}/archive", response_model=OperatorSessionResponse
)
async def archive_session(
    session_id: UUID,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
) -> OperatorSessionResponse:
    session = await lifecycle.archive_session(session_id, operator_id)
    return OperatorSessionResponse.from_session(session)


@router.post(
    "/operator/sessions/{session_id}/unarchive", response_model=OperatorSessionResponse
)
async def unarchive_session(
    session_id: UUID,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
) -> OperatorSessionResponse:
    session = await lifecycle.unarchive_session(session_id, operator_id)
    return OperatorSessionResponse.from_session(session)


@router.post("/operator/sessions/{session_id}/flag", response_model=OperatorSessionResponse)
async def flag_session(
    session_id: UUID,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
    request: FlagRequest | None = None,
) -> OperatorSessionResponse:
    """Flag a session for follow-up. The body and its reason are optional."""
    reason = request.reason if request else None
    session = await lifecycle.flag_session(session_id, operator_id, reason)
    return OperatorSessionResponse.from_session(session)


@router.post(
    "/operator/sessions/{session_id}/unflag", response_model=OperatorSessionResponse
)
async def unflag_session(
    session_id: UUID,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
) -> OperatorSessionResponse:
    session = await lifecycle.unflag_session(session_id, operator_id)
    return OperatorSessionResponse.from_session(session)


@router.put("/operator/sessions/{session_id}/tags", response_model=OperatorSessionResponse)
async def update_tags(
    session_id: UUID,
    request: TagsUpdate,
    lifecycle: LifecycleDep,
    _operator_id: OperatorIdDep,
) -> OperatorSessionResponse:
    session = await lifecycle.update_tags(session_id, request.tags)
    return OperatorSessionResponse.from_session(session)


@router.delete("/operator/sessions/{session_id}", status_code=204)
async def delete_session(
    session_id: UUID,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
) -> Response:
    """Soft-delete a closed session; it then reads as 404 everywhere."""
    await lifecycle.delete_session(session_id, operator_id)
    return Response(status_code=204)


@router.get("/operator/users/{user_id}/history", response_model=UserHistoryResponse)
async def user_history(
    user_id: str,
    lifecycle: LifecycleDep,
    _operator_id: OperatorIdDep,
) -> UserHistoryResponse:
    """Every session of one visitor, newest first, with up to 100 messages each."""
    history = await lifecycle.user_history(user_id)
    return UserHistoryResponse(
        user_id=user_id,
        sessions=[
            SessionHistoryEntry(
                session=OperatorSessionResponse.from_session(entry.session),
                messages=entry.messages,
                message_count=entry.message_count,
            )
            for entry in history
        ],
    )


@router.get("/operator/ratings/analytics", response_model=RatingsSummary)
async def ratings_analytics(
    lifecycle: LifecycleDep,
    _operator_id: OperatorIdDep,
    operator_id: str | None = Query(default=None, description="Only this operator"),
    start_date: datetime | None = Query(default=None, description="Inclusive lower bound"),
    end_date: datetime | None = Query(default=None, description="Inclusive upper bound"),
) -> RatingsSummary:
    """Rating totals, score distribution and per-operator averages.

    Dates without a timezone are taken as UTC.
    """
    return await lifecycle.ratings_analytics(
        operator_id=operator_id, since=_as_utc(start_date), until=_as_utc(end_date)
    )


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
