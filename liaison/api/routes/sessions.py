"""Visitor session endpoints.

Used by the chat widget: start a conversation, send messages, ask for a
human, end or reopen the chat, and rate it afterwards.
"""

from uuid import UUID

from fastapi import APIRouter, Query

from liaison.api.dependencies import LifecycleDep
from liaison.api.models.session import (
    CreateSessionRequest,
    MessageListResponse,
    OperatorRequestResponse,
    RatingRequest,
    SendMessageRequest,
    SendMessageResponse,
    SessionResponse,
)
from liaison.conversation.models import ChatRating
from liaison.observability.logging import bind_session_context, get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/sessions")


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(
    request: CreateSessionRequest,
    lifecycle: LifecycleDep,
) -> SessionResponse:
    """Start a new conversation handled by the automated responder."""
    session = await lifecycle.create_session(
        user_name=request.user_name,
        user_id=request.user_id,
        user_email=request.user_email,
    )
    return SessionResponse.from_session(session)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: UUID, lifecycle: LifecycleDep) -> SessionResponse:
    """Get a session, including whether its operator is currently online.

    Returns 410 once the session is older than the maximum session age.
    """
    snapshot = await lifecycle.get_session(session_id)
    return SessionResponse.from_session(snapshot.session, snapshot.operator_online)


@router.get("/{session_id}/messages", response_model=MessageListResponse)
async def list_messages(
    session_id: UUID,
    lifecycle: LifecycleDep,
    limit: int | None = Query(default=None, ge=1, le=500),
) -> MessageListResponse:
    messages = await lifecycle.list_messages(session_id, limit)
    return MessageListResponse(messages=messages)


@router.post("/{session_id}/messages", response_model=SendMessageResponse, status_code=201)
async def send_message(
    session_id: UUID,
    request: SendMessageRequest,
    lifecycle: LifecycleDep,
) -> SendMessageResponse:
    """Send a visitor message.

    While an operator owns the session the message goes to the operator;
    otherwise the responder answers in the same response. Returns 429 with
    ``retry_after_seconds`` when the visitor is sending too fast.
    """
    bind_session_context(str(session_id))
    result = await lifecycle.send_user_message(
        session_id, request.content, request.attachment
    )
    return SendMessageResponse(
        message=result.message,
        ai_message=result.ai_message,
        with_operator=result.with_operator,
        suggest_operator=bool(result.ai_message and result.ai_message.ai_suggest_operator),
    )


@router.post("/{session_id}/request-operator", response_model=OperatorRequestResponse)
async def request_operator(
    session_id: UUID,
    lifecycle: LifecycleDep,
) -> OperatorRequestResponse:
    """Ask for a human operator.

    ``operator_available`` is false (and the session stays with the
    responder) when no operator is available.
    """
    bind_session_context(str(session_id))
    result = await lifecycle.request_operator(session_id)
    return OperatorRequestResponse(
        operator_available=result.operator_available,
        operators_notified=result.operators_notified,
        status=result.session.status,
    )


@router.post("/{session_id}/cancel-operator-request", response_model=SessionResponse)
async def cancel_operator_request(
    session_id: UUID,
    lifecycle: LifecycleDep,
) -> SessionResponse:
    session = await lifecycle.cancel_operator_request(session_id)
    return SessionResponse.from_session(session)


@router.post("/{session_id}/end", response_model=SessionResponse)
async def end_session(session_id: UUID, lifecycle: LifecycleDep) -> SessionResponse:
    session = await lifecycle.end_session(session_id)
    return SessionResponse.from_session(session)


@router.post("/{session_id}/reopen", response_model=SessionResponse)
async def reopen_session(session_id: UUID, lifecycle: LifecycleDep) -> SessionResponse:
    """Reopen a closed session within the grace window (410 after it)."""
    session = await lifecycle.reopen_session(session_id)
    return SessionResponse.from_session(session)


@router.post("/{session_id}/rating", response_model=ChatRating, status_code=201)
async def submit_rating(
    session_id: UUID,
    request: RatingRequest,
    lifecycle: LifecycleDep,
) -> ChatRating:
    """Rate the conversation from 1 to 5. A session can be rated once (400 after)."""
    return await lifecycle.submit_rating(session_id, request.rating, request.comment)
