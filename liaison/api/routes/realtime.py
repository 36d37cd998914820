"""WebSocket presence transport.

One connection per visitor widget or operator console. Clients send tagged
actions (see ``liaison.api.models.realtime``) and receive every event
published to the rooms they joined as ``{"room": ..., "event": {...}}``
frames. Failed actions are answered with an ``{"error": {...}}`` frame and
the connection stays open.
"""

from uuid import UUID

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from liaison.api.dependencies import BroadcastRouterDep, LifecycleDep, SessionStoreDep
from liaison.api.models.errors import ErrorBody, ErrorResponse
from liaison.api.models.realtime import (
    ClientAction,
    ConfirmPresence,
    JoinChat,
    JoinDashboard,
    LeaveChat,
    LeaveDashboard,
    OperatorJoin,
    TypingIndicator,
    VisitorJoin,
    VisitorLeave,
    client_action_adapter,
)
from liaison.conversation.store import SessionStore
from liaison.errors import (
    ErrorCode,
    ForbiddenError,
    InvalidRequestError,
    LiaisonError,
    OperatorNotFoundError,
)
from liaison.observability.logging import get_logger
from liaison.runtime.broadcast import BroadcastRouter
from liaison.runtime.events import LiveEvent, Room
from liaison.sessions.lifecycle import SessionLifecycle

logger = get_logger(__name__)

router = APIRouter()


class WebSocketSubscriber:
    """Forwards room events to one WebSocket connection."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def __call__(self, room: str, event: LiveEvent) -> None:
        await self._websocket.send_json(
            {"room": room, "event": event.model_dump(mode="json")}
        )


class Connection:
    """State of one WebSocket client: who it is and what it joined."""

    def __init__(
        self,
        websocket: WebSocket,
        lifecycle: SessionLifecycle,
        store: SessionStore,
        broadcast: BroadcastRouter,
    ) -> None:
        self.websocket = websocket
        self.subscriber = WebSocketSubscriber(websocket)
        self.operator_id: str | None = None
        self.visitor_session_id: UUID | None = None
        self._lifecycle = lifecycle
        self._store = store
        self._broadcast = broadcast

    def _require_operator(self) -> str:
        if self.operator_id is None:
            raise ForbiddenError("Send operator_join first")
        return self.operator_id

    def _require_visitor(self) -> UUID:
        if self.visitor_session_id is None:
            raise InvalidRequestError("Send visitor_join first")
        return self.visitor_session_id

    async def handle(self, action: ClientAction) -> None:
        if isinstance(action, OperatorJoin):
            if await self._store.get_operator(action.operator_id) is None:
                raise OperatorNotFoundError(action.operator_id)
            self.operator_id = action.operator_id
            self._broadcast.subscribe(Room.operator(action.operator_id), self.subscriber)
            await self._lifecycle.operator_connected(action.operator_id)
            logger.info("operator_connected", operator_id=action.operator_id)

        elif isinstance(action, JoinDashboard):
            self._require_operator()
            self._broadcast.subscribe(Room.DASHBOARD, self.subscriber)

        elif isinstance(action, LeaveDashboard):
            self._broadcast.unsubscribe(Room.DASHBOARD, self.subscriber)

        elif isinstance(action, JoinChat):
            self._require_operator()
            await self._lifecycle.get_session(action.session_id)
            self._broadcast.subscribe(Room.session(action.session_id), self.subscriber)

        elif isinstance(action, LeaveChat):
            self._broadcast.unsubscribe(Room.session(action.session_id), self.subscriber)

        elif isinstance(action, VisitorJoin):
            await self._lifecycle.get_session(action.session_id)
            self.visitor_session_id = action.session_id
            self._broadcast.subscribe(Room.session(action.session_id), self.subscriber)
            await self._lifecycle.visitor_connected(action.session_id)
            logger.info("visitor_connected", session_id=str(action.session_id))

        elif isinstance(action, VisitorLeave):
            session_id = self._require_visitor()
            self._broadcast.unsubscribe(Room.session(session_id), self.subscriber)
            self.visitor_session_id = None
            await self._lifecycle.visitor_disconnected(session_id)

        elif isinstance(action, ConfirmPresence):
            await self._lifecycle.confirm_presence(self._require_visitor())

        elif isinstance(action, TypingIndicator):
            await self._relay_typing(action)

    async def _relay_typing(self, action: TypingIndicator) -> None:
        if self.operator_id is not None:
            if action.session_id is None:
                raise InvalidRequestError("session_id is required for operator typing")
            self._lifecycle.relay_typing(
                action.session_id,
                "operator",
                action.is_typing,
                operator_id=self.operator_id,
            )
            return
        session_id = self._require_visitor()
        snapshot = await self._lifecycle.get_session(session_id)
        self._lifecycle.relay_typing(
            session_id,
            "user",
            action.is_typing,
            owner_id=snapshot.session.operator_id,
        )

    async def close(self) -> None:
        """Drop every subscription and report the disconnect."""
        self._broadcast.unsubscribe_all(self.subscriber)
        if self.operator_id is not None and not self._broadcast.has_subscribers(
            Room.operator(self.operator_id)
        ):
            await self._lifecycle.operator_disconnected(self.operator_id)
        if self.visitor_session_id is not None:
            await self._lifecycle.visitor_disconnected(self.visitor_session_id)


async def _send_error(websocket: WebSocket, error: ErrorBody) -> None:
    await websocket.send_json(ErrorResponse(error=error).model_dump(mode="json"))


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    lifecycle: LifecycleDep,
    store: SessionStoreDep,
    broadcast: BroadcastRouterDep,
) -> None:
    await websocket.accept()
    connection = Connection(websocket, lifecycle, store, broadcast)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                action = client_action_adapter.validate_json(raw)
            except ValidationError as e:
                await _send_error(
                    websocket,
                    ErrorBody(code=ErrorCode.INVALID_REQUEST, message=str(e.errors()[0]["msg"])),
                )
                continue
            try:
                await connection.handle(action)
            except LiaisonError as e:
                logger.warning(
                    "websocket_action_failed",
                    action=action.action,
                    error_code=e.error_code.value,
                    message=e.message,
                )
                await _send_error(websocket, ErrorBody(code=e.error_code, message=e.message))
                continue
            await websocket.send_json({"ack": action.action})
    except WebSocketDisconnect:
        logger.debug(
            "websocket_disconnected",
            operator_id=connection.operator_id,
            session_id=str(connection.visitor_session_id)
            if connection.visitor_session_id
            else None,
        )
    finally:
        await connection.close()
