"""Session state machine.

States and the operations that move between them:

    ACTIVE --request_operator--> WAITING --accept--> WITH_OPERATOR
    ACTIVE --intervene--> WITH_OPERATOR
    WAITING --cancel_operator_request / waiting timeout--> ACTIVE
    any open state --close_session / end_session / timeouts--> CLOSED
    CLOSED --reopen_session (within the grace window)--> WITH_OPERATOR | ACTIVE

Every transition runs inside a locked session transaction, then adjusts the
escalation timers, then publishes live events. Timer callbacks re-enter
through the ``on_*`` handlers and re-check the status under the lock before
acting.
"""

from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Literal
from uuid import UUID

from liaison.config.models.escalation import EscalationConfig
from liaison.config.models.lifecycle import LifecycleConfig
from liaison.config.models.rate_limit import RateLimitConfig
from liaison.config.models.storage import StorageConfig
from liaison.conversation.models import (
    Attachment,
    ChatRating,
    ChatSession,
    ClosureReason,
    Message,
    MessageType,
    Operator,
    Priority,
    SessionStatus,
)
from liaison.conversation.store import SessionStore, SessionTransaction
from liaison.errors import (
    AlreadyAcceptedError,
    ErrorCode,
    ExpiredError,
    ForbiddenError,
    InternalError,
    InvalidRequestError,
    InvalidTransitionError,
    OperatorNotFoundError,
    RateLimitedError,
    SessionNotFoundError,
)
from liaison.observability.logging import get_logger
from liaison.observability.metrics import SESSION_TRANSITIONS
from liaison.providers.responder import Responder, ResponderError
from liaison.providers.transcript import LoggingTranscriptSender, TranscriptSender
from liaison.runtime.broadcast import BroadcastRouter
from liaison.runtime.clock import Clock
from liaison.runtime.events import (
    AiChatIntervened,
    AiChatUpdated,
    ChatAccepted,
    ChatArchived,
    ChatAutoClosed,
    ChatClosed,
    ChatDeleted,
    ChatFlagged,
    ChatReopened,
    ChatRequestCancelled,
    ChatTimeoutCancelled,
    ChatTransferred,
    ChatUnarchived,
    ChatUnflagged,
    ChatWaitingOperator,
    LiveEvent,
    NewChatCreated,
    NewChatRequest,
    OperatorDisconnected,
    OperatorJoined,
    OperatorMessage,
    OperatorNotResponding,
    OperatorRequestCancelled,
    OperatorRequestSent,
    OperatorWaitTimeout,
    Room,
    Typing,
    UserConfirmedPresence,
    UserDisconnected,
    UserInactivityWarning,
    UserMessage,
    UserNameCaptured,
    UserPresenceCheck,
    UserSpamDetected,
)
from liaison.runtime.rate_limit import SpamGuard
from liaison.runtime.timers import TimerRegistry
from liaison.sessions.escalation import EscalationScheduler
from liaison.sessions.models import (
    OperatorRequestResult,
    RatingsSummary,
    SendMessageResult,
    SessionHistory,
    SessionSnapshot,
)
from liaison.sessions.mutations import SessionMutations
from liaison.sessions.name_capture import extract_user_name
from liaison.sessions.ratings import summarize_ratings

logger = get_logger(__name__)

CLOSING_MESSAGES: dict[ClosureReason, str] = {
    ClosureReason.USER_ENDED: "The visitor ended the chat.",
    ClosureReason.OPERATOR_TIMEOUT: (
        "No operator could answer right now, so this chat has been closed. "
        "Please try again later."
    ),
    ClosureReason.USER_INACTIVITY_TIMEOUT: "The chat was closed due to inactivity.",
    ClosureReason.USER_DISCONNECT_TIMEOUT: "The visitor left the chat.",
    ClosureReason.AI_INACTIVITY_TIMEOUT: "The chat was closed due to inactivity.",
}

WAIT_TIMEOUT_MESSAGE = (
    "No operator is available at the moment. You can keep chatting with the "
    "assistant or try again later."
)
DEFAULT_FLAG_REASON = "Flagged by operator"
HISTORY_MESSAGE_LIMIT = 100
MAX_TAGS = 20

PRESENCE_CHECK_MESSAGE = "Are you still there?"
OPERATOR_DISCONNECTED_MESSAGE = "The operator lost connection and may be back shortly."


class SessionLifecycle:
    """Authoritative transitions for live support sessions.

    Collaborators are injected so tests can drive time with a ManualClock
    and inspect events through BroadcastRouter subscriptions.
    """

    def __init__(
        self,
        store: SessionStore,
        router: BroadcastRouter,
        clock: Clock,
        timers: TimerRegistry,
        responder: Responder,
        *,
        escalation: EscalationConfig | None = None,
        rate_limit: RateLimitConfig | None = None,
        lifecycle: LifecycleConfig | None = None,
        storage: StorageConfig | None = None,
        transcript_sender: TranscriptSender | None = None,
    ) -> None:
        storage = storage or StorageConfig()
        self._store = store
        self._router = router
        self._clock = clock
        self._responder = responder
        self._config = lifecycle or LifecycleConfig()
        self._transcripts = transcript_sender or LoggingTranscriptSender()
        self._mutations = SessionMutations(store, lock_retries=storage.lock_retries)
        self._escalation = EscalationScheduler(
            timers, escalation or EscalationConfig(), self
        )
        self._spam_guard = SpamGuard(clock, rate_limit)
        # Open visitor transports per session (several tabs share one session)
        self._visitor_connections: Counter[UUID] = Counter()

    @property
    def mutations(self) -> SessionMutations:
        return self._mutations

    @property
    def escalation(self) -> EscalationScheduler:
        return self._escalation

    @property
    def spam_guard(self) -> SpamGuard:
        return self._spam_guard

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, session_id: UUID) -> ChatSession:
        session = await self._store.get_session(session_id)
        if session is None or session.is_deleted:
            raise SessionNotFoundError(str(session_id))
        return session

    async def _require_operator(self, operator_id: str) -> Operator:
        operator = await self._store.get_operator(operator_id)
        if operator is None:
            raise OperatorNotFoundError(operator_id)
        return operator

    def _publish(self, rooms: str | Iterable[str], event: LiveEvent) -> None:
        if isinstance(rooms, str):
            rooms = [rooms]
        self._router.publish_many(rooms, event)

    def _record_transition(
        self,
        session_id: UUID,
        from_status: SessionStatus,
        to_status: SessionStatus,
        trigger: str,
        **context: object,
    ) -> None:
        SESSION_TRANSITIONS.labels(
            from_status=from_status.value,
            to_status=to_status.value,
            trigger=trigger,
        ).inc()
        logger.info(
            "session_transition",
            session_id=str(session_id),
            from_status=from_status.value,
            to_status=to_status.value,
            trigger=trigger,
            **context,
        )

    def _system_message(self, session_id: UUID, content: str) -> Message:
        return Message(session_id=session_id, type=MessageType.SYSTEM, content=content)

    def _close(
        self,
        tx: SessionTransaction,
        reason: ClosureReason,
        content: str | None = None,
    ) -> Message | None:
        """Stage the move to CLOSED, with an optional system message."""
        stored = None
        if content:
            stored = tx.append_message(self._system_message(tx.session.session_id, content))
        tx.update(
            status=SessionStatus.CLOSED,
            operator_id=None,
            operator_assigned_at=None,
            closure_reason=reason,
            closed_at=tx.now(),
        )
        return stored

    def _after_close(self, session_id: UUID) -> None:
        self._escalation.cancel_session(session_id)
        self._spam_guard.reset(session_id)

    # ------------------------------------------------------------------
    # Visitor operations
    # ------------------------------------------------------------------

    async def create_session(
        self,
        *,
        user_name: str | None = None,
        user_id: str | None = None,
        user_email: str | None = None,
    ) -> ChatSession:
        now = self._clock.now()
        session = await self._store.create_session(
            ChatSession(
                user_name=user_name,
                user_id=user_id,
                user_email=user_email,
                created_at=now,
                updated_at=now,
            )
        )

        self._escalation.start_ai_inactivity(session.session_id)
        self._publish(
            Room.DASHBOARD,
            NewChatCreated(session_id=session.session_id, user_name=user_name),
        )
        logger.info("session_created", session_id=str(session.session_id))
        return session

    async def get_session(self, session_id: UUID) -> SessionSnapshot:
        """Read a session.

        Raises:
            SessionNotFoundError: No such session
            ExpiredError: The session is older than the maximum session age
        """
        session = await self._load(session_id)
        max_age = timedelta(seconds=self._config.max_session_age_seconds)
        if self._clock.now() - session.created_at > max_age:
            raise ExpiredError(
                f"Session {session_id} has expired",
                error_code=ErrorCode.SESSION_EXPIRED,
            )

        online = session.operator_id is not None and self._router.has_subscribers(
            Room.operator(session.operator_id)
        )
        return SessionSnapshot(session=session, operator_online=online)

    async def list_messages(
        self, session_id: UUID, limit: int | None = None
    ) -> list[Message]:
        await self._load(session_id)
        return await self._store.list_messages(session_id, limit)

    async def send_user_message(
        self,
        session_id: UUID,
        content: str,
        attachment: Attachment | None = None,
    ) -> SendMessageResult:
        """Store a visitor message and route it to the operator or responder.

        Raises:
            InvalidTransitionError: The session is closed
            RateLimitedError: Too many messages in the current window
        """
        session = await self._load(session_id)
        if session.status == SessionStatus.CLOSED:
            raise InvalidTransitionError("Cannot send messages to a closed session")

        decision = self._spam_guard.check(
            session_id, can_notify=session.operator_id is not None
        )
        if decision.spam_detected:
            self._publish(
                Room.operator(session.operator_id),
                UserSpamDetected(session_id=session_id, attempts=decision.count),
            )
        if not decision.allowed:
            raise RateLimitedError(
                "Too many messages, please slow down",
                retry_after_seconds=decision.retry_after_seconds,
            )

        # The responder is called without holding the lock
        reply = None
        if session.status != SessionStatus.WITH_OPERATOR:
            history = await self._store.list_messages(
                session_id, self._config.responder_history_limit
            )
            try:
                reply = await self._responder.respond(content, history)
            except ResponderError as e:
                logger.error(
                    "responder_failed",
                    session_id=str(session_id),
                    provider=self._responder.provider_name,
                    error=str(e),
                )
                raise InternalError("The assistant is unavailable right now") from e

        user_message = Message(
            session_id=session_id,
            type=MessageType.USER,
            content=content,
            attachment=attachment,
        )
        captured_name = None
        ai_message = None

        async with self._mutations.transaction(session_id) as tx:
            status = tx.session.status
            if status == SessionStatus.CLOSED:
                raise InvalidTransitionError("Cannot send messages to a closed session")

            if status == SessionStatus.WITH_OPERATOR:
                if not tx.session.user_name and self._config.capture_user_name:
                    captured_name = extract_user_name(content)
                stored = tx.append_message(user_message)
                changes: dict[str, object] = {"unread_count": tx.session.unread_count + 1}
                if captured_name:
                    changes["user_name"] = captured_name
                tx.update(**changes)
            else:
                stored = tx.append_message(user_message)
                if reply is not None:
                    threshold = self._config.escalation_confidence_threshold
                    ai_message = tx.append_message(
                        Message(
                            session_id=session_id,
                            type=MessageType.AI,
                            content=reply.text,
                            ai_confidence=reply.confidence,
                            ai_suggest_operator=(
                                reply.should_escalate or reply.confidence < threshold
                            ),
                        )
                    )
            session = tx.session

        if session.status == SessionStatus.WITH_OPERATOR:
            operator_room = Room.operator(session.operator_id)
            if captured_name:
                logger.info("user_name_captured", session_id=str(session_id))
                self._publish(
                    operator_room,
                    UserNameCaptured(session_id=session_id, user_name=captured_name),
                )
            self._publish(
                [operator_room, Room.session(session_id)],
                UserMessage(
                    session_id=session_id,
                    message=stored,
                    unread_count=session.unread_count,
                ),
            )
            self._escalation.restart_user_inactivity(session_id)
            return SendMessageResult(message=stored, with_operator=True, session=session)

        if session.status == SessionStatus.ACTIVE:
            self._escalation.start_ai_inactivity(session_id)
        if ai_message is not None:
            self._publish(
                Room.DASHBOARD,
                AiChatUpdated(
                    session_id=session_id, user_message=stored, ai_message=ai_message
                ),
            )
        return SendMessageResult(message=stored, ai_message=ai_message, session=session)

    async def request_operator(self, session_id: UUID) -> OperatorRequestResult:
        """Ask for a human. Stays ACTIVE when no operator is available."""
        session = await self._load(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise InvalidTransitionError(
                f"Cannot request an operator while {session.status.value}"
            )

        operators = await self._store.list_available_operators()
        if not operators:
            logger.info("no_operator_available", session_id=str(session_id))
            return OperatorRequestResult(operator_available=False, session=session)

        async with self._mutations.transaction(session_id) as tx:
            if tx.session.status != SessionStatus.ACTIVE:
                raise InvalidTransitionError(
                    f"Cannot request an operator while {tx.session.status.value}"
                )
            session = tx.update(status=SessionStatus.WAITING)
            recent = await tx.list_messages(1)

        self._escalation.cancel_ai_inactivity(session_id)
        self._escalation.start_waiting(session_id)
        self._record_transition(
            session_id, SessionStatus.ACTIVE, SessionStatus.WAITING, "request_operator"
        )

        preview = recent[-1].content if recent else None
        for operator in operators:
            self._publish(
                Room.operator(operator.operator_id),
                NewChatRequest(
                    session_id=session_id,
                    user_name=session.user_name,
                    priority=session.priority,
                    last_message=preview,
                ),
            )
        self._publish(
            Room.DASHBOARD,
            ChatWaitingOperator(
                session_id=session_id,
                user_name=session.user_name,
                operators_notified=len(operators),
            ),
        )
        self._publish(
            Room.session(session_id),
            OperatorRequestSent(
                session_id=session_id,
                operators_notified=len(operators),
                timeout_seconds=int(self._escalation.config.waiting_timeout_seconds),
            ),
        )
        return OperatorRequestResult(
            operator_available=True,
            operators_notified=len(operators),
            session=session,
        )

    async def cancel_operator_request(self, session_id: UUID) -> ChatSession:
        async with self._mutations.transaction(session_id) as tx:
            if tx.session.status != SessionStatus.WAITING:
                raise InvalidTransitionError("No operator request is pending")
            session = tx.update(status=SessionStatus.ACTIVE)

        self._escalation.cancel_waiting(session_id)
        self._escalation.start_ai_inactivity(session_id)
        self._record_transition(
            session_id, SessionStatus.WAITING, SessionStatus.ACTIVE, "cancel_request"
        )
        self._publish(
            Room.DASHBOARD,
            ChatRequestCancelled(session_id=session_id, reason="cancelled_by_user"),
        )
        self._publish(
            Room.session(session_id), OperatorRequestCancelled(session_id=session_id)
        )
        return session

    async def end_session(self, session_id: UUID) -> ChatSession:
        """The visitor ends the conversation."""
        async with self._mutations.transaction(session_id) as tx:
            previous = tx.session.status
            if previous == SessionStatus.CLOSED:
                raise InvalidTransitionError("Session is already closed")
            operator_id = tx.session.operator_id
            self._close(tx, ClosureReason.USER_ENDED, CLOSING_MESSAGES[ClosureReason.USER_ENDED])
            session = tx.session

        self._after_close(session_id)
        self._record_transition(session_id, previous, SessionStatus.CLOSED, "user_ended")
        self._publish(
            [Room.session(session_id), Room.DASHBOARD],
            ChatClosed(
                session_id=session_id,
                closure_reason=ClosureReason.USER_ENDED,
                operator_id=operator_id,
            ),
        )
        return session

    async def reopen_session(self, session_id: UUID) -> ChatSession:
        """Reopen a closed session within the grace window.

        The previous owner gets the session back; a session that never had
        an operator returns to the responder.

        Raises:
            InvalidTransitionError: The session is not closed
            ExpiredError: The grace window has passed
        """
        window = timedelta(seconds=self._config.reopen_window_seconds)
        async with self._mutations.transaction(session_id) as tx:
            session = tx.session
            if session.status != SessionStatus.CLOSED:
                raise InvalidTransitionError("Only closed sessions can be reopened")
            if session.closed_at is None or tx.now() - session.closed_at > window:
                raise ExpiredError(
                    "This chat was closed too long ago to be reopened",
                    error_code=ErrorCode.REOPEN_WINDOW_EXPIRED,
                )

            owner = session.last_operator_id
            message = tx.append_message(
                self._system_message(session_id, "The chat was reopened.")
            )
            if owner:
                session = tx.update(
                    status=SessionStatus.WITH_OPERATOR,
                    operator_id=owner,
                    operator_assigned_at=tx.now(),
                    closure_reason=None,
                    closed_at=None,
                )
            else:
                session = tx.update(
                    status=SessionStatus.ACTIVE,
                    closure_reason=None,
                    closed_at=None,
                )

        self._record_transition(
            session_id, SessionStatus.CLOSED, session.status, "reopen", operator_id=owner
        )
        event = ChatReopened(session_id=session_id, operator_id=owner, message=message)
        if owner:
            self._escalation.start_operator_response(session_id)
            self._escalation.restart_user_inactivity(session_id)
            self._publish([Room.session(session_id), Room.operator(owner)], event)
        else:
            self._escalation.start_ai_inactivity(session_id)
            self._publish([Room.session(session_id), Room.DASHBOARD], event)
        return session

    async def confirm_presence(self, session_id: UUID) -> None:
        """The visitor answered the presence check."""
        session = await self._load(session_id)
        if session.status != SessionStatus.WITH_OPERATOR:
            return
        self._escalation.restart_user_inactivity(session_id)
        self._publish(Room.session(session_id), UserConfirmedPresence(session_id=session_id))

    # ------------------------------------------------------------------
    # Operator operations
    # ------------------------------------------------------------------

    async def list_sessions(
        self,
        *,
        status: SessionStatus | None = None,
        operator_id: str | None = None,
        archived: bool | None = None,
        flagged: bool | None = None,
        limit: int = 100,
    ) -> list[ChatSession]:
        return await self._store.list_sessions(
            status=status,
            operator_id=operator_id,
            archived=archived,
            flagged=flagged,
            limit=limit,
        )

    async def _assign(
        self,
        session_id: UUID,
        operator: Operator,
        expected: SessionStatus,
    ) -> ChatSession:
        """Atomically move ``expected`` -> WITH_OPERATOR for ``operator``."""
        now = self._clock.now()
        won = await self._mutations.conditional_update(
            session_id,
            expected,
            status=SessionStatus.WITH_OPERATOR,
            operator_id=operator.operator_id,
            operator_assigned_at=now,
            last_operator_id=operator.operator_id,
        )
        if not won:
            current = await self._load(session_id)
            if current.status == SessionStatus.WITH_OPERATOR:
                raise AlreadyAcceptedError(str(session_id))
            raise InvalidTransitionError(
                f"Session is {current.status.value}, expected {expected.value}"
            )

        joined = await self._mutations.append_message(
            session_id,
            self._system_message(session_id, f"{operator.name} joined the chat."),
        )
        await self._store.increment_chats_handled(operator.operator_id)

        self._escalation.cancel_waiting(session_id)
        self._escalation.cancel_ai_inactivity(session_id)
        self._escalation.start_operator_response(session_id)
        self._escalation.restart_user_inactivity(session_id)

        self._publish(
            Room.session(session_id),
            OperatorJoined(
                session_id=session_id,
                operator_id=operator.operator_id,
                operator_name=operator.name,
                message=joined,
            ),
        )
        return await self._load(session_id)

    async def accept(self, session_id: UUID, operator_id: str) -> ChatSession:
        """Take a WAITING session. Exactly one concurrent acceptor wins.

        Raises:
            AlreadyAcceptedError: Another operator won the race
            InvalidTransitionError: The session is ACTIVE or CLOSED
        """
        operator = await self._require_operator(operator_id)
        session = await self._assign(session_id, operator, SessionStatus.WAITING)

        self._record_transition(
            session_id,
            SessionStatus.WAITING,
            SessionStatus.WITH_OPERATOR,
            "accept",
            operator_id=operator_id,
        )
        self._publish(
            Room.DASHBOARD,
            ChatAccepted(
                session_id=session_id,
                operator_id=operator_id,
                operator_name=operator.name,
            ),
        )
        self._publish(
            Room.DASHBOARD,
            ChatRequestCancelled(session_id=session_id, reason="accepted"),
        )
        return session

    async def intervene(self, session_id: UUID, operator_id: str) -> ChatSession:
        """Take over a session the responder is handling."""
        operator = await self._require_operator(operator_id)
        session = await self._assign(session_id, operator, SessionStatus.ACTIVE)

        self._record_transition(
            session_id,
            SessionStatus.ACTIVE,
            SessionStatus.WITH_OPERATOR,
            "intervene",
            operator_id=operator_id,
        )
        self._publish(
            Room.DASHBOARD,
            AiChatIntervened(
                session_id=session_id,
                operator_id=operator_id,
                operator_name=operator.name,
            ),
        )
        return session

    async def send_operator_message(
        self,
        session_id: UUID,
        operator_id: str,
        content: str,
        attachment: Attachment | None = None,
    ) -> Message:
        """Store a message from the owning operator.

        Raises:
            InvalidTransitionError: The session is not WITH_OPERATOR
            ForbiddenError: Another operator owns the session
        """
        operator = await self._require_operator(operator_id)
        session = await self._load(session_id)
        self._check_owner(session, operator_id)

        async with self._mutations.transaction(session_id) as tx:
            self._check_owner(tx.session, operator_id)
            stored = tx.append_message(
                Message(
                    session_id=session_id,
                    type=MessageType.OPERATOR,
                    content=content,
                    attachment=attachment,
                    operator_id=operator_id,
                    operator_name=operator.name,
                )
            )

        self._escalation.cancel_operator_response(session_id)
        self._publish(
            Room.session(session_id),
            OperatorMessage(session_id=session_id, message=stored),
        )
        return stored

    @staticmethod
    def _check_owner(session: ChatSession, operator_id: str) -> None:
        if session.status != SessionStatus.WITH_OPERATOR:
            raise InvalidTransitionError(
                f"Session is {session.status.value}, not WITH_OPERATOR"
            )
        if session.operator_id != operator_id:
            raise ForbiddenError("Another operator owns this session")

    async def close_session(self, session_id: UUID, operator_id: str) -> ChatSession:
        """Close an open session on an operator's behalf."""
        operator = await self._require_operator(operator_id)

        async with self._mutations.transaction(session_id) as tx:
            previous = tx.session.status
            if previous == SessionStatus.CLOSED:
                raise InvalidTransitionError("Session is already closed")
            self._close(tx, ClosureReason.OPERATOR_CLOSED, f"{operator.name} closed the chat.")
            session = tx.session

        self._after_close(session_id)
        await self._store.increment_chats_handled(operator_id)
        self._record_transition(
            session_id,
            previous,
            SessionStatus.CLOSED,
            "operator_closed",
            operator_id=operator_id,
        )
        self._publish(
            [Room.session(session_id), Room.DASHBOARD],
            ChatClosed(
                session_id=session_id,
                closure_reason=ClosureReason.OPERATOR_CLOSED,
                operator_id=operator_id,
            ),
        )

        if session.user_email:
            await self._send_transcript(session)
        return session

    async def _send_transcript(self, session: ChatSession) -> None:
        messages = await self._store.list_messages(session.session_id)
        try:
            await self._transcripts.send_transcript(session, messages)
        except Exception as e:
            # Closing already happened; the hand-off is not retried
            logger.error(
                "transcript_handoff_failed",
                session_id=str(session.session_id),
                error=str(e),
            )

    async def transfer_session(
        self,
        session_id: UUID,
        from_operator_id: str,
        to_operator_id: str,
        reason: str | None = None,
    ) -> ChatSession:
        """Hand an owned session to another available operator."""
        if from_operator_id == to_operator_id:
            raise InvalidRequestError("Cannot transfer a session to its current owner")
        await self._require_operator(from_operator_id)
        target = await self._require_operator(to_operator_id)
        if not target.is_available:
            raise InvalidRequestError(f"Operator {to_operator_id} is not available")

        async with self._mutations.transaction(session_id) as tx:
            self._check_owner(tx.session, from_operator_id)
            tx.append_message(
                self._system_message(session_id, f"Chat transferred to {target.name}.")
            )
            session = tx.update(
                operator_id=to_operator_id,
                last_operator_id=to_operator_id,
                operator_assigned_at=tx.now(),
            )

        self._escalation.start_operator_response(session_id)
        logger.info(
            "session_transferred",
            session_id=str(session_id),
            from_operator_id=from_operator_id,
            to_operator_id=to_operator_id,
        )
        self._publish(
            [
                Room.operator(from_operator_id),
                Room.operator(to_operator_id),
                Room.DASHBOARD,
            ],
            ChatTransferred(
                session_id=session_id,
                from_operator_id=from_operator_id,
                to_operator_id=to_operator_id,
                to_operator_name=target.name,
                reason=reason,
            ),
        )
        return session

    async def mark_read(self, session_id: UUID) -> ChatSession:
        return await self._mutations.update_session(session_id, unread_count=0)

    async def update_priority(self, session_id: UUID, priority: Priority) -> ChatSession:
        return await self._mutations.update_session(session_id, priority=priority)

    async def set_operator_availability(
        self, operator_id: str, available: bool
    ) -> Operator:
        operator = await self._store.set_operator_availability(operator_id, available)
        if operator is None:
            raise OperatorNotFoundError(operator_id)
        logger.info(
            "operator_availability_changed",
            operator_id=operator_id,
            available=available,
        )
        return operator

    # ------------------------------------------------------------------
    # Dashboard housekeeping
    # ------------------------------------------------------------------

    async def archive_session(self, session_id: UUID, operator_id: str) -> ChatSession:
        """Mark a session archived; listings can filter on it."""
        await self._require_operator(operator_id)
        session = await self._mutations.update_session(
            session_id, archived_at=self._clock.now(), archived_by=operator_id
        )
        logger.info("session_archived", session_id=str(session_id), operator_id=operator_id)
        self._publish(
            Room.DASHBOARD, ChatArchived(session_id=session_id, operator_id=operator_id)
        )
        return session

    async def unarchive_session(self, session_id: UUID, operator_id: str) -> ChatSession:
        await self._require_operator(operator_id)
        session = await self._mutations.update_session(
            session_id, archived_at=None, archived_by=None
        )
        logger.info(
            "session_unarchived", session_id=str(session_id), operator_id=operator_id
        )
        self._publish(
            Room.DASHBOARD, ChatUnarchived(session_id=session_id, operator_id=operator_id)
        )
        return session

    async def flag_session(
        self, session_id: UUID, operator_id: str, reason: str | None = None
    ) -> ChatSession:
        """Mark a session for follow-up; a blank reason gets a default."""
        await self._require_operator(operator_id)
        reason = (reason or "").strip() or DEFAULT_FLAG_REASON
        session = await self._mutations.update_session(
            session_id,
            flagged_at=self._clock.now(),
            flagged_by=operator_id,
            flag_reason=reason,
        )
        logger.info(
            "session_flagged",
            session_id=str(session_id),
            operator_id=operator_id,
            reason=reason,
        )
        self._publish(
            Room.DASHBOARD,
            ChatFlagged(session_id=session_id, operator_id=operator_id, reason=reason),
        )
        return session

    async def unflag_session(self, session_id: UUID, operator_id: str) -> ChatSession:
        await self._require_operator(operator_id)
        session = await self._mutations.update_session(
            session_id, flagged_at=None, flagged_by=None, flag_reason=None
        )
        logger.info("session_unflagged", session_id=str(session_id), operator_id=operator_id)
        self._publish(
            Room.DASHBOARD, ChatUnflagged(session_id=session_id, operator_id=operator_id)
        )
        return session

    async def update_tags(self, session_id: UUID, tags: list[str]) -> ChatSession:
        """Replace the session's tags.

        Tags are trimmed; blanks and repeats are dropped, keeping first-seen
        order.

        Raises:
            InvalidRequestError: More than MAX_TAGS distinct tags
        """
        cleaned = list(dict.fromkeys(t.strip() for t in tags if t.strip()))
        if len(cleaned) > MAX_TAGS:
            raise InvalidRequestError(f"A session can carry at most {MAX_TAGS} tags")
        return await self._mutations.update_session(session_id, tags=cleaned)

    async def delete_session(self, session_id: UUID, operator_id: str) -> ChatSession:
        """Soft-delete a closed session.

        The record is kept but every later read treats it as missing.

        Raises:
            InvalidTransitionError: The session is still open
        """
        await self._require_operator(operator_id)
        async with self._mutations.transaction(session_id) as tx:
            if tx.session.status != SessionStatus.CLOSED:
                raise InvalidTransitionError("Close the session before deleting it")
            session = tx.update(deleted_at=tx.now())

        self._after_close(session_id)
        logger.info("session_deleted", session_id=str(session_id), operator_id=operator_id)
        self._publish(
            Room.DASHBOARD, ChatDeleted(session_id=session_id, operator_id=operator_id)
        )
        return session

    async def user_history(
        self, user_id: str, message_limit: int = HISTORY_MESSAGE_LIMIT
    ) -> list[SessionHistory]:
        """Every session of one visitor, newest first, with recent messages."""
        sessions = await self._store.list_sessions(user_id=user_id, limit=1_000)
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        history = []
        for session in sessions:
            messages = await self._store.list_messages(session.session_id, message_limit)
            history.append(
                SessionHistory(
                    session=session, messages=messages, message_count=len(messages)
                )
            )
        return history

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------

    async def submit_rating(
        self, session_id: UUID, rating: int, comment: str | None = None
    ) -> ChatRating:
        """Record the visitor's rating, credited to the last operator.

        Raises:
            SessionNotFoundError: No such session
            InvalidRequestError: The session was already rated
        """
        session = await self._load(session_id)
        operator_id = session.operator_id or session.last_operator_id
        operator = await self._store.get_operator(operator_id) if operator_id else None

        stored = ChatRating(
            session_id=session_id,
            rating=rating,
            comment=(comment or "").strip() or None,
            user_id=session.user_id,
            user_email=session.user_email,
            operator_id=operator_id,
            operator_name=operator.name if operator else None,
            created_at=self._clock.now(),
        )
        if not await self._store.add_rating(stored):
            raise InvalidRequestError("This chat has already been rated")

        logger.info(
            "session_rated",
            session_id=str(session_id),
            rating=rating,
            operator_id=operator_id,
        )
        return stored

    async def ratings_analytics(
        self,
        *,
        operator_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> RatingsSummary:
        ratings = await self._store.list_ratings(
            operator_id=operator_id, since=since, until=until
        )
        return summarize_ratings(ratings)

    # ------------------------------------------------------------------
    # Presence transport hooks
    # ------------------------------------------------------------------

    async def operator_connected(self, operator_id: str) -> None:
        if self._escalation.cancel_operator_disconnect(operator_id):
            logger.info("operator_reconnected", operator_id=operator_id)

    async def operator_disconnected(self, operator_id: str) -> None:
        owned = await self._store.list_sessions(
            status=SessionStatus.WITH_OPERATOR, operator_id=operator_id
        )
        if owned:
            self._escalation.start_operator_disconnect(operator_id)

    async def visitor_connected(self, session_id: UUID) -> None:
        self._visitor_connections[session_id] += 1
        if self._escalation.cancel_user_disconnect(session_id):
            logger.info("visitor_reconnected", session_id=str(session_id))

    async def visitor_disconnected(self, session_id: UUID) -> None:
        """One visitor transport went away.

        Nothing happens while another transport of the same session is still
        connected.
        """
        remaining = self._visitor_connections[session_id] - 1
        if remaining > 0:
            self._visitor_connections[session_id] = remaining
            return
        self._visitor_connections.pop(session_id, None)

        session = await self._store.get_session(session_id)
        if session is None or session.status != SessionStatus.WITH_OPERATOR:
            return
        timeout = self._escalation.config.user_disconnect_timeout_seconds
        self._publish(
            Room.operator(session.operator_id),
            UserDisconnected(session_id=session_id, timeout_seconds=int(timeout)),
        )
        self._escalation.start_user_disconnect(session_id)

    def relay_typing(
        self,
        session_id: UUID,
        sender: Literal["user", "operator"],
        is_typing: bool,
        operator_id: str | None = None,
        owner_id: str | None = None,
    ) -> None:
        """Relay a typing indicator. Nothing is stored."""
        event = Typing(
            session_id=session_id,
            sender=sender,
            is_typing=is_typing,
            operator_id=operator_id,
        )
        rooms = [Room.session(session_id)]
        if sender == "user" and owner_id:
            rooms.append(Room.operator(owner_id))
        self._publish(rooms, event)

    # ------------------------------------------------------------------
    # Escalation timer handlers
    # ------------------------------------------------------------------

    async def on_waiting_timeout(self, session_id: UUID) -> None:
        async with self._mutations.transaction(session_id) as tx:
            if tx.session.status != SessionStatus.WAITING:
                return
            tx.update(status=SessionStatus.ACTIVE)

        self._escalation.start_ai_inactivity(session_id)
        self._record_transition(
            session_id, SessionStatus.WAITING, SessionStatus.ACTIVE, "waiting_timeout"
        )
        self._publish(
            Room.session(session_id),
            OperatorWaitTimeout(session_id=session_id, message=WAIT_TIMEOUT_MESSAGE),
        )
        self._publish(
            Room.DASHBOARD,
            ChatRequestCancelled(session_id=session_id, reason="timeout"),
        )

    async def on_operator_response_timeout(self, session_id: UUID) -> None:
        async with self._mutations.transaction(session_id) as tx:
            session = tx.session
            if session.status != SessionStatus.WITH_OPERATOR:
                return
            operator_id = session.operator_id
            since = session.operator_assigned_at
            messages = await tx.list_messages()
            answered = any(
                m.type == MessageType.OPERATOR
                and m.operator_id == operator_id
                and (since is None or (m.created_at is not None and m.created_at >= since))
                for m in messages
            )
            if answered:
                return
            self._close(
                tx,
                ClosureReason.OPERATOR_TIMEOUT,
                CLOSING_MESSAGES[ClosureReason.OPERATOR_TIMEOUT],
            )

        self._after_close(session_id)
        self._record_transition(
            session_id,
            SessionStatus.WITH_OPERATOR,
            SessionStatus.CLOSED,
            "operator_timeout",
            operator_id=operator_id,
        )
        self._publish(
            Room.session(session_id),
            OperatorNotResponding(
                session_id=session_id,
                message=CLOSING_MESSAGES[ClosureReason.OPERATOR_TIMEOUT],
            ),
        )
        self._publish(
            Room.operator(operator_id),
            ChatTimeoutCancelled(session_id=session_id, operator_id=operator_id),
        )
        self._publish(
            Room.DASHBOARD,
            ChatClosed(
                session_id=session_id,
                closure_reason=ClosureReason.OPERATOR_TIMEOUT,
                operator_id=operator_id,
            ),
        )

    async def on_user_inactivity_warning(self, session_id: UUID) -> None:
        async with self._mutations.transaction(session_id) as tx:
            if tx.session.status != SessionStatus.WITH_OPERATOR:
                return
            operator_id = tx.session.operator_id

        countdown = int(self._escalation.config.user_inactivity_final_seconds)
        self._escalation.arm_user_inactivity_final(session_id)
        logger.info("user_presence_check_sent", session_id=str(session_id))
        self._publish(
            Room.session(session_id),
            UserPresenceCheck(
                session_id=session_id,
                message=PRESENCE_CHECK_MESSAGE,
                countdown_seconds=countdown,
            ),
        )
        self._publish(
            Room.operator(operator_id),
            UserInactivityWarning(session_id=session_id, countdown_seconds=countdown),
        )

    async def on_user_inactivity_final(self, session_id: UUID) -> None:
        await self._auto_close_with_operator(
            session_id, ClosureReason.USER_INACTIVITY_TIMEOUT, "user_inactivity"
        )

    async def on_user_disconnect_timeout(self, session_id: UUID) -> None:
        await self._auto_close_with_operator(
            session_id, ClosureReason.USER_DISCONNECT_TIMEOUT, "user_disconnect"
        )

    async def _auto_close_with_operator(
        self, session_id: UUID, reason: ClosureReason, trigger: str
    ) -> None:
        async with self._mutations.transaction(session_id) as tx:
            if tx.session.status != SessionStatus.WITH_OPERATOR:
                return
            operator_id = tx.session.operator_id
            self._close(tx, reason, CLOSING_MESSAGES[reason])

        self._after_close(session_id)
        self._record_transition(
            session_id,
            SessionStatus.WITH_OPERATOR,
            SessionStatus.CLOSED,
            trigger,
            operator_id=operator_id,
        )
        closed = ChatClosed(
            session_id=session_id, closure_reason=reason, operator_id=operator_id
        )
        self._publish([Room.session(session_id), Room.DASHBOARD], closed)
        self._publish(
            Room.operator(operator_id),
            ChatAutoClosed(
                session_id=session_id, closure_reason=reason, operator_id=operator_id
            ),
        )

    async def on_ai_inactivity_timeout(self, session_id: UUID) -> None:
        async with self._mutations.transaction(session_id) as tx:
            if tx.session.status != SessionStatus.ACTIVE:
                return
            self._close(
                tx,
                ClosureReason.AI_INACTIVITY_TIMEOUT,
                CLOSING_MESSAGES[ClosureReason.AI_INACTIVITY_TIMEOUT],
            )

        self._after_close(session_id)
        self._record_transition(
            session_id, SessionStatus.ACTIVE, SessionStatus.CLOSED, "ai_inactivity"
        )
        self._publish(
            [Room.session(session_id), Room.DASHBOARD],
            ChatClosed(
                session_id=session_id,
                closure_reason=ClosureReason.AI_INACTIVITY_TIMEOUT,
            ),
        )

    async def on_operator_disconnect_grace(self, operator_id: str) -> None:
        if self._router.has_subscribers(Room.operator(operator_id)):
            # Reconnected on another connection before the grace period ended
            return
        owned = await self._store.list_sessions(
            status=SessionStatus.WITH_OPERATOR, operator_id=operator_id
        )
        for session in owned:
            self._publish(
                Room.session(session.session_id),
                OperatorDisconnected(
                    session_id=session.session_id,
                    operator_id=operator_id,
                    message=OPERATOR_DISCONNECTED_MESSAGE,
                ),
            )
        logger.info(
            "operator_disconnect_notified",
            operator_id=operator_id,
            sessions=len(owned),
        )

    def shutdown(self) -> None:
        self._escalation.timers.shutdown()
