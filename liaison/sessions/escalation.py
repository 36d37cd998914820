"""Timer-driven escalations for live sessions.

Maps each escalation to a TimerKind, its configured delay and the handler
method that runs when it fires. The handler (the session lifecycle)
re-validates the session under its lock; a timer whose session has moved on
is a no-op.
"""

from functools import partial
from typing import Protocol
from uuid import UUID

from liaison.config.models.escalation import EscalationConfig
from liaison.runtime.timers import TimerKind, TimerRegistry

SESSION_TIMER_KINDS: tuple[TimerKind, ...] = (
    TimerKind.WAITING,
    TimerKind.OPERATOR_RESPONSE,
    TimerKind.USER_INACTIVITY_WARNING,
    TimerKind.USER_INACTIVITY_FINAL,
    TimerKind.AI_INACTIVITY,
    TimerKind.USER_DISCONNECT,
)


class EscalationHandler(Protocol):
    async def on_waiting_timeout(self, session_id: UUID) -> None: ...

    async def on_operator_response_timeout(self, session_id: UUID) -> None: ...

    async def on_user_inactivity_warning(self, session_id: UUID) -> None: ...

    async def on_user_inactivity_final(self, session_id: UUID) -> None: ...

    async def on_ai_inactivity_timeout(self, session_id: UUID) -> None: ...

    async def on_operator_disconnect_grace(self, operator_id: str) -> None: ...

    async def on_user_disconnect_timeout(self, session_id: UUID) -> None: ...


class EscalationScheduler:
    """Starts and cancels the escalation timers of sessions and operators."""

    def __init__(
        self,
        timers: TimerRegistry,
        config: EscalationConfig,
        handler: EscalationHandler,
    ) -> None:
        self._timers = timers
        self._config = config
        self._handler = handler

    @property
    def config(self) -> EscalationConfig:
        return self._config

    @property
    def timers(self) -> TimerRegistry:
        return self._timers

    # WAITING -> ACTIVE when nobody accepts

    def start_waiting(self, session_id: UUID) -> None:
        self._timers.schedule(
            session_id,
            TimerKind.WAITING,
            self._config.waiting_timeout_seconds,
            partial(self._handler.on_waiting_timeout, session_id),
        )

    def cancel_waiting(self, session_id: UUID) -> bool:
        return self._timers.cancel(session_id, TimerKind.WAITING)

    # Operator never writes after taking the session

    def start_operator_response(self, session_id: UUID) -> None:
        self._timers.schedule(
            session_id,
            TimerKind.OPERATOR_RESPONSE,
            self._config.operator_response_timeout_seconds,
            partial(self._handler.on_operator_response_timeout, session_id),
        )

    def cancel_operator_response(self, session_id: UUID) -> bool:
        return self._timers.cancel(session_id, TimerKind.OPERATOR_RESPONSE)

    # Two-stage visitor inactivity while WITH_OPERATOR

    def restart_user_inactivity(self, session_id: UUID) -> None:
        """Visitor activity: drop both stages and arm stage 1 again."""
        self._timers.cancel(session_id, TimerKind.USER_INACTIVITY_FINAL)
        self._timers.schedule(
            session_id,
            TimerKind.USER_INACTIVITY_WARNING,
            self._config.user_inactivity_warning_seconds,
            partial(self._handler.on_user_inactivity_warning, session_id),
        )

    def arm_user_inactivity_final(self, session_id: UUID) -> None:
        self._timers.schedule(
            session_id,
            TimerKind.USER_INACTIVITY_FINAL,
            self._config.user_inactivity_final_seconds,
            partial(self._handler.on_user_inactivity_final, session_id),
        )

    def cancel_user_inactivity(self, session_id: UUID) -> None:
        self._timers.cancel(session_id, TimerKind.USER_INACTIVITY_WARNING)
        self._timers.cancel(session_id, TimerKind.USER_INACTIVITY_FINAL)

    # Responder-only sessions that go quiet

    def start_ai_inactivity(self, session_id: UUID) -> None:
        self._timers.schedule(
            session_id,
            TimerKind.AI_INACTIVITY,
            self._config.ai_inactivity_timeout_seconds,
            partial(self._handler.on_ai_inactivity_timeout, session_id),
        )

    def cancel_ai_inactivity(self, session_id: UUID) -> bool:
        return self._timers.cancel(session_id, TimerKind.AI_INACTIVITY)

    # Transport disconnects

    def start_operator_disconnect(self, operator_id: str) -> None:
        self._timers.schedule(
            operator_id,
            TimerKind.OPERATOR_DISCONNECT,
            self._config.operator_disconnect_grace_seconds,
            partial(self._handler.on_operator_disconnect_grace, operator_id),
        )

    def cancel_operator_disconnect(self, operator_id: str) -> bool:
        return self._timers.cancel(operator_id, TimerKind.OPERATOR_DISCONNECT)

    def start_user_disconnect(self, session_id: UUID) -> None:
        self._timers.schedule(
            session_id,
            TimerKind.USER_DISCONNECT,
            self._config.user_disconnect_timeout_seconds,
            partial(self._handler.on_user_disconnect_timeout, session_id),
        )

    def cancel_user_disconnect(self, session_id: UUID) -> bool:
        return self._timers.cancel(session_id, TimerKind.USER_DISCONNECT)

    def cancel_session(self, session_id: UUID) -> int:
        """Cancel every timer keyed by this session."""
        return sum(
            1 for kind in SESSION_TIMER_KINDS if self._timers.cancel(session_id, kind)
        )
