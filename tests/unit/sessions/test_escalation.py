"""Unit tests for EscalationScheduler wiring."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from liaison.config.models.escalation import EscalationConfig
from liaison.runtime.clock import ManualClock
from liaison.runtime.timers import TimerKind, TimerRegistry
from liaison.sessions import EscalationScheduler


@pytest.fixture
def handler() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def scheduler(timers: TimerRegistry, handler: AsyncMock) -> EscalationScheduler:
    return EscalationScheduler(
        timers,
        EscalationConfig(
            waiting_timeout_seconds=30,
            user_inactivity_warning_seconds=10,
            user_inactivity_final_seconds=5,
        ),
        handler,
    )


class TestEscalationScheduler:
    async def test_waiting_timer_calls_handler(
        self, clock: ManualClock, scheduler: EscalationScheduler, handler: AsyncMock
    ) -> None:
        session_id = uuid4()
        scheduler.start_waiting(session_id)

        await clock.advance(30)

        handler.on_waiting_timeout.assert_awaited_once_with(session_id)

    async def test_restart_user_inactivity_clears_final_stage(
        self,
        clock: ManualClock,
        scheduler: EscalationScheduler,
        timers: TimerRegistry,
        handler: AsyncMock,
    ) -> None:
        session_id = uuid4()
        scheduler.arm_user_inactivity_final(session_id)

        scheduler.restart_user_inactivity(session_id)

        assert not timers.is_scheduled(session_id, TimerKind.USER_INACTIVITY_FINAL)
        assert timers.remaining(session_id, TimerKind.USER_INACTIVITY_WARNING) == 10
        await clock.advance(10)
        handler.on_user_inactivity_warning.assert_awaited_once_with(session_id)
        handler.on_user_inactivity_final.assert_not_awaited()

    async def test_operator_disconnect_keyed_by_operator(
        self, clock: ManualClock, scheduler: EscalationScheduler, handler: AsyncMock
    ) -> None:
        scheduler.start_operator_disconnect("op-a")

        await clock.advance(10)

        handler.on_operator_disconnect_grace.assert_awaited_once_with("op-a")

    async def test_cancel_session_leaves_operator_timers(
        self, scheduler: EscalationScheduler, timers: TimerRegistry
    ) -> None:
        session_id = uuid4()
        scheduler.start_waiting(session_id)
        scheduler.start_ai_inactivity(session_id)
        scheduler.restart_user_inactivity(session_id)
        scheduler.start_operator_disconnect("op-a")

        assert scheduler.cancel_session(session_id) == 3
        assert timers.is_scheduled("op-a", TimerKind.OPERATOR_DISCONNECT)
