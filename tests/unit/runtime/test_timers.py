"""Unit tests for TimerRegistry."""

from uuid import uuid4

import pytest

from liaison.runtime.clock import ManualClock
from liaison.runtime.timers import TimerKind, TimerRegistry


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def registry(clock: ManualClock) -> TimerRegistry:
    return TimerRegistry(clock)


class Recorder:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1


class TestTimerRegistry:
    async def test_fires_after_delay(
        self, clock: ManualClock, registry: TimerRegistry
    ) -> None:
        session_id = uuid4()
        callback = Recorder()
        registry.schedule(session_id, TimerKind.WAITING, 300, callback)

        await clock.advance(299)
        assert callback.calls == 0
        assert registry.remaining(session_id, TimerKind.WAITING) == pytest.approx(1)

        await clock.advance(1)
        assert callback.calls == 1
        assert not registry.is_scheduled(session_id, TimerKind.WAITING)

    async def test_cancelled_timer_never_fires(
        self, clock: ManualClock, registry: TimerRegistry
    ) -> None:
        session_id = uuid4()
        callback = Recorder()
        registry.schedule(session_id, TimerKind.WAITING, 300, callback)

        assert registry.cancel(session_id, TimerKind.WAITING) is True
        await clock.advance(600)

        assert callback.calls == 0

    async def test_cancel_empty_slot_is_noop(self, registry: TimerRegistry) -> None:
        assert registry.cancel(uuid4(), TimerKind.AI_INACTIVITY) is False

    async def test_reschedule_replaces_previous(
        self, clock: ManualClock, registry: TimerRegistry
    ) -> None:
        session_id = uuid4()
        first, second = Recorder(), Recorder()
        registry.schedule(session_id, TimerKind.AI_INACTIVITY, 100, first)
        await clock.advance(50)
        registry.schedule(session_id, TimerKind.AI_INACTIVITY, 100, second)

        await clock.advance(60)
        assert (first.calls, second.calls) == (0, 0)

        await clock.advance(40)
        assert (first.calls, second.calls) == (0, 1)
        assert len(registry) == 0

    async def test_kinds_are_independent(
        self, clock: ManualClock, registry: TimerRegistry
    ) -> None:
        session_id = uuid4()
        warning, final = Recorder(), Recorder()
        registry.schedule(session_id, TimerKind.USER_INACTIVITY_WARNING, 10, warning)
        registry.schedule(session_id, TimerKind.USER_INACTIVITY_FINAL, 20, final)

        registry.cancel(session_id, TimerKind.USER_INACTIVITY_WARNING)
        await clock.advance(30)

        assert (warning.calls, final.calls) == (0, 1)

    async def test_cancel_all_for_key(
        self, clock: ManualClock, registry: TimerRegistry
    ) -> None:
        session_id, other_id = uuid4(), uuid4()
        registry.schedule(session_id, TimerKind.WAITING, 10, Recorder())
        registry.schedule(session_id, TimerKind.AI_INACTIVITY, 10, Recorder())
        registry.schedule(other_id, TimerKind.WAITING, 10, Recorder())

        assert registry.cancel_all(session_id) == 2
        assert registry.pending(session_id) == []
        assert registry.pending(other_id) == [TimerKind.WAITING]

    async def test_failing_callback_is_contained(
        self, clock: ManualClock, registry: TimerRegistry
    ) -> None:
        async def boom() -> None:
            raise RuntimeError("boom")

        after = Recorder()
        registry.schedule("a", TimerKind.WAITING, 10, boom)
        registry.schedule("b", TimerKind.WAITING, 20, after)

        await clock.advance(30)

        assert after.calls == 1

    async def test_shutdown_cancels_everything(
        self, clock: ManualClock, registry: TimerRegistry
    ) -> None:
        callback = Recorder()
        registry.schedule("op-1", TimerKind.OPERATOR_DISCONNECT, 10, callback)
        registry.schedule(uuid4(), TimerKind.WAITING, 10, callback)

        registry.shutdown()
        await clock.advance(20)

        assert callback.calls == 0
        assert len(registry) == 0
