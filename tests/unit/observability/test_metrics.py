"""Tests for Prometheus metrics."""

from prometheus_client import REGISTRY

from liaison.observability.metrics import (
    ACTIVE_TIMERS,
    BROADCAST_EVENTS,
    RATE_LIMITED,
    SESSION_TRANSITIONS,
    TIMER_EVENTS,
)
from liaison.runtime.clock import ManualClock
from liaison.runtime.timers import TimerKind, TimerRegistry


def sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricDefinitions:
    """Metrics are registered under the liaison_ namespace."""

    def test_session_transition_counter(self) -> None:
        before = sample(
            "liaison_session_transitions_total",
            from_status="ACTIVE",
            to_status="WAITING",
            trigger="test",
        )

        SESSION_TRANSITIONS.labels(
            from_status="ACTIVE", to_status="WAITING", trigger="test"
        ).inc()

        after = sample(
            "liaison_session_transitions_total",
            from_status="ACTIVE",
            to_status="WAITING",
            trigger="test",
        )
        assert after == before + 1

    def test_counters_exist(self) -> None:
        assert RATE_LIMITED is not None
        assert BROADCAST_EVENTS is not None
        assert TIMER_EVENTS is not None


class TestTimerMetrics:
    async def test_active_timer_gauge_tracks_registry(self) -> None:
        clock = ManualClock()
        registry = TimerRegistry(clock)
        kind = TimerKind.USER_DISCONNECT
        before = sample("liaison_active_timers", kind=kind.value)

        registry.schedule("metrics-test", kind, 10, _noop)
        assert sample("liaison_active_timers", kind=kind.value) == before + 1

        await clock.advance(10)
        assert sample("liaison_active_timers", kind=kind.value) == before
        assert ACTIVE_TIMERS is not None

    async def test_fired_outcome_counted(self) -> None:
        clock = ManualClock()
        registry = TimerRegistry(clock)
        kind = TimerKind.AI_INACTIVITY
        before = sample("liaison_timer_events_total", kind=kind.value, outcome="fired")

        registry.schedule("metrics-test", kind, 1, _noop)
        await clock.advance(1)

        after = sample("liaison_timer_events_total", kind=kind.value, outcome="fired")
        assert after == before + 1


async def _noop() -> None:
    pass
