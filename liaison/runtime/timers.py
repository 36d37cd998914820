"""Named, cancelable timers keyed by session or operator id.

At most one timer exists per (key, kind). Scheduling into an occupied slot
replaces the old timer, and cancelling an empty slot is a no-op. Each timer
carries a token so a call that was already in flight when its slot was
replaced or cancelled does nothing.
"""

import itertools
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any

from liaison.observability.logging import get_logger
from liaison.observability.metrics import ACTIVE_TIMERS, TIMER_EVENTS
from liaison.runtime.clock import Clock, ScheduledCall, TimerCallback

logger = get_logger(__name__)


class TimerKind(str, Enum):
    """Escalation timers.

    OPERATOR_DISCONNECT is keyed by operator id, every other kind by
    session id.
    """

    WAITING = "waiting"
    OPERATOR_RESPONSE = "operator_response"
    USER_INACTIVITY_WARNING = "user_inactivity_warning"
    USER_INACTIVITY_FINAL = "user_inactivity_final"
    AI_INACTIVITY = "ai_inactivity"
    OPERATOR_DISCONNECT = "operator_disconnect"
    USER_DISCONNECT = "user_disconnect"


@dataclass
class _Slot:
    token: int
    call: ScheduledCall
    deadline: float


class TimerRegistry:
    """Per-instance registry of escalation timers driven by a Clock."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._slots: dict[tuple[str, TimerKind], _Slot] = {}
        self._tokens = itertools.count(1)

    def schedule(
        self,
        key: Any,
        kind: TimerKind,
        delay: float,
        callback: TimerCallback,
    ) -> None:
        """Run ``callback`` after ``delay`` seconds unless cancelled first."""
        slot_key = (str(key), kind)
        previous = self._slots.pop(slot_key, None)
        if previous is not None:
            previous.call.cancel()
            ACTIVE_TIMERS.labels(kind=kind.value).dec()
            TIMER_EVENTS.labels(kind=kind.value, outcome="replaced").inc()

        token = next(self._tokens)
        call = self._clock.call_later(
            delay, partial(self._fire, slot_key, token, callback)
        )
        self._slots[slot_key] = _Slot(
            token=token, call=call, deadline=self._clock.monotonic() + delay
        )
        ACTIVE_TIMERS.labels(kind=kind.value).inc()
        TIMER_EVENTS.labels(kind=kind.value, outcome="scheduled").inc()

        logger.debug("timer_scheduled", key=slot_key[0], kind=kind.value, delay=delay)

    def cancel(self, key: Any, kind: TimerKind) -> bool:
        """Cancel one timer. Returns False when nothing was scheduled."""
        slot = self._slots.pop((str(key), kind), None)
        if slot is None:
            return False

        slot.call.cancel()
        ACTIVE_TIMERS.labels(kind=kind.value).dec()
        TIMER_EVENTS.labels(kind=kind.value, outcome="cancelled").inc()
        logger.debug("timer_cancelled", key=str(key), kind=kind.value)
        return True

    def cancel_all(self, key: Any) -> int:
        """Cancel every timer held under ``key``."""
        return sum(1 for kind in self.pending(key) if self.cancel(key, kind))

    def is_scheduled(self, key: Any, kind: TimerKind) -> bool:
        return (str(key), kind) in self._slots

    def remaining(self, key: Any, kind: TimerKind) -> float | None:
        """Seconds until the timer fires, or None if it is not scheduled."""
        slot = self._slots.get((str(key), kind))
        if slot is None:
            return None
        return max(slot.deadline - self._clock.monotonic(), 0.0)

    def pending(self, key: Any) -> list[TimerKind]:
        key = str(key)
        return [kind for timer_key, kind in self._slots if timer_key == key]

    def __len__(self) -> int:
        return len(self._slots)

    def shutdown(self) -> None:
        """Cancel every timer. Used when the process stops."""
        count = len(self._slots)
        for key, kind in list(self._slots):
            self.cancel(key, kind)
        logger.info("timer_registry_shutdown", cancelled=count)

    async def _fire(
        self,
        slot_key: tuple[str, TimerKind],
        token: int,
        callback: TimerCallback,
    ) -> None:
        key, kind = slot_key
        slot = self._slots.get(slot_key)
        if slot is None or slot.token != token:
            TIMER_EVENTS.labels(kind=kind.value, outcome="stale").inc()
            return

        del self._slots[slot_key]
        ACTIVE_TIMERS.labels(kind=kind.value).dec()
        logger.info("timer_fired", key=key, kind=kind.value)

        try:
            await callback()
        except Exception as e:
            # Failed-safe: no retry, the callback's transaction was discarded
            TIMER_EVENTS.labels(kind=kind.value, outcome="failed").inc()
            logger.exception(
                "timer_callback_failed",
                key=key,
                kind=kind.value,
                error=str(e),
            )
        else:
            TIMER_EVENTS.labels(kind=kind.value, outcome="fired").inc()
