"""Injectable time source and delayed-call scheduler.

SystemClock runs on the asyncio event loop. ManualClock only moves when a
test calls ``advance``, which runs every callback that falls due in deadline
order before returning.
"""

import asyncio
import heapq
import itertools
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

TimerCallback = Callable[[], Awaitable[None]]


class ScheduledCall(ABC):
    """Handle to a pending delayed call."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the call from starting. No effect once it has started."""

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class Clock(ABC):
    """Time source shared by the store, timers and rate limiter."""

    @abstractmethod
    def now(self) -> datetime:
        """Current wall-clock time, timezone-aware UTC."""

    @abstractmethod
    def monotonic(self) -> float:
        """Seconds on a clock that never goes backwards."""

    @abstractmethod
    def call_later(self, delay: float, callback: TimerCallback) -> ScheduledCall:
        """Run ``callback`` once ``delay`` seconds have elapsed."""


class _LoopCall(ScheduledCall):
    def __init__(self, clock: "SystemClock", delay: float, callback: TimerCallback):
        self._clock = clock
        self._callback = callback
        self._cancelled = False
        self._handle = asyncio.get_running_loop().call_later(delay, self._start)

    def _start(self) -> None:
        task = asyncio.create_task(self._callback())
        self._clock._running.add(task)
        task.add_done_callback(self._clock._running.discard)

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class SystemClock(Clock):
    """Real time, with callbacks spawned as event loop tasks."""

    def __init__(self) -> None:
        # Strong references so running callbacks are not garbage collected
        self._running: set[asyncio.Task[None]] = set()

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: TimerCallback) -> ScheduledCall:
        return _LoopCall(self, max(delay, 0.0), callback)

    async def drain(self) -> None:
        """Wait for callbacks that have already started."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)


class _ManualCall(ScheduledCall):
    def __init__(self, deadline: float, callback: TimerCallback):
        self.deadline = deadline
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualClock(Clock):
    """Deterministic clock for tests.

    Example:
        clock = ManualClock()
        registry = TimerRegistry(clock)
        registry.schedule(session_id, TimerKind.WAITING, 300, on_fire)
        await clock.advance(300)  # on_fire has run
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._start = start or datetime(2024, 1, 1, tzinfo=UTC)
        self._elapsed = 0.0
        self._queue: list[tuple[float, int, _ManualCall]] = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def monotonic(self) -> float:
        return self._elapsed

    def call_later(self, delay: float, callback: TimerCallback) -> ScheduledCall:
        call = _ManualCall(self._elapsed + max(delay, 0.0), callback)
        heapq.heappush(self._queue, (call.deadline, next(self._seq), call))
        return call

    @property
    def pending(self) -> int:
        return sum(1 for _, _, call in self._queue if not call.cancelled)

    async def advance(self, seconds: float) -> None:
        """Move time forward, awaiting each due callback in deadline order.

        Callbacks scheduled while advancing run too if they fall due before
        the target time.
        """
        target = self._elapsed + seconds
        while self._queue and self._queue[0][0] <= target:
            deadline, _, call = heapq.heappop(self._queue)
            if call.cancelled:
                continue
            self._elapsed = max(self._elapsed, deadline)
            await call.callback()
        self._elapsed = target
        # Let tasks woken by the callbacks (broadcast workers) run
        for _ in range(5):
            await asyncio.sleep(0)
