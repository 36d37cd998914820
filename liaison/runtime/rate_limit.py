"""Per-session sliding window limiter for visitor messages.

Every inbound attempt is recorded, including the ones that get rejected, so
a visitor who keeps hammering a throttled session eventually crosses the
spam threshold.
"""

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from liaison.config.models.rate_limit import RateLimitConfig
from liaison.observability.logging import get_logger
from liaison.observability.metrics import RATE_LIMITED, SPAM_DETECTED
from liaison.runtime.clock import Clock

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one rate limit check."""

    allowed: bool
    count: int
    """Attempts in the window, including this one."""

    remaining: int
    """Messages still accepted in the current window."""

    retry_after_seconds: int = 0
    """Whole seconds until a message would be accepted again."""

    spam_detected: bool = False
    """True only for the attempt that tripped the spam latch."""


@dataclass
class _Window:
    attempts: deque[float] = field(default_factory=deque)
    spam_latched: bool = False


class SpamGuard:
    """Sliding window rate limiter and spam detector.

    Windows live in memory, one per session, and are pruned lazily on each
    check. The spam latch fires once when the window reaches the threshold
    and re-arms after the pruned window falls back below it.
    """

    def __init__(self, clock: Clock, config: RateLimitConfig | None = None) -> None:
        self._clock = clock
        self._config = config or RateLimitConfig()
        self._windows: dict[str, _Window] = {}

    def check(self, session_id: Any, can_notify: bool = True) -> RateLimitDecision:
        """Record an inbound attempt and decide whether it is accepted.

        The spam latch only closes when ``can_notify`` is true, so a flood
        that nobody could be told about is reported on the first attempt
        after someone can be.
        """
        config = self._config
        if not config.enabled:
            return RateLimitDecision(
                allowed=True, count=0, remaining=config.max_messages
            )

        key = str(session_id)
        now = self._clock.monotonic()
        window = self._windows.setdefault(key, _Window())

        cutoff = now - config.window_seconds
        while window.attempts and window.attempts[0] <= cutoff:
            window.attempts.popleft()

        before = len(window.attempts)
        allowed = before < config.max_messages
        retry_after = 0
        if not allowed:
            # Time until the window holds fewer than max_messages entries
            pivot = window.attempts[before - config.max_messages]
            retry_after = max(1, math.ceil(pivot + config.window_seconds - now))

        window.attempts.append(now)
        count = len(window.attempts)

        spam_detected = False
        if count >= config.spam_threshold:
            if can_notify and not window.spam_latched:
                window.spam_latched = True
                spam_detected = True
                SPAM_DETECTED.inc()
                logger.warning("spam_detected", session_id=key, attempts=count)
        else:
            window.spam_latched = False

        if not allowed:
            RATE_LIMITED.inc()
            logger.info(
                "rate_limit_exceeded",
                session_id=key,
                attempts=count,
                retry_after_seconds=retry_after,
            )

        return RateLimitDecision(
            allowed=allowed,
            count=count,
            remaining=max(0, config.max_messages - count),
            retry_after_seconds=retry_after,
            spam_detected=spam_detected,
        )

    def reset(self, session_id: Any) -> None:
        """Forget a session's window and latch."""
        self._windows.pop(str(session_id), None)

    def tracked_sessions(self) -> int:
        return len(self._windows)
