"""Per-session mutual exclusion.

Two implementations share one shape: ``acquire(key)`` is an async context
manager yielding True when the lock was obtained and False when the blocking
timeout elapsed first.

- KeyedMutex: asyncio locks, for a single process
- SessionMutex: Redis locks, for stores shared between processes
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from redis.asyncio import Redis
from redis.exceptions import LockError

from liaison.observability.logging import get_logger

logger = get_logger(__name__)


class KeyedMutex:
    """One asyncio.Lock per key, dropped when nobody holds or waits on it."""

    def __init__(self, blocking_timeout: float = 5.0) -> None:
        self._blocking_timeout = blocking_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def acquire(
        self,
        key: str,
        blocking_timeout: float | None = None,
    ) -> AsyncGenerator[bool, None]:
        timeout = blocking_timeout or self._blocking_timeout
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1

        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=timeout)
                acquired = True
            except TimeoutError:
                acquired = False

            try:
                yield acquired
            finally:
                if acquired:
                    lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


class SessionMutex:
    """Redis-backed distributed lock for session-level mutual exclusion.

    Lock key format: {prefix}:lock:{session_id}
    """

    def __init__(
        self,
        redis: Redis,
        prefix: str = "liaison",
        lock_timeout: int = 30,
        blocking_timeout: float = 5.0,
    ):
        """Initialize session mutex.

        Args:
            redis: Redis client instance
            prefix: Key namespace shared with the store
            lock_timeout: How long lock is held before auto-release (seconds)
            blocking_timeout: How long to wait when trying to acquire (seconds)
        """
        self._redis = redis
        self._prefix = prefix
        self._lock_timeout = lock_timeout
        self._blocking_timeout = blocking_timeout

    def _key(self, session_key: str) -> str:
        return f"{self._prefix}:lock:{session_key}"

    @asynccontextmanager
    async def acquire(
        self,
        session_key: str,
        blocking_timeout: float | None = None,
    ) -> AsyncGenerator[bool, None]:
        """Acquire exclusive lock for a session.

        Usage:
            async with mutex.acquire(str(session_id)) as acquired:
                if not acquired:
                    raise LockTimeoutError(...)
        """
        timeout = blocking_timeout or self._blocking_timeout

        lock = self._redis.lock(
            self._key(session_key),
            timeout=self._lock_timeout,
            blocking_timeout=timeout,
        )

        acquired = await lock.acquire()
        try:
            yield acquired
        finally:
            if acquired:
                try:
                    await lock.release()
                except LockError:
                    # Lease ran out while we held it
                    logger.warning("session_lock_expired", session_key=session_key)

    async def is_locked(self, session_key: str) -> bool:
        """Check if a session is currently locked."""
        return await self._redis.exists(self._key(session_key)) > 0

    async def force_release(self, session_key: str) -> bool:
        """Force release a lock. Only for cleanup after crashes."""
        return await self._redis.delete(self._key(session_key)) > 0
