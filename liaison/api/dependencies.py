"""Dependency injection for API routes.

Provides the process-wide collaborators used by API endpoints and the
WebSocket transport. Each is created once on first use and can be overridden
for testing through ``app.dependency_overrides``.
"""

from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends, Header

from liaison.config import get_settings
from liaison.config.settings import Settings
from liaison.conversation.store import SessionStore
from liaison.conversation.stores.inmemory import InMemorySessionStore
from liaison.conversation.stores.redis import RedisSessionStore
from liaison.observability.logging import get_logger
from liaison.providers.responder import MockResponder, Responder
from liaison.providers.transcript import LoggingTranscriptSender, TranscriptSender
from liaison.runtime.broadcast import BroadcastRouter
from liaison.runtime.clock import Clock, SystemClock
from liaison.runtime.timers import TimerRegistry
from liaison.sessions.lifecycle import SessionLifecycle

logger = get_logger(__name__)

_redis_client: redis.Redis | None = None
_clock: Clock | None = None
_session_store: SessionStore | None = None
_router: BroadcastRouter | None = None
_timers: TimerRegistry | None = None
_responder: Responder | None = None
_transcript_sender: TranscriptSender | None = None
_lifecycle: SessionLifecycle | None = None


def get_redis_client(settings: Settings) -> redis.Redis:
    """Get the shared Redis client, created on first access."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.storage.redis_url, decode_responses=True)
        # Log without credentials
        logger.info(
            "redis_client_created", url=settings.storage.redis_url.split("@")[-1]
        )
    return _redis_client


def get_clock() -> Clock:
    global _clock
    if _clock is None:
        _clock = SystemClock()
    return _clock


def get_session_store(
    settings: Annotated[Settings, Depends(get_settings)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> SessionStore:
    """Get the SessionStore selected by ``storage.backend``."""
    global _session_store
    if _session_store is None:
        storage = settings.storage
        if storage.backend == "redis":
            _session_store = RedisSessionStore(
                get_redis_client(settings),
                prefix=storage.key_prefix,
                now=clock.now,
                lock_timeout=storage.lock_timeout_seconds,
                lock_lease=storage.lock_lease_seconds,
            )
        else:
            _session_store = InMemorySessionStore(
                now=clock.now, lock_timeout=storage.lock_timeout_seconds
            )
        logger.info("session_store_initialized", store_type=storage.backend)
    return _session_store


def get_broadcast_router() -> BroadcastRouter:
    global _router
    if _router is None:
        _router = BroadcastRouter()
    return _router


def get_timer_registry(clock: Annotated[Clock, Depends(get_clock)]) -> TimerRegistry:
    global _timers
    if _timers is None:
        _timers = TimerRegistry(clock)
    return _timers


def get_responder() -> Responder:
    global _responder
    if _responder is None:
        _responder = MockResponder()
        logger.info("responder_initialized", provider=_responder.provider_name)
    return _responder


def get_transcript_sender() -> TranscriptSender:
    global _transcript_sender
    if _transcript_sender is None:
        _transcript_sender = LoggingTranscriptSender()
    return _transcript_sender


def get_session_lifecycle(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[SessionStore, Depends(get_session_store)],
    router: Annotated[BroadcastRouter, Depends(get_broadcast_router)],
    clock: Annotated[Clock, Depends(get_clock)],
    timers: Annotated[TimerRegistry, Depends(get_timer_registry)],
    responder: Annotated[Responder, Depends(get_responder)],
    transcript_sender: Annotated[TranscriptSender, Depends(get_transcript_sender)],
) -> SessionLifecycle:
    """Get the SessionLifecycle wired to the shared collaborators."""
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = SessionLifecycle(
            store,
            router,
            clock,
            timers,
            responder,
            escalation=settings.escalation,
            rate_limit=settings.rate_limit,
            lifecycle=settings.lifecycle,
            storage=settings.storage,
            transcript_sender=transcript_sender,
        )
        logger.info("session_lifecycle_initialized")
    return _lifecycle


def get_operator_id(
    x_operator_id: Annotated[str, Header(alias="X-Operator-Id", min_length=1)],
) -> str:
    """Operator identity, supplied by the authenticating gateway."""
    return x_operator_id


# Type aliases for dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]
SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
BroadcastRouterDep = Annotated[BroadcastRouter, Depends(get_broadcast_router)]
ClockDep = Annotated[Clock, Depends(get_clock)]
LifecycleDep = Annotated[SessionLifecycle, Depends(get_session_lifecycle)]
OperatorIdDep = Annotated[str, Depends(get_operator_id)]


async def shutdown_dependencies() -> None:
    """Stop timers, drain broadcasts and close connections."""
    if _lifecycle is not None:
        _lifecycle.shutdown()
    elif _timers is not None:
        _timers.shutdown()
    if _router is not None:
        await _router.close()
    if _redis_client is not None:
        await _redis_client.aclose()
    logger.info("dependencies_shutdown")


async def reset_dependencies() -> None:
    """Reset all cached dependencies.

    Used for testing to ensure fresh instances.
    Closes connections before resetting.
    """
    global _redis_client, _clock, _session_store, _router, _timers
    global _responder, _transcript_sender, _lifecycle

    await shutdown_dependencies()

    _redis_client = None
    _clock = None
    _session_store = None
    _router = None
    _timers = None
    _responder = None
    _transcript_sender = None
    _lifecycle = None
    get_settings.cache_clear()
