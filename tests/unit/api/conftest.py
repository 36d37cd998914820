"""Fixtures for API tests.

The app is built with ``create_app`` and every collaborator is overridden
with in-memory instances driven by a ManualClock.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from liaison.api.app import create_app
from liaison.api.dependencies import (
    get_broadcast_router,
    get_clock,
    get_session_lifecycle,
    get_session_store,
    reset_dependencies,
)
from liaison.config.models.rate_limit import RateLimitConfig
from liaison.conversation.models import Operator
from liaison.conversation.stores import InMemorySessionStore
from liaison.providers.responder import MockResponder
from liaison.providers.transcript import RecordingTranscriptSender
from liaison.runtime.broadcast import BroadcastRouter
from liaison.runtime.clock import ManualClock
from liaison.runtime.timers import TimerRegistry
from liaison.sessions import SessionLifecycle


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def session_store(clock: ManualClock) -> InMemorySessionStore:
    return InMemorySessionStore(now=clock.now)


@pytest.fixture
def broadcast() -> BroadcastRouter:
    return BroadcastRouter()


@pytest.fixture
def transcripts() -> RecordingTranscriptSender:
    return RecordingTranscriptSender()


@pytest.fixture
def lifecycle(
    session_store: InMemorySessionStore,
    broadcast: BroadcastRouter,
    clock: ManualClock,
    transcripts: RecordingTranscriptSender,
) -> SessionLifecycle:
    return SessionLifecycle(
        session_store,
        broadcast,
        clock,
        TimerRegistry(clock),
        MockResponder(),
        rate_limit=RateLimitConfig(max_messages=3, spam_threshold=5),
        transcript_sender=transcripts,
    )


@pytest.fixture
async def operators(session_store: InMemorySessionStore) -> list[Operator]:
    return [
        await session_store.save_operator(Operator(operator_id="op-a", name="Alice")),
        await session_store.save_operator(Operator(operator_id="op-b", name="Bob")),
    ]


@pytest.fixture
async def app(
    clock: ManualClock,
    session_store: InMemorySessionStore,
    broadcast: BroadcastRouter,
    lifecycle: SessionLifecycle,
) -> FastAPI:
    """Create test FastAPI app."""
    await reset_dependencies()

    app = create_app()
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_broadcast_router] = lambda: broadcast
    app.dependency_overrides[get_session_lifecycle] = lambda: lifecycle
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Test client."""
    return TestClient(app, raise_server_exceptions=False)


def operator_headers(operator_id: str = "op-a") -> dict[str, str]:
    return {"X-Operator-Id": operator_id}


@pytest.fixture
def as_operator():
    return operator_headers
