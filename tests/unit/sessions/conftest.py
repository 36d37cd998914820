"""Fixtures for session lifecycle tests.

Everything runs on a ManualClock, so escalation timers fire only when a test
advances time.
"""

from collections import defaultdict
from collections.abc import Callable

import pytest

from liaison.config.models.rate_limit import RateLimitConfig
from liaison.conversation.models import Operator
from liaison.conversation.stores import InMemorySessionStore
from liaison.providers.responder import MockResponder
from liaison.providers.transcript import RecordingTranscriptSender
from liaison.runtime.broadcast import BroadcastRouter
from liaison.runtime.clock import ManualClock
from liaison.runtime.events import LiveEvent
from liaison.runtime.timers import TimerRegistry
from liaison.sessions import SessionLifecycle


class EventLog:
    """Subscriber that records events per room."""

    def __init__(self) -> None:
        self.by_room: dict[str, list[LiveEvent]] = defaultdict(list)

    async def __call__(self, room: str, event: LiveEvent) -> None:
        self.by_room[room].append(event)

    def types(self, room: str) -> list[str]:
        return [event.type for event in self.by_room[room]]

    def of_type(self, room: str, event_type: str) -> list[LiveEvent]:
        return [e for e in self.by_room[room] if e.type == event_type]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> InMemorySessionStore:
    return InMemorySessionStore(now=clock.now)


@pytest.fixture
async def router():
    router = BroadcastRouter()
    yield router
    await router.close()


@pytest.fixture
def timers(clock: ManualClock) -> TimerRegistry:
    return TimerRegistry(clock)


@pytest.fixture
def responder() -> MockResponder:
    return MockResponder()


@pytest.fixture
def transcripts() -> RecordingTranscriptSender:
    return RecordingTranscriptSender()


@pytest.fixture
def lifecycle(
    store: InMemorySessionStore,
    router: BroadcastRouter,
    clock: ManualClock,
    timers: TimerRegistry,
    responder: MockResponder,
    transcripts: RecordingTranscriptSender,
) -> SessionLifecycle:
    return SessionLifecycle(
        store,
        router,
        clock,
        timers,
        responder,
        rate_limit=RateLimitConfig(max_messages=10, spam_threshold=20),
        transcript_sender=transcripts,
    )


@pytest.fixture
async def operators(store: InMemorySessionStore) -> dict[str, Operator]:
    alice = await store.save_operator(Operator(operator_id="op-a", name="Alice"))
    bob = await store.save_operator(Operator(operator_id="op-b", name="Bob"))
    return {"a": alice, "b": bob}


@pytest.fixture
def events(router: BroadcastRouter) -> Callable[..., EventLog]:
    """Subscribe one EventLog to the given rooms."""

    def watch(*rooms: str) -> EventLog:
        log = EventLog()
        for room in rooms:
            router.subscribe(room, log)
        return log

    return watch
