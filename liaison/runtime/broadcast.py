"""Real-time fan-out of live events to rooms.

Publishing never blocks: the event is queued for the room and a single
worker task per room delivers queued events in order. Subscribers are
snapshotted at publish time. A subscriber that raises is logged and skipped;
the rest of the room still receives the event. Delivery is best effort and
viewers that miss events recover by re-fetching state.
"""

import asyncio
from collections import defaultdict
from collections.abc import Iterable
from typing import Protocol

from liaison.observability.logging import get_logger
from liaison.observability.metrics import BROADCAST_EVENTS, BROADCAST_FAILURES
from liaison.runtime.events import LiveEvent, Room

logger = get_logger(__name__)


class Subscriber(Protocol):
    """Async callable that receives the events of the rooms it joined."""

    async def __call__(self, room: str, event: LiveEvent) -> None:
        ...


_Delivery = tuple[LiveEvent, list[Subscriber]]


class BroadcastRouter:
    """Room registry plus ordered, fire-and-forget delivery."""

    def __init__(self) -> None:
        self._rooms: dict[str, list[Subscriber]] = defaultdict(list)
        self._queues: dict[str, asyncio.Queue[_Delivery]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    def subscribe(self, room: str, subscriber: Subscriber) -> None:
        members = self._rooms[room]
        if subscriber not in members:
            members.append(subscriber)
            logger.debug("room_joined", room=room, members=len(members))

    def unsubscribe(self, room: str, subscriber: Subscriber) -> bool:
        members = self._rooms.get(room)
        if not members or subscriber not in members:
            return False
        members.remove(subscriber)
        if not members:
            del self._rooms[room]
        logger.debug("room_left", room=room)
        return True

    def unsubscribe_all(self, subscriber: Subscriber) -> list[str]:
        """Remove a subscriber from every room; returns the rooms it left."""
        left = [room for room, members in self._rooms.items() if subscriber in members]
        for room in left:
            self.unsubscribe(room, subscriber)
        return left

    def has_subscribers(self, room: str) -> bool:
        return bool(self._rooms.get(room))

    def subscriber_count(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    def publish(
        self,
        room: str,
        event: LiveEvent,
        exclude: Subscriber | None = None,
    ) -> None:
        """Queue ``event`` for everyone currently in ``room``."""
        BROADCAST_EVENTS.labels(room_kind=Room.kind(room), event_type=event.type).inc()

        recipients = [s for s in self._rooms.get(room, ()) if s is not exclude]
        if not recipients or self._closed:
            logger.debug("broadcast_no_recipients", room=room, event_type=event.type)
            return

        queue = self._queues.get(room)
        if queue is None:
            queue = self._queues[room] = asyncio.Queue()
        queue.put_nowait((event, recipients))

        if room not in self._workers:
            self._workers[room] = asyncio.get_running_loop().create_task(
                self._run(room, queue)
            )

    def publish_many(self, rooms: Iterable[str], event: LiveEvent) -> None:
        for room in rooms:
            self.publish(room, event)

    async def _run(self, room: str, queue: "asyncio.Queue[_Delivery]") -> None:
        try:
            while not queue.empty():
                event, recipients = queue.get_nowait()
                try:
                    for subscriber in recipients:
                        await self._deliver(room, subscriber, event)
                finally:
                    queue.task_done()
        finally:
            # Nothing is queued now; the next publish starts a fresh worker
            self._workers.pop(room, None)
            if queue.empty() and self._queues.get(room) is queue:
                del self._queues[room]

    async def _deliver(self, room: str, subscriber: Subscriber, event: LiveEvent) -> None:
        try:
            await subscriber(room, event)
        except Exception as e:
            BROADCAST_FAILURES.labels(room_kind=Room.kind(room)).inc()
            logger.warning(
                "broadcast_delivery_failed",
                room=room,
                event_type=event.type,
                error=str(e),
            )

    async def drain(self) -> None:
        """Wait until every queued event has been delivered."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    async def close(self) -> None:
        self._closed = True
        workers = list(self._workers.values())
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
        self._rooms.clear()
        logger.info("broadcast_router_closed")
