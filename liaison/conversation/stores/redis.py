"""Redis implementation of SessionStore.

Key structure:
- {prefix}:session:{session_id} - session record as JSON
- {prefix}:messages:{session_id} - transcript list, one JSON message per item
- {prefix}:notes:{session_id} - internal notes hash, note id -> JSON note
- {prefix}:sessions - set of every session id
- {prefix}:rating:{session_id} - visitor rating as JSON, written once
- {prefix}:ratings - set of every rated session id
- {prefix}:operator:{operator_id} - operator hash
- {prefix}:operators - set of every operator id
- {prefix}:lock:{session_id} - session lock (see SessionMutex)

The client must be created with ``decode_responses=True``.
"""

from contextlib import AbstractAsyncContextManager
from typing import Protocol
from uuid import UUID

import redis.asyncio as redis

from liaison.conversation.models import (
    ChatRating,
    ChatSession,
    InternalNote,
    Message,
    Operator,
    utc_now,
)
from liaison.conversation.store import NoteChanges, Now, SessionStore
from liaison.db.errors import ConnectionError, NotFoundError
from liaison.observability.logging import get_logger
from liaison.runtime.mutex import SessionMutex

logger = get_logger(__name__)


class _Mutex(Protocol):
    def acquire(
        self, key: str, blocking_timeout: float | None = None
    ) -> AbstractAsyncContextManager[bool]: ...


class RedisSessionStore(SessionStore):
    """Redis-backed session store shared by every process of a deployment.

    Writes for one session are serialized by a Redis lock; the session
    record and its new messages are written in one MULTI/EXEC pipeline.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        prefix: str = "liaison",
        now: Now = utc_now,
        lock_timeout: float = 5.0,
        lock_lease: int = 30,
        mutex: _Mutex | None = None,
    ) -> None:
        """Initialize Redis session store.

        Args:
            client: Redis client created with decode_responses=True
            prefix: Key namespace
            now: Time source for record timestamps
            lock_timeout: Seconds to wait for a session lock
            lock_lease: Seconds a held lock survives without release
            mutex: Lock provider; defaults to a SessionMutex on ``client``
        """
        super().__init__(now=now, lock_timeout=lock_timeout)
        self._client = client
        self._prefix = prefix
        self._mutex = mutex or SessionMutex(
            client,
            prefix=prefix,
            lock_timeout=lock_lease,
            blocking_timeout=lock_timeout,
        )

    def _session_key(self, session_id: UUID) -> str:
        return f"{self._prefix}:session:{session_id}"

    def _messages_key(self, session_id: UUID) -> str:
        return f"{self._prefix}:messages:{session_id}"

    def _notes_key(self, session_id: UUID) -> str:
        return f"{self._prefix}:notes:{session_id}"

    def _rating_key(self, session_id: UUID) -> str:
        return f"{self._prefix}:rating:{session_id}"

    def _ratings_index_key(self) -> str:
        return f"{self._prefix}:ratings"

    def _sessions_index_key(self) -> str:
        return f"{self._prefix}:sessions"

    def _operator_key(self, operator_id: str) -> str:
        return f"{self._prefix}:operator:{operator_id}"

    def _operators_index_key(self) -> str:
        return f"{self._prefix}:operators"

    def _lock(self, session_id: UUID) -> AbstractAsyncContextManager[bool]:
        return self._mutex.acquire(str(session_id))

    async def _load(self, session_id: UUID) -> ChatSession | None:
        try:
            data = await self._client.get(self._session_key(session_id))
        except redis.RedisError as e:
            logger.error("redis_get_error", session_id=str(session_id), error=str(e))
            raise ConnectionError(f"Failed to get session: {e}", cause=e) from e
        return ChatSession.model_validate_json(data) if data else None

    async def _load_messages(
        self, session_id: UUID, limit: int | None = None
    ) -> list[Message]:
        if limit is not None and limit <= 0:
            return []
        start = -limit if limit is not None else 0
        try:
            items = await self._client.lrange(self._messages_key(session_id), start, -1)
        except redis.RedisError as e:
            logger.error(
                "redis_list_messages_error", session_id=str(session_id), error=str(e)
            )
            raise ConnectionError(f"Failed to list messages: {e}", cause=e) from e
        return [Message.model_validate_json(item) for item in items]

    async def _load_note(self, session_id: UUID, note_id: UUID) -> InternalNote | None:
        try:
            data = await self._client.hget(self._notes_key(session_id), str(note_id))
        except redis.RedisError as e:
            logger.error("redis_get_note_error", session_id=str(session_id), error=str(e))
            raise ConnectionError(f"Failed to get note: {e}", cause=e) from e
        return InternalNote.model_validate_json(data) if data else None

    async def _load_notes(self, session_id: UUID) -> list[InternalNote]:
        try:
            items = await self._client.hvals(self._notes_key(session_id))
        except redis.RedisError as e:
            logger.error(
                "redis_list_notes_error", session_id=str(session_id), error=str(e)
            )
            raise ConnectionError(f"Failed to list notes: {e}", cause=e) from e
        return [InternalNote.model_validate_json(item) for item in items]

    async def _commit(
        self,
        session: ChatSession,
        messages: list[Message],
        notes: NoteChanges | None = None,
    ) -> None:
        sid = session.session_id
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.set(self._session_key(sid), session.model_dump_json())
                pipe.sadd(self._sessions_index_key(), str(sid))
                if messages:
                    pipe.rpush(
                        self._messages_key(sid),
                        *[m.model_dump_json() for m in messages],
                    )
                if notes and notes.removed:
                    pipe.hdel(self._notes_key(sid), *[str(n) for n in notes.removed])
                if notes and notes.upserts:
                    pipe.hset(
                        self._notes_key(sid),
                        mapping={
                            str(note_id): note.model_dump_json()
                            for note_id, note in notes.upserts.items()
                        },
                    )
                await pipe.execute()
        except redis.RedisError as e:
            logger.error(
                "redis_commit_error", session_id=str(session.session_id), error=str(e)
            )
            raise ConnectionError(f"Failed to save session: {e}", cause=e) from e

        logger.debug(
            "session_committed",
            session_id=str(session.session_id),
            new_messages=len(messages),
            note_writes=len(notes.upserts) + len(notes.removed) if notes else 0,
        )

    async def create_session(self, session: ChatSession) -> ChatSession:
        await self._commit(session, [])
        return session

    async def _load_all(self) -> list[ChatSession]:
        try:
            ids = await self._client.smembers(self._sessions_index_key())
            if not ids:
                return []
            records = await self._client.mget(
                [f"{self._prefix}:session:{sid}" for sid in ids]
            )
        except redis.RedisError as e:
            logger.error("redis_list_sessions_error", error=str(e))
            raise ConnectionError(f"Failed to list sessions: {e}", cause=e) from e

        return [ChatSession.model_validate_json(data) for data in records if data]

    async def add_rating(self, rating: ChatRating) -> bool:
        try:
            created = await self._client.set(
                self._rating_key(rating.session_id), rating.model_dump_json(), nx=True
            )
            if created:
                await self._client.sadd(self._ratings_index_key(), str(rating.session_id))
        except redis.RedisError as e:
            logger.error(
                "redis_add_rating_error", session_id=str(rating.session_id), error=str(e)
            )
            raise ConnectionError(f"Failed to save rating: {e}", cause=e) from e
        return bool(created)

    async def get_rating(self, session_id: UUID) -> ChatRating | None:
        try:
            data = await self._client.get(self._rating_key(session_id))
        except redis.RedisError as e:
            logger.error("redis_get_rating_error", session_id=str(session_id), error=str(e))
            raise ConnectionError(f"Failed to get rating: {e}", cause=e) from e
        return ChatRating.model_validate_json(data) if data else None

    async def _load_ratings(self) -> list[ChatRating]:
        try:
            ids = await self._client.smembers(self._ratings_index_key())
            if not ids:
                return []
            records = await self._client.mget(
                [f"{self._prefix}:rating:{sid}" for sid in ids]
            )
        except redis.RedisError as e:
            logger.error("redis_list_ratings_error", error=str(e))
            raise ConnectionError(f"Failed to list ratings: {e}", cause=e) from e
        return [ChatRating.model_validate_json(data) for data in records if data]

    async def get_operator(self, operator_id: str) -> Operator | None:
        try:
            data = await self._client.hgetall(self._operator_key(operator_id))
        except redis.RedisError as e:
            logger.error("redis_get_operator_error", operator_id=operator_id, error=str(e))
            raise ConnectionError(f"Failed to get operator: {e}", cause=e) from e
        if not data:
            return None
        return Operator(
            operator_id=operator_id,
            name=data["name"],
            is_available=data["is_available"] == "1",
            total_chats_handled=int(data["total_chats_handled"]),
        )

    async def save_operator(self, operator: Operator) -> Operator:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(
                    self._operator_key(operator.operator_id),
                    mapping={
                        "name": operator.name,
                        "is_available": "1" if operator.is_available else "0",
                        "total_chats_handled": operator.total_chats_handled,
                    },
                )
                pipe.sadd(self._operators_index_key(), operator.operator_id)
                await pipe.execute()
        except redis.RedisError as e:
            logger.error(
                "redis_save_operator_error",
                operator_id=operator.operator_id,
                error=str(e),
            )
            raise ConnectionError(f"Failed to save operator: {e}", cause=e) from e
        return operator

    async def list_available_operators(self) -> list[Operator]:
        try:
            ids = await self._client.smembers(self._operators_index_key())
        except redis.RedisError as e:
            logger.error("redis_list_operators_error", error=str(e))
            raise ConnectionError(f"Failed to list operators: {e}", cause=e) from e

        available = []
        for operator_id in ids:
            operator = await self.get_operator(operator_id)
            if operator is not None and operator.is_available:
                available.append(operator)
        available.sort(key=lambda op: (op.total_chats_handled, op.operator_id))
        return available

    async def increment_chats_handled(self, operator_id: str) -> None:
        key = self._operator_key(operator_id)
        try:
            if not await self._client.exists(key):
                raise NotFoundError(f"Operator {operator_id} not found")
            await self._client.hincrby(key, "total_chats_handled", 1)
        except redis.RedisError as e:
            logger.error(
                "redis_increment_operator_error", operator_id=operator_id, error=str(e)
            )
            raise ConnectionError(f"Failed to update operator: {e}", cause=e) from e

    async def set_operator_availability(
        self, operator_id: str, available: bool
    ) -> Operator | None:
        key = self._operator_key(operator_id)
        try:
            if not await self._client.exists(key):
                return None
            await self._client.hset(key, "is_available", "1" if available else "0")
        except redis.RedisError as e:
            logger.error(
                "redis_set_availability_error", operator_id=operator_id, error=str(e)
            )
            raise ConnectionError(f"Failed to update operator: {e}", cause=e) from e
        return await self.get_operator(operator_id)
