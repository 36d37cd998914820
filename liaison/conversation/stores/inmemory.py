"""In-memory implementation of SessionStore."""

from contextlib import AbstractAsyncContextManager
from uuid import UUID

from liaison.conversation.models import (
    ChatRating,
    ChatSession,
    InternalNote,
    Message,
    Operator,
    utc_now,
)
from liaison.conversation.store import NoteChanges, Now, SessionStore
from liaison.db.errors import NotFoundError
from liaison.runtime.mutex import KeyedMutex


class InMemorySessionStore(SessionStore):
    """In-memory implementation of SessionStore for testing and development.

    Uses plain dicts with linear scans for queries and one asyncio lock per
    session. Records are copied on the way in and out so callers never share
    state with the store. Not suitable for multi-process deployments.
    """

    def __init__(self, now: Now = utc_now, lock_timeout: float = 5.0) -> None:
        super().__init__(now=now, lock_timeout=lock_timeout)
        self._sessions: dict[UUID, ChatSession] = {}
        self._messages: dict[UUID, list[Message]] = {}
        self._notes: dict[UUID, dict[UUID, InternalNote]] = {}
        self._ratings: dict[UUID, ChatRating] = {}
        self._operators: dict[str, Operator] = {}
        self._mutex = KeyedMutex(blocking_timeout=lock_timeout)

    def _lock(self, session_id: UUID) -> AbstractAsyncContextManager[bool]:
        return self._mutex.acquire(str(session_id))

    async def _load(self, session_id: UUID) -> ChatSession | None:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def _load_messages(
        self, session_id: UUID, limit: int | None = None
    ) -> list[Message]:
        messages = self._messages.get(session_id, [])
        if limit is not None:
            return messages[-limit:] if limit > 0 else []
        return list(messages)

    async def _load_all(self) -> list[ChatSession]:
        return [s.model_copy(deep=True) for s in self._sessions.values()]

    async def _load_note(self, session_id: UUID, note_id: UUID) -> InternalNote | None:
        note = self._notes.get(session_id, {}).get(note_id)
        return note.model_copy() if note else None

    async def _load_notes(self, session_id: UUID) -> list[InternalNote]:
        return [n.model_copy() for n in self._notes.get(session_id, {}).values()]

    async def _commit(
        self,
        session: ChatSession,
        messages: list[Message],
        notes: NoteChanges | None = None,
    ) -> None:
        sid = session.session_id
        self._sessions[sid] = session.model_copy(deep=True)
        if messages:
            self._messages.setdefault(sid, []).extend(messages)
        if notes:
            stored = self._notes.setdefault(sid, {})
            for note_id in notes.removed:
                stored.pop(note_id, None)
            for note_id, note in notes.upserts.items():
                stored[note_id] = note.model_copy()

    async def create_session(self, session: ChatSession) -> ChatSession:
        self._sessions[session.session_id] = session.model_copy(deep=True)
        self._messages[session.session_id] = []
        return session

    async def add_rating(self, rating: ChatRating) -> bool:
        if rating.session_id in self._ratings:
            return False
        self._ratings[rating.session_id] = rating.model_copy()
        return True

    async def get_rating(self, session_id: UUID) -> ChatRating | None:
        rating = self._ratings.get(session_id)
        return rating.model_copy() if rating else None

    async def _load_ratings(self) -> list[ChatRating]:
        return [r.model_copy() for r in self._ratings.values()]

    async def get_operator(self, operator_id: str) -> Operator | None:
        operator = self._operators.get(operator_id)
        return operator.model_copy() if operator else None

    async def save_operator(self, operator: Operator) -> Operator:
        self._operators[operator.operator_id] = operator.model_copy()
        return operator

    async def list_available_operators(self) -> list[Operator]:
        available = [op.model_copy() for op in self._operators.values() if op.is_available]
        available.sort(key=lambda op: (op.total_chats_handled, op.operator_id))
        return available

    async def increment_chats_handled(self, operator_id: str) -> None:
        operator = self._operators.get(operator_id)
        if operator is None:
            raise NotFoundError(f"Operator {operator_id} not found")
        self._operators[operator_id] = operator.model_copy(
            update={"total_chats_handled": operator.total_chats_handled + 1}
        )

    async def set_operator_availability(
        self, operator_id: str, available: bool
    ) -> Operator | None:
        operator = self._operators.get(operator_id)
        if operator is None:
            return None
        updated = operator.model_copy(update={"is_available": available})
        self._operators[operator_id] = updated
        return updated.model_copy()
