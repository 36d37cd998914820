"""SessionStore abstract interface and the transaction it hands out.

Every write to a session goes through ``SessionStore.transaction``: the
session row is locked, read, changed in a staged copy and written back in
one step on clean exit. An exception inside the block discards the staged
changes. Internal notes live in their own collection keyed by note id, so a
transaction stages and commits single notes rather than rewriting them all.
Backends only supply the locking, loading and committing primitives.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import pydantic

from liaison.conversation.models import (
    ChatRating,
    ChatSession,
    InternalNote,
    Message,
    Operator,
    SessionStatus,
    utc_now,
)
from liaison.db.errors import LockTimeoutError, NotFoundError, ValidationError

Now = Callable[[], datetime]

# Tie-breaker that keeps message timestamps strictly increasing
_TICK = timedelta(microseconds=1)


@dataclass
class NoteChanges:
    """Per-note writes staged by one transaction, keyed by note id."""

    upserts: dict[UUID, InternalNote] = field(default_factory=dict)
    removed: set[UUID] = field(default_factory=set)

    def __bool__(self) -> bool:
        return bool(self.upserts or self.removed)


class SessionTransaction:
    """Staged view of one locked session.

    ``session`` always reflects the staged state. Nothing reaches the store
    until the owning ``transaction`` block exits cleanly.
    """

    def __init__(
        self,
        session: ChatSession,
        now: Now,
        load_messages: Callable[[int | None], Awaitable[list[Message]]],
        load_note: Callable[[UUID], Awaitable[InternalNote | None]],
    ) -> None:
        self.session = session
        self._now = now
        self._load_messages = load_messages
        self._load_note = load_note
        self._staged: list[Message] = []
        self._notes = NoteChanges()
        self._dirty = False

    def now(self) -> datetime:
        return self._now()

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def new_messages(self) -> list[Message]:
        return list(self._staged)

    @property
    def note_changes(self) -> NoteChanges:
        return self._notes

    def update(self, **changes: Any) -> ChatSession:
        """Stage field changes; the whole record is re-validated."""
        values = {"updated_at": self._now(), **changes}
        try:
            self.session = self.session.with_changes(**values)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Invalid update for session {self.session.session_id}: {e}",
                cause=e,
            ) from e
        self._dirty = True
        return self.session

    def append_message(self, message: Message) -> Message:
        """Stage a message, stamping a strictly increasing created_at."""
        created_at = self._now()
        last = self.session.last_message_at
        if last is not None and created_at <= last:
            created_at = last + _TICK

        stored = message.model_copy(
            update={"session_id": self.session.session_id, "created_at": created_at}
        )
        self._staged.append(stored)
        self.update(last_message_at=created_at)
        return stored

    async def list_messages(self, limit: int | None = None) -> list[Message]:
        """Committed messages followed by the ones staged in this transaction."""
        messages = await self._load_messages(limit) + self._staged
        if limit is not None:
            return messages[-limit:]
        return messages

    async def get_note(self, note_id: UUID) -> InternalNote:
        """The note as staged, falling back to the committed copy."""
        if note_id in self._notes.removed:
            raise NotFoundError(f"Note {note_id} not found")
        note = self._notes.upserts.get(note_id) or await self._load_note(note_id)
        if note is None:
            raise NotFoundError(f"Note {note_id} not found")
        return note

    def add_note(self, note: InternalNote) -> InternalNote:
        self._notes.upserts[note.note_id] = note
        self.update()
        return note

    async def update_note(self, note_id: UUID, content: str) -> InternalNote:
        current = await self.get_note(note_id)
        edited = current.model_copy(
            update={"content": content, "updated_at": self._now()}
        )
        self._notes.upserts[note_id] = edited
        self.update()
        return edited

    async def remove_note(self, note_id: UUID) -> InternalNote:
        removed = await self.get_note(note_id)
        self._notes.upserts.pop(note_id, None)
        self._notes.removed.add(note_id)
        self.update()
        return removed


@dataclass(frozen=True)
class SessionQuery:
    """Filters for ``SessionStore.list_sessions``; None means any."""

    status: SessionStatus | None = None
    operator_id: str | None = None
    user_id: str | None = None
    archived: bool | None = None
    flagged: bool | None = None
    include_deleted: bool = False

    def matches(self, session: ChatSession) -> bool:
        if session.is_deleted and not self.include_deleted:
            return False
        if self.status is not None and session.status != self.status:
            return False
        if self.operator_id is not None and session.operator_id != self.operator_id:
            return False
        if self.user_id is not None and session.user_id != self.user_id:
            return False
        if self.archived is not None and session.is_archived != self.archived:
            return False
        if self.flagged is not None and session.is_flagged != self.flagged:
            return False
        return True


class SessionStore(ABC):
    """Abstract interface for session, message, note, rating and operator records.

    Provides row-level locking through ``transaction`` and an atomic
    compare-and-set on status through ``conditional_update``.
    """

    def __init__(self, now: Now = utc_now, lock_timeout: float = 5.0) -> None:
        self._now = now
        self._lock_timeout = lock_timeout

    # Backend primitives

    @abstractmethod
    def _lock(self, session_id: UUID) -> AbstractAsyncContextManager[bool]:
        """Exclusive per-session lock yielding whether it was acquired."""

    @abstractmethod
    async def _load(self, session_id: UUID) -> ChatSession | None:
        pass

    @abstractmethod
    async def _load_all(self) -> list[ChatSession]:
        """Every stored session, deleted ones included, in no particular order."""

    @abstractmethod
    async def _load_messages(
        self, session_id: UUID, limit: int | None = None
    ) -> list[Message]:
        """Most recent ``limit`` messages, oldest first."""

    @abstractmethod
    async def _load_note(self, session_id: UUID, note_id: UUID) -> InternalNote | None:
        pass

    @abstractmethod
    async def _load_notes(self, session_id: UUID) -> list[InternalNote]:
        pass

    @abstractmethod
    async def _commit(
        self,
        session: ChatSession,
        messages: list[Message],
        notes: NoteChanges | None = None,
    ) -> None:
        """Persist the session, append ``messages`` and apply ``notes`` atomically."""

    # Sessions

    @abstractmethod
    async def create_session(self, session: ChatSession) -> ChatSession:
        pass

    async def list_sessions(
        self,
        *,
        status: SessionStatus | None = None,
        operator_id: str | None = None,
        user_id: str | None = None,
        archived: bool | None = None,
        flagged: bool | None = None,
        include_deleted: bool = False,
        limit: int = 100,
    ) -> list[ChatSession]:
        """List sessions, most recently active first.

        Soft-deleted sessions are left out unless ``include_deleted``.
        """
        query = SessionQuery(
            status=status,
            operator_id=operator_id,
            user_id=user_id,
            archived=archived,
            flagged=flagged,
            include_deleted=include_deleted,
        )
        results = [s for s in await self._load_all() if query.matches(s)]
        results.sort(key=lambda s: s.last_message_at or s.created_at, reverse=True)
        return results[:limit]

    async def get_session(self, session_id: UUID) -> ChatSession | None:
        return await self._load(session_id)

    @asynccontextmanager
    async def transaction(self, session_id: UUID) -> AsyncIterator[SessionTransaction]:
        """Lock the session and yield a staged view of it.

        Raises:
            LockTimeoutError: The lock was not acquired in time
            NotFoundError: The session does not exist
        """
        async with self._lock(session_id) as acquired:
            if not acquired:
                raise LockTimeoutError(str(session_id), self._lock_timeout)

            session = await self._load(session_id)
            if session is None:
                raise NotFoundError(f"Session {session_id} not found")

            async def load_messages(limit: int | None) -> list[Message]:
                return await self._load_messages(session_id, limit)

            async def load_note(note_id: UUID) -> InternalNote | None:
                return await self._load_note(session_id, note_id)

            tx = SessionTransaction(session, self._now, load_messages, load_note)
            yield tx
            if tx.dirty:
                await self._commit(tx.session, tx.new_messages, tx.note_changes)

    async def update_session(self, session_id: UUID, **changes: Any) -> ChatSession:
        async with self.transaction(session_id) as tx:
            return tx.update(**changes)

    async def conditional_update(
        self,
        session_id: UUID,
        expected_status: SessionStatus,
        **changes: Any,
    ) -> bool:
        """Apply ``changes`` only if the status is still ``expected_status``."""
        async with self.transaction(session_id) as tx:
            if tx.session.status != expected_status:
                return False
            tx.update(**changes)
            return True

    async def append_message(
        self, session_id: UUID, message: Message, **changes: Any
    ) -> Message:
        """Append one message, applying ``changes`` in the same transaction."""
        async with self.transaction(session_id) as tx:
            stored = tx.append_message(message)
            if changes:
                tx.update(**changes)
            return stored

    async def list_messages(
        self, session_id: UUID, limit: int | None = None
    ) -> list[Message]:
        return await self._load_messages(session_id, limit)

    # Internal notes

    async def get_note(self, session_id: UUID, note_id: UUID) -> InternalNote | None:
        return await self._load_note(session_id, note_id)

    async def list_notes(self, session_id: UUID) -> list[InternalNote]:
        """Notes on one session, oldest first."""
        notes = await self._load_notes(session_id)
        notes.sort(key=lambda n: (n.created_at, str(n.note_id)))
        return notes

    # Ratings

    @abstractmethod
    async def add_rating(self, rating: ChatRating) -> bool:
        """Store ``rating`` unless the session already has one.

        Returns False, leaving the existing rating untouched, on a duplicate.
        """

    @abstractmethod
    async def get_rating(self, session_id: UUID) -> ChatRating | None:
        pass

    @abstractmethod
    async def _load_ratings(self) -> list[ChatRating]:
        pass

    async def list_ratings(
        self,
        *,
        operator_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[ChatRating]:
        """Ratings, newest first, optionally for one operator and time range."""
        ratings = [
            r
            for r in await self._load_ratings()
            if (operator_id is None or r.operator_id == operator_id)
            and (since is None or r.created_at >= since)
            and (until is None or r.created_at <= until)
        ]
        ratings.sort(key=lambda r: r.created_at, reverse=True)
        return ratings

    # Operators

    @abstractmethod
    async def get_operator(self, operator_id: str) -> Operator | None:
        pass

    @abstractmethod
    async def save_operator(self, operator: Operator) -> Operator:
        pass

    @abstractmethod
    async def list_available_operators(self) -> list[Operator]:
        """Available operators, least loaded first."""

    @abstractmethod
    async def increment_chats_handled(self, operator_id: str) -> None:
        pass

    @abstractmethod
    async def set_operator_availability(
        self, operator_id: str, available: bool
    ) -> Operator | None:
        """Returns None when the operator does not exist."""
