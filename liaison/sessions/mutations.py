"""Serialized read-modify-write access to one session's history.

Message appends and internal-note edits all run inside
``SessionMutations.transaction``, which wraps the store's locked transaction
with a bounded retry on lock contention. Note edits check ownership before
taking the lock and again once the lock is held.
"""

from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any
from uuid import UUID

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from liaison.conversation.models import (
    ChatSession,
    InternalNote,
    Message,
    SessionStatus,
)
from liaison.conversation.store import SessionStore, SessionTransaction
from liaison.db.errors import LockTimeoutError
from liaison.db.errors import NotFoundError as StoreNotFoundError
from liaison.errors import (
    ForbiddenError,
    InternalError,
    NoteNotFoundError,
    SessionNotFoundError,
)
from liaison.observability.logging import get_logger
from liaison.observability.metrics import STORE_LOCK_RETRIES

logger = get_logger(__name__)


def _log_lock_retry(retry_state: RetryCallState) -> None:
    STORE_LOCK_RETRIES.inc()
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "session_lock_retry",
        attempt=retry_state.attempt_number,
        error=str(exc),
    )


class SessionMutations:
    """Linearizable per-session mutations on top of a SessionStore."""

    def __init__(
        self,
        store: SessionStore,
        lock_retries: int = 3,
        backoff_seconds: float = 0.05,
    ) -> None:
        self._store = store
        self._lock_retries = lock_retries
        self._backoff_seconds = backoff_seconds

    @property
    def store(self) -> SessionStore:
        return self._store

    async def _enter(self, stack: AsyncExitStack, session_id: UUID) -> SessionTransaction:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(LockTimeoutError),
            stop=stop_after_attempt(self._lock_retries),
            wait=wait_exponential(multiplier=self._backoff_seconds, max=1.0),
            before_sleep=_log_lock_retry,
            reraise=True,
        )

        async def lock() -> SessionTransaction:
            # A fresh context manager per attempt
            return await stack.enter_async_context(self._store.transaction(session_id))

        return await retrying(lock)

    @asynccontextmanager
    async def transaction(self, session_id: UUID) -> AsyncIterator[SessionTransaction]:
        """Locked, all-or-nothing access to one session.

        Raises:
            SessionNotFoundError: The session does not exist or was deleted
            InternalError: The lock could not be obtained after every retry
        """
        async with AsyncExitStack() as stack:
            try:
                tx = await self._enter(stack, session_id)
            except LockTimeoutError as e:
                logger.error(
                    "session_lock_exhausted",
                    session_id=str(session_id),
                    attempts=self._lock_retries,
                )
                raise InternalError(
                    f"Session {session_id} is busy, try again later"
                ) from e
            except StoreNotFoundError as e:
                raise SessionNotFoundError(str(session_id)) from e
            if tx.session.is_deleted:
                raise SessionNotFoundError(str(session_id))
            yield tx

    async def update_session(self, session_id: UUID, **changes: Any) -> ChatSession:
        async with self.transaction(session_id) as tx:
            return tx.update(**changes)

    async def conditional_update(
        self,
        session_id: UUID,
        expected_status: SessionStatus,
        **changes: Any,
    ) -> bool:
        """Compare-and-set on status: apply ``changes`` only if still expected."""
        async with self.transaction(session_id) as tx:
            if tx.session.status != expected_status:
                return False
            tx.update(**changes)
            return True

    async def append_message(
        self, session_id: UUID, message: Message, **changes: Any
    ) -> Message:
        """Append one message and apply ``changes`` in the same transaction."""
        stored = await self.append_messages(session_id, [message], **changes)
        return stored[0]

    async def append_messages(
        self, session_id: UUID, messages: list[Message], **changes: Any
    ) -> list[Message]:
        async with self.transaction(session_id) as tx:
            stored = [tx.append_message(m) for m in messages]
            if changes:
                tx.update(**changes)
        return stored

    # Internal notes

    async def list_notes(self, session_id: UUID) -> list[InternalNote]:
        session = await self._store.get_session(session_id)
        if session is None or session.is_deleted:
            raise SessionNotFoundError(str(session_id))
        return await self._store.list_notes(session_id)

    async def add_note(
        self,
        session_id: UUID,
        *,
        author_id: str,
        author_name: str,
        content: str,
    ) -> InternalNote:
        async with self.transaction(session_id) as tx:
            note = tx.add_note(
                InternalNote(
                    content=content,
                    author_id=author_id,
                    author_name=author_name,
                    created_at=tx.now(),
                    updated_at=tx.now(),
                )
            )
        logger.info(
            "note_added",
            session_id=str(session_id),
            note_id=str(note.note_id),
            operator_id=author_id,
        )
        return note

    async def update_note(
        self,
        session_id: UUID,
        note_id: UUID,
        *,
        operator_id: str,
        content: str,
    ) -> InternalNote:
        await self._check_note_owner(session_id, note_id, operator_id)
        async with self.transaction(session_id) as tx:
            await self._owned_note(tx, note_id, operator_id)
            note = await tx.update_note(note_id, content)
        logger.info(
            "note_updated",
            session_id=str(session_id),
            note_id=str(note_id),
            operator_id=operator_id,
        )
        return note

    async def delete_note(
        self,
        session_id: UUID,
        note_id: UUID,
        *,
        operator_id: str,
    ) -> InternalNote:
        await self._check_note_owner(session_id, note_id, operator_id)
        async with self.transaction(session_id) as tx:
            await self._owned_note(tx, note_id, operator_id)
            note = await tx.remove_note(note_id)
        logger.info(
            "note_deleted",
            session_id=str(session_id),
            note_id=str(note_id),
            operator_id=operator_id,
        )
        return note

    async def _check_note_owner(
        self, session_id: UUID, note_id: UUID, operator_id: str
    ) -> None:
        """Unlocked ownership check so other operators fail without waiting."""
        session = await self._store.get_session(session_id)
        if session is None or session.is_deleted:
            raise SessionNotFoundError(str(session_id))
        note = await self._store.get_note(session_id, note_id)
        if note is None:
            raise NoteNotFoundError(str(note_id))
        if note.author_id != operator_id:
            raise ForbiddenError("Only the author can change this note")

    @staticmethod
    async def _owned_note(
        tx: SessionTransaction, note_id: UUID, operator_id: str
    ) -> InternalNote:
        # The note may have been removed while we waited for the lock
        try:
            note = await tx.get_note(note_id)
        except StoreNotFoundError as e:
            raise NoteNotFoundError(str(note_id)) from e
        if note.author_id != operator_id:
            raise ForbiddenError("Only the author can change this note")
        return note
