"""Unit tests for SessionMutations."""

import asyncio
from uuid import uuid4

import pytest

from liaison.conversation.models import ChatSession, Message, MessageType, SessionStatus
from liaison.conversation.stores import InMemorySessionStore
from liaison.errors import (
    ForbiddenError,
    InternalError,
    NoteNotFoundError,
    SessionNotFoundError,
)
from liaison.sessions import SessionMutations


@pytest.fixture
def mutations(store: InMemorySessionStore) -> SessionMutations:
    return SessionMutations(store, lock_retries=3, backoff_seconds=0.001)


@pytest.fixture
async def session(store: InMemorySessionStore) -> ChatSession:
    return await store.create_session(ChatSession())


class TestTransaction:
    async def test_missing_session_maps_to_domain_error(
        self, mutations: SessionMutations
    ) -> None:
        with pytest.raises(SessionNotFoundError):
            await mutations.update_session(uuid4(), unread_count=1)

    async def test_lock_contention_exhausts_into_internal_error(
        self, session: ChatSession
    ) -> None:
        store = InMemorySessionStore(lock_timeout=0.01)
        await store.create_session(session)
        mutations = SessionMutations(store, lock_retries=2, backoff_seconds=0.001)

        async with store.transaction(session.session_id):
            with pytest.raises(InternalError, match="busy"):
                await mutations.update_session(session.session_id, unread_count=1)

    async def test_retry_succeeds_once_lock_frees(self, session: ChatSession) -> None:
        store = InMemorySessionStore(lock_timeout=0.02)
        await store.create_session(session)
        mutations = SessionMutations(store, lock_retries=5, backoff_seconds=0.01)

        async def hold_briefly() -> None:
            async with store.transaction(session.session_id):
                await asyncio.sleep(0.03)

        holder = asyncio.create_task(hold_briefly())
        await asyncio.sleep(0)
        updated = await mutations.update_session(session.session_id, unread_count=2)
        await holder

        assert updated.unread_count == 2

    async def test_append_messages_with_changes(
        self,
        mutations: SessionMutations,
        store: InMemorySessionStore,
        session: ChatSession,
    ) -> None:
        stored = await mutations.append_messages(
            session.session_id,
            [
                Message(session_id=session.session_id, type=MessageType.USER, content="q"),
                Message(session_id=session.session_id, type=MessageType.AI, content="a"),
            ],
            unread_count=1,
        )

        assert stored[0].created_at < stored[1].created_at
        assert (await store.get_session(session.session_id)).unread_count == 1

    async def test_conditional_update(
        self, mutations: SessionMutations, session: ChatSession
    ) -> None:
        assert not await mutations.conditional_update(
            session.session_id, SessionStatus.WAITING, status=SessionStatus.ACTIVE
        )
        assert await mutations.conditional_update(
            session.session_id, SessionStatus.ACTIVE, status=SessionStatus.WAITING
        )


class TestNotes:
    async def test_add_and_list(
        self, mutations: SessionMutations, session: ChatSession
    ) -> None:
        note = await mutations.add_note(
            session.session_id, author_id="op-a", author_name="Alice", content="VIP"
        )

        notes = await mutations.list_notes(session.session_id)
        assert notes == [note]
        assert note.author_name == "Alice"

    async def test_author_can_edit_and_delete(
        self, mutations: SessionMutations, session: ChatSession
    ) -> None:
        note = await mutations.add_note(
            session.session_id, author_id="op-a", author_name="Alice", content="VIP"
        )

        edited = await mutations.update_note(
            session.session_id, note.note_id, operator_id="op-a", content="Very VIP"
        )
        assert edited.content == "Very VIP"

        await mutations.delete_note(session.session_id, note.note_id, operator_id="op-a")
        assert await mutations.list_notes(session.session_id) == []

    async def test_other_operator_cannot_edit(
        self, mutations: SessionMutations, session: ChatSession
    ) -> None:
        note = await mutations.add_note(
            session.session_id, author_id="op-a", author_name="Alice", content="VIP"
        )

        with pytest.raises(ForbiddenError):
            await mutations.update_note(
                session.session_id, note.note_id, operator_id="op-b", content="mine now"
            )
        with pytest.raises(ForbiddenError):
            await mutations.delete_note(
                session.session_id, note.note_id, operator_id="op-b"
            )

    async def test_unknown_note(
        self, mutations: SessionMutations, session: ChatSession
    ) -> None:
        with pytest.raises(NoteNotFoundError):
            await mutations.delete_note(session.session_id, uuid4(), operator_id="op-a")

    async def test_concurrent_note_adds_are_all_kept(
        self, mutations: SessionMutations, session: ChatSession
    ) -> None:
        await asyncio.gather(*[
            mutations.add_note(
                session.session_id,
                author_id="op-a",
                author_name="Alice",
                content=f"note {i}",
            )
            for i in range(10)
        ])

        assert len(await mutations.list_notes(session.session_id)) == 10

    async def test_deleting_one_note_keeps_the_others(
        self,
        mutations: SessionMutations,
        session: ChatSession,
        store: InMemorySessionStore,
    ) -> None:
        keep = await mutations.add_note(
            session.session_id, author_id="op-a", author_name="Alice", content="VIP"
        )
        drop = await mutations.add_note(
            session.session_id, author_id="op-b", author_name="Bob", content="typo"
        )

        await mutations.delete_note(session.session_id, drop.note_id, operator_id="op-b")

        assert await mutations.list_notes(session.session_id) == [keep]
        assert await store.get_note(session.session_id, keep.note_id) == keep
        stored = await store.get_session(session.session_id)
        assert "internal_notes" not in stored.model_dump()
