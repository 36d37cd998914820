"""Scenario tests for SessionLifecycle.

Time is driven by a ManualClock; events are observed through BroadcastRouter
subscriptions and drained before each assertion.
"""

import asyncio
from uuid import uuid4

import pytest

from liaison.conversation.models import (
    ClosureReason,
    MessageType,
    Operator,
    Priority,
    SessionStatus,
)
from liaison.errors import (
    AlreadyAcceptedError,
    ErrorCode,
    ExpiredError,
    ForbiddenError,
    InternalError,
    InvalidRequestError,
    InvalidTransitionError,
    OperatorNotFoundError,
    RateLimitedError,
    SessionNotFoundError,
)
from liaison.providers.responder import ResponderError
from liaison.runtime.events import Room
from liaison.runtime.timers import TimerKind


async def waiting_session(lifecycle):
    session = await lifecycle.create_session(user_name="Visitor")
    await lifecycle.send_user_message(session.session_id, "I need a human")
    await lifecycle.request_operator(session.session_id)
    return session.session_id


async def owned_session(lifecycle, operator_id="op-a", **create):
    session = await lifecycle.create_session(**create)
    await lifecycle.intervene(session.session_id, operator_id)
    return session.session_id


class TestCreateAndRead:
    async def test_create_session(self, lifecycle, timers, router, events) -> None:
        dashboard = events(Room.DASHBOARD)

        session = await lifecycle.create_session(user_name="Ada", user_email="a@b.c")
        await router.drain()

        assert session.status == SessionStatus.ACTIVE
        assert session.user_email == "a@b.c"
        assert timers.is_scheduled(session.session_id, TimerKind.AI_INACTIVITY)
        assert dashboard.types(Room.DASHBOARD) == ["new_chat_created"]

    async def test_get_unknown_session(self, lifecycle) -> None:
        with pytest.raises(SessionNotFoundError):
            await lifecycle.get_session(uuid4())

    async def test_get_expired_session(self, lifecycle, clock) -> None:
        session = await lifecycle.create_session()

        await clock.advance(7 * 24 * 3600 + 1)

        with pytest.raises(ExpiredError) as exc_info:
            await lifecycle.get_session(session.session_id)
        assert exc_info.value.error_code == ErrorCode.SESSION_EXPIRED

    async def test_operator_online_reflects_console_connection(
        self, lifecycle, operators, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        assert not (await lifecycle.get_session(session_id)).operator_online

        events(Room.operator("op-a"))

        assert (await lifecycle.get_session(session_id)).operator_online


class TestVisitorMessages:
    async def test_responder_answers_active_session(
        self, lifecycle, router, events, responder
    ) -> None:
        session = await lifecycle.create_session()
        dashboard = events(Room.DASHBOARD)

        result = await lifecycle.send_user_message(session.session_id, "Where is my order?")
        await router.drain()

        assert result.ai_message.type == MessageType.AI
        assert result.ai_message.ai_suggest_operator is False
        assert result.message.created_at < result.ai_message.created_at
        assert dashboard.types(Room.DASHBOARD) == ["ai_chat_updated"]
        assert responder.call_history[0]["message"] == "Where is my order?"

    async def test_low_confidence_reply_suggests_operator(self, lifecycle) -> None:
        session = await lifecycle.create_session()

        result = await lifecycle.send_user_message(session.session_id, "get me a human")

        assert result.ai_message.ai_suggest_operator is True
        assert result.ai_message.ai_confidence == 0.2

    async def test_message_restarts_ai_inactivity(self, lifecycle, clock, timers) -> None:
        session = await lifecycle.create_session()
        await clock.advance(800)

        await lifecycle.send_user_message(session.session_id, "still here")

        assert timers.remaining(session.session_id, TimerKind.AI_INACTIVITY) == 900

    async def test_closed_session_rejects_messages(self, lifecycle) -> None:
        session = await lifecycle.create_session()
        await lifecycle.end_session(session.session_id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.send_user_message(session.session_id, "hello?")

    async def test_rate_limit(self, lifecycle, clock, store) -> None:
        session = await lifecycle.create_session()
        for i in range(10):
            await lifecycle.send_user_message(session.session_id, f"msg {i}")

        with pytest.raises(RateLimitedError) as exc_info:
            await lifecycle.send_user_message(session.session_id, "one too many")
        assert exc_info.value.retry_after_seconds == 60

        user_messages = [
            m
            for m in await store.list_messages(session.session_id)
            if m.type == MessageType.USER
        ]
        assert len(user_messages) == 10

        await clock.advance(60)
        await lifecycle.send_user_message(session.session_id, "back again")

    async def test_responder_failure_stores_nothing(
        self, lifecycle, responder, store
    ) -> None:
        session = await lifecycle.create_session()
        responder.respond = _failing_respond

        with pytest.raises(InternalError):
            await lifecycle.send_user_message(session.session_id, "hello")

        assert await store.list_messages(session.session_id) == []

    async def test_message_to_operator_skips_responder(
        self, lifecycle, operators, router, events, responder
    ) -> None:
        session_id = await owned_session(lifecycle)
        console = events(Room.operator("op-a"))

        result = await lifecycle.send_user_message(session_id, "hello there")
        await router.drain()

        assert result.with_operator is True
        assert result.ai_message is None
        assert result.session.unread_count == 1
        assert responder.call_history == []
        assert console.types(Room.operator("op-a")) == ["user_message"]

    async def test_name_captured_from_reply(
        self, lifecycle, operators, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        console = events(Room.operator("op-a"))

        result = await lifecycle.send_user_message(session_id, "I'm anna")
        await router.drain()

        assert result.session.user_name == "Anna"
        assert console.types(Room.operator("op-a")) == ["user_name_captured", "user_message"]

    async def test_known_name_not_overwritten(self, lifecycle, operators) -> None:
        session_id = await owned_session(lifecycle, user_name="Maria")

        result = await lifecycle.send_user_message(session_id, "Anna")

        assert result.session.user_name == "Maria"

    async def test_spam_flagged_to_operator(
        self, lifecycle, operators, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        console = events(Room.operator("op-a"))

        for i in range(20):
            try:
                await lifecycle.send_user_message(session_id, f"spam {i}")
            except RateLimitedError:
                pass
        await router.drain()

        flagged = console.of_type(Room.operator("op-a"), "user_spam_detected")
        assert len(flagged) == 1
        assert flagged[0].attempts == 20

    async def test_spam_before_intervention_reported_to_new_owner(
        self, lifecycle, operators, router, events
    ) -> None:
        session = await lifecycle.create_session()
        session_id = session.session_id
        for i in range(20):
            try:
                await lifecycle.send_user_message(session_id, f"spam {i}")
            except RateLimitedError:
                pass

        await lifecycle.intervene(session_id, "op-a")
        console = events(Room.operator("op-a"))
        with pytest.raises(RateLimitedError):
            await lifecycle.send_user_message(session_id, "spam again")
        await router.drain()

        flagged = console.of_type(Room.operator("op-a"), "user_spam_detected")
        assert len(flagged) == 1
        assert flagged[0].attempts == 21


async def _failing_respond(message, history):
    raise ResponderError("provider down")


class TestOperatorRequest:
    async def test_no_operator_available(self, lifecycle, timers) -> None:
        session = await lifecycle.create_session()

        result = await lifecycle.request_operator(session.session_id)

        assert result.operator_available is False
        assert result.session.status == SessionStatus.ACTIVE
        assert not timers.is_scheduled(session.session_id, TimerKind.WAITING)

    async def test_request_notifies_every_available_operator(
        self, lifecycle, operators, router, events, timers
    ) -> None:
        log = events(Room.operator("op-a"), Room.operator("op-b"), Room.DASHBOARD)
        session = await lifecycle.create_session()
        await lifecycle.send_user_message(session.session_id, "can I talk to someone?")

        result = await lifecycle.request_operator(session.session_id)
        await router.drain()

        assert result.operators_notified == 2
        assert result.session.status == SessionStatus.WAITING
        for room in (Room.operator("op-a"), Room.operator("op-b")):
            [request] = log.of_type(room, "new_chat_request")
            assert request.last_message == "Thanks for your message! How else can I help?"
        assert "chat_waiting_operator" in log.types(Room.DASHBOARD)
        assert timers.is_scheduled(session.session_id, TimerKind.WAITING)
        assert not timers.is_scheduled(session.session_id, TimerKind.AI_INACTIVITY)

    async def test_request_twice_rejected(self, lifecycle, operators) -> None:
        session_id = await waiting_session(lifecycle)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.request_operator(session_id)

    async def test_cancel_request(self, lifecycle, operators, clock, router, events) -> None:
        session_id = await waiting_session(lifecycle)
        visitor = events(Room.session(session_id))

        session = await lifecycle.cancel_operator_request(session_id)
        await clock.advance(300)
        await router.drain()

        assert session.status == SessionStatus.ACTIVE
        assert visitor.types(Room.session(session_id)) == ["operator_request_cancelled"]

    async def test_cancel_without_request(self, lifecycle) -> None:
        session = await lifecycle.create_session()
        with pytest.raises(InvalidTransitionError):
            await lifecycle.cancel_operator_request(session.session_id)

    async def test_waiting_timeout_reverts_to_active(
        self, lifecycle, operators, clock, router, events, store
    ) -> None:
        session_id = await waiting_session(lifecycle)
        visitor = events(Room.session(session_id))

        await clock.advance(300)
        await router.drain()

        session = await store.get_session(session_id)
        assert session.status == SessionStatus.ACTIVE
        assert visitor.types(Room.session(session_id)) == ["operator_wait_timeout"]


class TestAccept:
    async def test_two_operators_race(
        self, lifecycle, operators, router, events
    ) -> None:
        log = events(Room.operator("op-a"), Room.operator("op-b"), Room.DASHBOARD)
        session_id = await waiting_session(lifecycle)
        await router.drain()
        assert log.types(Room.operator("op-a")) == ["new_chat_request"]
        assert log.types(Room.operator("op-b")) == ["new_chat_request"]

        session = await lifecycle.accept(session_id, "op-a")
        with pytest.raises(AlreadyAcceptedError):
            await lifecycle.accept(session_id, "op-b")
        await router.drain()

        assert session.operator_id == "op-a"
        assert "chat_accepted" in log.types(Room.DASHBOARD)

    async def test_concurrent_accepts_have_one_winner(
        self, lifecycle, store, router
    ) -> None:
        for i in range(5):
            await store.save_operator(Operator(operator_id=f"op-{i}", name=f"Op {i}"))
        session_id = await waiting_session(lifecycle)

        results = await asyncio.gather(
            *[lifecycle.accept(session_id, f"op-{i}") for i in range(5)],
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(e, AlreadyAcceptedError) for e in losers)
        joined = [
            m
            for m in await store.list_messages(session_id)
            if m.type == MessageType.SYSTEM and m.content.endswith("joined the chat.")
        ]
        assert len(joined) == 1

    async def test_accept_sets_ownership_and_timers(
        self, lifecycle, operators, timers, store
    ) -> None:
        session_id = await waiting_session(lifecycle)

        session = await lifecycle.accept(session_id, "op-a")

        assert session.status == SessionStatus.WITH_OPERATOR
        assert session.last_operator_id == "op-a"
        assert session.operator_assigned_at is not None
        assert timers.pending(session_id) == [
            TimerKind.OPERATOR_RESPONSE,
            TimerKind.USER_INACTIVITY_WARNING,
        ]
        assert (await store.get_operator("op-a")).total_chats_handled == 1

    async def test_accept_active_session_rejected(self, lifecycle, operators) -> None:
        session = await lifecycle.create_session()
        with pytest.raises(InvalidTransitionError):
            await lifecycle.accept(session.session_id, "op-a")

    async def test_unknown_operator(self, lifecycle) -> None:
        session = await lifecycle.create_session()
        with pytest.raises(OperatorNotFoundError):
            await lifecycle.intervene(session.session_id, "ghost")

    async def test_intervene(self, lifecycle, operators, router, events) -> None:
        dashboard = events(Room.DASHBOARD)
        session = await lifecycle.create_session()

        updated = await lifecycle.intervene(session.session_id, "op-b")
        await router.drain()

        assert updated.operator_id == "op-b"
        assert "ai_chat_intervened" in dashboard.types(Room.DASHBOARD)


class TestOperatorMessages:
    async def test_owner_reply_cancels_response_timer(
        self, lifecycle, operators, timers, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        visitor = events(Room.session(session_id))

        message = await lifecycle.send_operator_message(session_id, "op-a", "Hi, I'm Alice")
        await router.drain()

        assert message.operator_name == "Alice"
        assert not timers.is_scheduled(session_id, TimerKind.OPERATOR_RESPONSE)
        assert visitor.types(Room.session(session_id)) == ["operator_message"]

    async def test_non_owner_forbidden(self, lifecycle, operators) -> None:
        session_id = await owned_session(lifecycle)
        with pytest.raises(ForbiddenError):
            await lifecycle.send_operator_message(session_id, "op-b", "me too")

    async def test_message_to_unowned_session(self, lifecycle, operators) -> None:
        session = await lifecycle.create_session()
        with pytest.raises(InvalidTransitionError):
            await lifecycle.send_operator_message(session.session_id, "op-a", "hi")

    async def test_mark_read_and_priority(self, lifecycle, operators) -> None:
        session_id = await owned_session(lifecycle)
        await lifecycle.send_user_message(session_id, "hello")

        session = await lifecycle.mark_read(session_id)
        assert session.unread_count == 0

        session = await lifecycle.update_priority(session_id, Priority.URGENT)
        assert session.priority == Priority.URGENT


class TestEscalations:
    async def test_silent_operator_times_out(
        self, lifecycle, operators, clock, store, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        log = events(Room.session(session_id), Room.operator("op-a"))

        await clock.advance(600)
        await router.drain()

        session = await store.get_session(session_id)
        assert session.status == SessionStatus.CLOSED
        assert session.closure_reason == ClosureReason.OPERATOR_TIMEOUT
        assert session.last_operator_id == "op-a"
        assert "operator_not_responding" in log.types(Room.session(session_id))
        assert "chat_timeout_cancelled" in log.types(Room.operator("op-a"))

    async def test_inactive_visitor_gets_presence_check_then_closed(
        self, lifecycle, operators, clock, store, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        await lifecycle.send_operator_message(session_id, "op-a", "Hello!")
        visitor = events(Room.session(session_id))

        await clock.advance(300)
        await router.drain()
        [check] = visitor.of_type(Room.session(session_id), "user_presence_check")
        assert check.countdown_seconds == 300

        await clock.advance(300)
        await router.drain()
        session = await store.get_session(session_id)
        assert session.closure_reason == ClosureReason.USER_INACTIVITY_TIMEOUT

    async def test_confirm_presence_resets_inactivity(
        self, lifecycle, operators, clock, store
    ) -> None:
        session_id = await owned_session(lifecycle)
        await lifecycle.send_operator_message(session_id, "op-a", "Hello!")

        await clock.advance(300)
        await lifecycle.confirm_presence(session_id)
        await clock.advance(299)

        assert (await store.get_session(session_id)).status == SessionStatus.WITH_OPERATOR

    async def test_ai_inactivity_closes_session(self, lifecycle, clock, store) -> None:
        session = await lifecycle.create_session()

        await clock.advance(900)

        closed = await store.get_session(session.session_id)
        assert closed.closure_reason == ClosureReason.AI_INACTIVITY_TIMEOUT

    async def test_cancelled_timer_never_fires(
        self, lifecycle, operators, clock, store
    ) -> None:
        session_id = await waiting_session(lifecycle)
        await lifecycle.accept(session_id, "op-a")
        await lifecycle.send_operator_message(session_id, "op-a", "Hi")

        # The waiting timer was cancelled on accept
        await clock.advance(299)
        await lifecycle.send_user_message(session_id, "hi")
        await clock.advance(10)

        assert (await store.get_session(session_id)).status == SessionStatus.WITH_OPERATOR

    async def test_visitor_disconnect_closes_after_timeout(
        self, lifecycle, operators, clock, store, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        await lifecycle.send_operator_message(session_id, "op-a", "Hi")
        console = events(Room.operator("op-a"))

        await lifecycle.visitor_disconnected(session_id)
        await clock.advance(299)
        assert (await store.get_session(session_id)).status == SessionStatus.WITH_OPERATOR

        await clock.advance(1)
        await router.drain()
        session = await store.get_session(session_id)
        assert session.closure_reason == ClosureReason.USER_DISCONNECT_TIMEOUT
        types = console.types(Room.operator("op-a"))
        assert types[0] == "user_disconnected"
        assert "chat_auto_closed" in types

    async def test_visitor_reconnect_cancels_timeout(
        self, lifecycle, operators, timers
    ) -> None:
        session_id = await owned_session(lifecycle)
        await lifecycle.visitor_disconnected(session_id)

        await lifecycle.visitor_connected(session_id)

        assert not timers.is_scheduled(session_id, TimerKind.USER_DISCONNECT)

    async def test_visitor_with_second_tab_open_stays_connected(
        self, lifecycle, operators, timers, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        console = events(Room.operator("op-a"))
        await lifecycle.visitor_connected(session_id)
        await lifecycle.visitor_connected(session_id)

        await lifecycle.visitor_disconnected(session_id)
        await router.drain()
        assert not timers.is_scheduled(session_id, TimerKind.USER_DISCONNECT)
        assert console.of_type(Room.operator("op-a"), "user_disconnected") == []

        await lifecycle.visitor_disconnected(session_id)
        await router.drain()
        assert timers.is_scheduled(session_id, TimerKind.USER_DISCONNECT)
        assert len(console.of_type(Room.operator("op-a"), "user_disconnected")) == 1

    async def test_operator_disconnect_grace(
        self, lifecycle, operators, clock, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        visitor = events(Room.session(session_id))

        await lifecycle.operator_disconnected("op-a")
        await clock.advance(10)
        await router.drain()

        assert visitor.types(Room.session(session_id)) == ["operator_disconnected"]

    async def test_operator_reconnect_within_grace(
        self, lifecycle, operators, clock, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        visitor = events(Room.session(session_id))

        await lifecycle.operator_disconnected("op-a")
        await clock.advance(5)
        await lifecycle.operator_connected("op-a")
        await clock.advance(10)
        await router.drain()

        assert visitor.types(Room.session(session_id)) == []


class TestClosing:
    async def test_visitor_ends_session(
        self, lifecycle, operators, timers, store, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        dashboard = events(Room.DASHBOARD)

        session = await lifecycle.end_session(session_id)
        await router.drain()

        assert session.closure_reason == ClosureReason.USER_ENDED
        assert session.operator_id is None
        assert session.last_operator_id == "op-a"
        assert timers.pending(session_id) == []
        assert dashboard.types(Room.DASHBOARD) == ["chat_closed"]
        last = (await store.list_messages(session_id))[-1]
        assert last.type == MessageType.SYSTEM

    async def test_end_twice_rejected(self, lifecycle) -> None:
        session = await lifecycle.create_session()
        await lifecycle.end_session(session.session_id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.end_session(session.session_id)

    async def test_operator_close_hands_off_transcript(
        self, lifecycle, operators, store, transcripts
    ) -> None:
        session_id = await owned_session(lifecycle, user_email="visitor@example.com")
        await lifecycle.send_user_message(session_id, "thanks!")

        session = await lifecycle.close_session(session_id, "op-a")

        assert session.closure_reason == ClosureReason.OPERATOR_CLOSED
        [(sent_session, messages)] = transcripts.sent
        assert sent_session.session_id == session_id
        assert messages[-1].content == "Alice closed the chat."
        assert (await store.get_operator("op-a")).total_chats_handled == 2

    async def test_no_transcript_without_email(self, lifecycle, operators, transcripts) -> None:
        session_id = await owned_session(lifecycle)
        await lifecycle.close_session(session_id, "op-a")
        assert transcripts.sent == []

    async def test_transcript_failure_does_not_undo_close(
        self, lifecycle, operators, transcripts
    ) -> None:
        session_id = await owned_session(lifecycle, user_email="visitor@example.com")

        async def broken(session, messages):
            raise RuntimeError("smtp down")

        transcripts.send_transcript = broken
        session = await lifecycle.close_session(session_id, "op-a")

        assert session.status == SessionStatus.CLOSED


class TestReopen:
    async def test_reopen_within_window_restores_owner(
        self, lifecycle, operators, clock, timers
    ) -> None:
        session_id = await owned_session(lifecycle)
        await lifecycle.close_session(session_id, "op-a")

        await clock.advance(299)
        session = await lifecycle.reopen_session(session_id)

        assert session.status == SessionStatus.WITH_OPERATOR
        assert session.operator_id == "op-a"
        assert session.closure_reason is None
        assert timers.is_scheduled(session_id, TimerKind.USER_INACTIVITY_WARNING)
        assert timers.is_scheduled(session_id, TimerKind.OPERATOR_RESPONSE)

    async def test_reopened_session_closes_when_owner_stays_silent(
        self, lifecycle, operators, clock, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        await lifecycle.send_operator_message(session_id, "op-a", "Hello!")
        await lifecycle.close_session(session_id, "op-a")
        await clock.advance(10)
        await lifecycle.reopen_session(session_id)
        log = events(Room.session(session_id))

        await clock.advance(600)
        await router.drain()

        snapshot = await lifecycle.get_session(session_id)
        assert snapshot.session.status == SessionStatus.CLOSED
        assert snapshot.session.closure_reason == ClosureReason.OPERATOR_TIMEOUT
        assert "operator_not_responding" in log.types(Room.session(session_id))

    async def test_reopen_after_window_expired(self, lifecycle, operators, clock) -> None:
        session_id = await owned_session(lifecycle)
        await lifecycle.close_session(session_id, "op-a")

        await clock.advance(301)

        with pytest.raises(ExpiredError) as exc_info:
            await lifecycle.reopen_session(session_id)
        assert exc_info.value.error_code == ErrorCode.REOPEN_WINDOW_EXPIRED

    async def test_reopen_without_operator_returns_to_responder(
        self, lifecycle, timers
    ) -> None:
        session = await lifecycle.create_session()
        await lifecycle.end_session(session.session_id)

        reopened = await lifecycle.reopen_session(session.session_id)

        assert reopened.status == SessionStatus.ACTIVE
        assert timers.is_scheduled(session.session_id, TimerKind.AI_INACTIVITY)

    async def test_reopen_open_session_rejected(self, lifecycle) -> None:
        session = await lifecycle.create_session()
        with pytest.raises(InvalidTransitionError):
            await lifecycle.reopen_session(session.session_id)


class TestTransfer:
    async def test_transfer_to_available_operator(
        self, lifecycle, operators, router, events, timers
    ) -> None:
        session_id = await owned_session(lifecycle)
        log = events(Room.operator("op-a"), Room.operator("op-b"))

        session = await lifecycle.transfer_session(session_id, "op-a", "op-b", "billing")
        await router.drain()

        assert session.operator_id == "op-b"
        assert session.last_operator_id == "op-b"
        assert log.types(Room.operator("op-b")) == ["chat_transferred"]
        assert log.of_type(Room.operator("op-a"), "chat_transferred")[0].reason == "billing"
        assert timers.is_scheduled(session_id, TimerKind.OPERATOR_RESPONSE)

    async def test_transfer_to_self_rejected(self, lifecycle, operators) -> None:
        session_id = await owned_session(lifecycle)
        with pytest.raises(InvalidRequestError):
            await lifecycle.transfer_session(session_id, "op-a", "op-a")

    async def test_transfer_to_unavailable_rejected(self, lifecycle, operators) -> None:
        session_id = await owned_session(lifecycle)
        await lifecycle.set_operator_availability("op-b", False)

        with pytest.raises(InvalidRequestError):
            await lifecycle.transfer_session(session_id, "op-a", "op-b")

    async def test_transfer_by_non_owner_forbidden(self, lifecycle, operators) -> None:
        session_id = await owned_session(lifecycle)
        with pytest.raises(ForbiddenError):
            await lifecycle.transfer_session(session_id, "op-b", "op-a")


class TestPresence:
    async def test_visitor_typing_reaches_owner(
        self, lifecycle, operators, router, events
    ) -> None:
        session_id = await owned_session(lifecycle)
        console = events(Room.operator("op-a"))

        lifecycle.relay_typing(session_id, "user", True, owner_id="op-a")
        await router.drain()

        [typing] = console.of_type(Room.operator("op-a"), "typing")
        assert typing.sender == "user"

    async def test_availability_for_unknown_operator(self, lifecycle) -> None:
        with pytest.raises(OperatorNotFoundError):
            await lifecycle.set_operator_availability("ghost", True)

    async def test_shutdown_cancels_timers(self, lifecycle, timers) -> None:
        await lifecycle.create_session()

        lifecycle.shutdown()

        assert len(timers) == 0
