"""Tests for the connection loop state machine."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anyio
from structlog.testing import capture_logs

from chatline.core.modules.access.service import AccessService
from chatline.core.modules.realtime.loop import CloseReason, ConnectionLoop, ConnectionState
from chatline.core.modules.realtime.models import CursorPair
from chatline.core.modules.session.models import AuthToken
from chatline.errors import StorageError


def make_loop(identity, store, registry, transport, settings, sleep, cursors=None):
    return ConnectionLoop(
        identity=identity,
        cursors=cursors or CursorPair(),
        feeds=store,
        registry=registry,
        transport=transport,
        settings=settings,
        sleep=sleep,
    )


async def run_to_end(loop):
    return [frame async for frame in loop.run()]


class TestConnecting:
    """Tests for connection setup."""

    async def test_registers_then_announces_identity(self, alice, store, registry, make_transport, settings, sleep, sse_events):
        loop = make_loop(alice, store, registry, make_transport(), settings, sleep)

        events = sse_events(await run_to_end(loop))

        assert registry.calls[0] == "register"
        assert events[0] == ("connected", {"user_id": str(alice.user_id), "username": "alice"})

    async def test_register_failure_does_not_reject_connection(
        self, alice, store, registry, make_transport, settings, sleep, sse_events
    ):
        """Session tracking is best-effort; the stream still opens."""
        registry.register_failures = 1
        loop = make_loop(alice, store, registry, make_transport(), settings, sleep)

        events = sse_events(await run_to_end(loop))

        assert events[0][0] == "connected"
        assert loop.close_reason == CloseReason.CLIENT_GONE


class TestStreaming:
    """Tests for tick cadence and event ordering."""

    async def test_first_tick_polls_broadcasts_and_refreshes(
        self, alice, bob, store, registry, make_transport, settings, sleep, sse_events
    ):
        """Tick 0 hits both cadences; events come chat, direct, user_status, heartbeat."""
        registry.sessions[(bob.user_id, bob.session_token)] = registry.now()
        registry.presence[bob.user_id] = True
        store.add_chat(1, "hi", user_id=bob.user_id)
        store.add_direct(1, "psst", sender_id=bob.user_id, recipient_id=alice.user_id)
        loop = make_loop(alice, store, registry, make_transport(), settings, sleep)

        events = sse_events(await run_to_end(loop))

        assert [name for name, _ in events] == ["connected", "chat_message", "direct_message", "user_status", "heartbeat"]
        assert [u["username"] for u in events[3][1]["online_users"]] == ["bob"]
        assert isinstance(events[4][1]["timestamp"], int)
        assert registry.calls == ["register", "sweep", "list_online_users", "refresh", "deregister"]

    async def test_cadence_over_eleven_ticks(self, alice, store, registry, make_transport, settings, sleep, sse_events):
        """Presence every 10th tick, liveness refresh every 5th, 3 second sleeps between ticks."""
        loop = make_loop(alice, store, registry, make_transport(checks_before_disconnect=11), settings, sleep)

        events = sse_events(await run_to_end(loop))

        assert registry.calls.count("sweep") == 2  # ticks 0 and 10
        assert registry.calls.count("refresh") == 3  # ticks 0, 5 and 10
        assert [name for name, _ in events].count("heartbeat") == 2
        assert sleep.delays == [3.0] * 10
        assert loop.tick == 11

    async def test_cursors_carried_across_ticks(self, alice, store, registry, make_transport, settings, sleep, sse_events):
        store.add_chat(1, "one")
        loop = make_loop(alice, store, registry, make_transport(checks_before_disconnect=2), settings, sleep)

        frames = []
        async for frame in loop.run():
            frames.append(frame)
            if len(sse_events(frames)) == 2:
                store.add_chat(2, "two")  # arrives before the second tick

        chat_ids = [data["id"] for name, data in sse_events(frames) if name == "chat_message"]
        assert chat_ids == [1, 2]
        assert loop.cursors.last_chat_id == 2


class TestStorageFaults:
    """Tests for recoverable storage errors."""

    async def test_fault_reports_error_backs_off_and_resumes(
        self, alice, store, registry, make_transport, settings, sleep, sse_events
    ):
        """The failed tick emits `error`, sleeps the backoff, then polls again from the same cursor."""
        store.add_chat(1, "hi")
        store.chat_failures = 1
        loop = make_loop(alice, store, registry, make_transport(checks_before_disconnect=2), settings, sleep)

        events = sse_events(await run_to_end(loop))

        assert [name for name, _ in events] == ["connected", "error", "chat_message", "user_status", "heartbeat"]
        assert events[1][1] == {"message": "Database error"}
        assert sleep.delays == [5.0]
        assert [call for call in store.fetch_calls if call[0] == "chat"] == [("chat", 0), ("chat", 0)]
        assert loop.cursors.last_chat_id == 1

    async def test_failed_tick_is_not_counted(self, alice, store, registry, make_transport, settings, sleep):
        registry.sweep_failures = 1
        loop = make_loop(alice, store, registry, make_transport(checks_before_disconnect=2), settings, sleep)

        await run_to_end(loop)

        assert registry.calls.count("sweep") == 2  # tick 0 retried
        assert loop.tick == 1

    async def test_disconnect_during_backoff_stops_retrying(self, alice, store, registry, make_transport, settings, sleep):
        store.chat_failures = 10
        loop = make_loop(alice, store, registry, make_transport(checks_before_disconnect=1), settings, sleep)

        await run_to_end(loop)

        assert loop.close_reason == CloseReason.CLIENT_GONE
        assert sleep.delays == []


class TestClosing:
    """Tests for terminal transitions and cleanup."""

    async def test_client_gone_closes_silently(self, alice, store, registry, make_transport, settings, sleep, sse_events):
        loop = make_loop(alice, store, registry, make_transport(), settings, sleep)

        events = sse_events(await run_to_end(loop))

        assert "error" not in [name for name, _ in events]
        assert loop.close_reason == CloseReason.CLIENT_GONE
        assert loop.state == ConnectionState.CLOSED
        assert registry.calls[-1] == "deregister"
        assert registry.presence[alice.user_id] is False

    async def test_non_storage_fault_is_fatal(self, alice, store, registry, make_transport, settings, sleep, sse_events):
        """Anything outside storage emits `error` and ends the stream without retrying."""
        registry.list_online_users = AsyncMock(side_effect=RuntimeError("boom"))
        transport = make_transport(checks_before_disconnect=100)
        loop = make_loop(alice, store, registry, transport, settings, sleep)

        events = sse_events(await run_to_end(loop))

        assert events[-1] == ("error", {"message": "Server error"})
        assert loop.close_reason == CloseReason.FATAL_ERROR
        assert transport.checks == 0
        assert sleep.delays == []
        assert registry.calls[-1] == "deregister"

    async def test_cleanup_failure_is_swallowed(self, alice, store, registry, make_transport, settings, sleep):
        registry.deregister_error = StorageError("deregister session failed")
        loop = make_loop(alice, store, registry, make_transport(), settings, sleep)

        await run_to_end(loop)

        assert loop.state == ConnectionState.CLOSED

    async def test_consumer_closing_stream_still_deregisters(self, alice, store, registry, make_transport, settings, sleep):
        """The server closing the response body (client gone mid-stream) runs the same teardown."""
        loop = make_loop(alice, store, registry, make_transport(checks_before_disconnect=100), settings, sleep)

        stream = loop.run()
        await anext(stream)
        await stream.aclose()

        assert loop.close_reason == CloseReason.CANCELLED
        assert loop.state == ConnectionState.CLOSED
        assert registry.calls == ["register", "deregister"]

    async def test_second_session_keeps_user_online(self, alice, store, registry, make_transport, settings, sleep):
        """Closing one of two tabs of the same user leaves the user online."""
        registry.sessions[(alice.user_id, "other-tab")] = registry.now()
        loop = make_loop(alice, store, registry, make_transport(), settings, sleep)

        await run_to_end(loop)

        assert registry.presence[alice.user_id] is True

    async def test_closing_one_tab_keeps_other_tab_of_same_login_online(
        self, store, registry, make_transport, settings, sleep, mock_user
    ):
        """Two tabs resolve from one login cookie; closing one must not evict the other."""
        access = AccessService(MagicMock())
        session_service = SimpleNamespace(get_authenticated_user=AsyncMock(return_value=mock_user))
        access.set_core(SimpleNamespace(services=SimpleNamespace(session=session_service)))
        tab_a = await access.resolve_identity(AuthToken("cookie-token"))
        tab_b = await access.resolve_identity(AuthToken("cookie-token"))

        stream_b = make_loop(tab_b, store, registry, make_transport(checks_before_disconnect=100), settings, sleep).run()
        await anext(stream_b)
        await run_to_end(make_loop(tab_a, store, registry, make_transport(), settings, sleep))

        assert registry.presence[mock_user.id] is True
        assert await registry.refresh(mock_user.id, tab_b.session_token) is True

        await stream_b.aclose()

        assert registry.presence[mock_user.id] is False
        assert registry.sessions == {}

    async def test_cancelled_body_task_still_deregisters(self, alice, store, registry, make_transport, settings):
        """The server cancels the task iterating the stream when the client leaves; teardown must not be cut short."""
        plain_deregister = registry.deregister

        async def deregister(user_id, session_token):
            await asyncio.sleep(0)
            await plain_deregister(user_id, session_token)

        registry.deregister = deregister
        loop = ConnectionLoop(
            identity=alice,
            cursors=CursorPair(),
            feeds=store,
            registry=registry,
            transport=make_transport(checks_before_disconnect=100),
            settings=settings,
        )
        streaming = anyio.Event()

        async def send_body():
            async for _ in loop.run():
                streaming.set()

        async with anyio.create_task_group() as tg:
            tg.start_soon(send_body)
            await streaming.wait()
            tg.cancel_scope.cancel()

        assert loop.close_reason == CloseReason.CANCELLED
        assert loop.state == ConnectionState.CLOSED
        assert registry.sessions == {}
        assert registry.presence[alice.user_id] is False


class TestRefreshMiss:
    async def test_missed_refresh_is_logged_as_warning(self, alice, store, registry, make_transport, settings, sleep):
        """A refresh that finds no entry means the session was evicted from the registry."""
        registry.register_failures = 1
        loop = make_loop(alice, store, registry, make_transport(), settings, sleep)

        with capture_logs() as logs:
            await run_to_end(loop)

        missed = [entry for entry in logs if entry["event"] == "session_refresh_missed"]
        assert [entry["log_level"] for entry in missed] == ["warning"]
