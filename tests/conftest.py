"""Shared pytest fixtures."""

import json
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import pytest

from chatline.core.modules.message.models import ChatMessageView, DirectMessageView
from chatline.core.modules.realtime.models import ConnectionIdentity, RealtimeSettings
from chatline.core.modules.realtime.transport import encode_sse_event
from chatline.core.modules.user.models import User, UserView
from chatline.errors import StorageError

ALICE_ID = UUID("87654321-4321-8765-4321-876543218765")
BOB_ID = UUID("12345678-1234-5678-1234-567812345678")
CAROL_ID = UUID("11111111-2222-3333-4444-555555555555")
USERNAMES = {ALICE_ID: "alice", BOB_ID: "bob", CAROL_ID: "carol"}
SENT_AT = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


class FakeMessageStore:
    """In-memory chat and direct feeds with injectable storage failures."""

    def __init__(self) -> None:
        self.chat: list[ChatMessageView] = []
        self.direct: list[DirectMessageView] = []
        self.read_flips: dict[int, int] = {}  # message id -> times is_read was flipped
        self.chat_failures = 0
        self.direct_failures = 0
        self.mark_failures = 0
        self.fetch_calls: list[tuple[str, int]] = []

    def add_chat(self, message_id: int, text: str, user_id: UUID = ALICE_ID) -> None:
        self.chat.append(
            ChatMessageView(id=message_id, message=text, timestamp=SENT_AT, username=USERNAMES[user_id], user_id=user_id)
        )

    def add_direct(self, message_id: int, text: str, sender_id: UUID, recipient_id: UUID) -> None:
        self.direct.append(
            DirectMessageView(
                id=message_id,
                message=text,
                timestamp=SENT_AT,
                is_read=False,
                sender_username=USERNAMES[sender_id],
                sender_id=sender_id,
                recipient_username=USERNAMES[recipient_id],
                recipient_id=recipient_id,
            )
        )

    def direct_by_id(self, message_id: int) -> DirectMessageView:
        return next(m for m in self.direct if m.id == message_id)

    async def fetch_chat_since(self, last_id: int) -> list[ChatMessageView]:
        self.fetch_calls.append(("chat", last_id))
        if self.chat_failures:
            self.chat_failures -= 1
            raise StorageError("fetch chat feed failed")
        return sorted((m for m in self.chat if m.id > last_id), key=lambda m: m.id)

    async def fetch_direct_since(self, last_id: int, user_id: UUID) -> list[DirectMessageView]:
        self.fetch_calls.append(("direct", last_id))
        if self.direct_failures:
            self.direct_failures -= 1
            raise StorageError("fetch direct feed failed")
        rows = [m.model_copy() for m in self.direct if m.id > last_id and m.recipient_id == user_id]
        return sorted(rows, key=lambda m: m.id)

    async def mark_direct_read(self, recipient_id: UUID, sender_id: UUID) -> int:
        if self.mark_failures:
            self.mark_failures -= 1
            raise StorageError("mark direct messages read failed")
        flipped = 0
        for message in self.direct:
            if message.recipient_id == recipient_id and message.sender_id == sender_id and not message.is_read:
                message.is_read = True
                self.read_flips[message.id] = self.read_flips.get(message.id, 0) + 1
                flipped += 1
        return flipped


class FakeSessionRegistry:
    """In-memory session registry applying the same presence rules as PresenceService."""

    def __init__(self, clock: list[datetime] | None = None, stale_after: timedelta = timedelta(minutes=5)) -> None:
        self.clock = clock or [SENT_AT]
        self.stale_after = stale_after
        self.sessions: dict[tuple[UUID, str], datetime] = {}
        self.presence: dict[UUID, bool] = {}
        self.calls: list[str] = []
        self.register_failures = 0
        self.sweep_failures = 0
        self.deregister_error: Exception | None = None

    def now(self) -> datetime:
        return self.clock[-1]

    def _recompute(self, user_id: UUID) -> None:
        cutoff = self.now() - self.stale_after
        self.presence[user_id] = any(uid == user_id and ts >= cutoff for (uid, _), ts in self.sessions.items())

    async def register(self, user_id: UUID, session_token: str) -> None:
        self.calls.append("register")
        if self.register_failures:
            self.register_failures -= 1
            raise StorageError("register session failed")
        self.sessions[(user_id, session_token)] = self.now()
        self.presence[user_id] = True

    async def refresh(self, user_id: UUID, session_token: str) -> bool:
        self.calls.append("refresh")
        if (user_id, session_token) not in self.sessions:
            return False
        self.sessions[(user_id, session_token)] = self.now()
        return True

    async def sweep(self, stale_after: timedelta, hard_delete_after: timedelta) -> None:
        self.calls.append("sweep")
        if self.sweep_failures:
            self.sweep_failures -= 1
            raise StorageError("sweep sessions failed")
        # Stale users and any user whose flag disagrees with their sessions end up re-derived
        for user_id in {uid for uid, _ in self.sessions} | set(self.presence):
            self._recompute(user_id)
        self.sessions = {key: ts for key, ts in self.sessions.items() if ts >= self.now() - hard_delete_after}

    async def deregister(self, user_id: UUID, session_token: str) -> None:
        self.calls.append("deregister")
        if self.deregister_error is not None:
            raise self.deregister_error
        self.sessions.pop((user_id, session_token), None)
        self._recompute(user_id)

    async def list_online_users(self, exclude_user_id: UUID) -> list[UserView]:
        self.calls.append("list_online_users")
        return [
            UserView(id=uid, username=USERNAMES[uid], is_online=True, last_seen=self.now())
            for uid, online in sorted(self.presence.items(), key=lambda item: USERNAMES[item[0]])
            if online and uid != exclude_user_id
        ]


class FakeTransport:
    """Real SSE framing; reports disconnection after a fixed number of checks."""

    def __init__(self, checks_before_disconnect: int = 1) -> None:
        self.checks_before_disconnect = checks_before_disconnect
        self.checks = 0

    def frame(self, event_name: str, payload: dict[str, Any]) -> str:
        return encode_sse_event(event_name, payload)

    async def is_disconnected(self) -> bool:
        self.checks += 1
        return self.checks >= self.checks_before_disconnect


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def parse_sse(frames: list[str]) -> list[tuple[str, dict[str, Any]]]:
    """Split SSE frames into (event name, decoded data) pairs."""
    events = []
    for frame in frames:
        assert frame.endswith("\n\n")
        lines = frame.rstrip("\n").split("\n")
        name = lines[0].removeprefix("event: ")
        data = json.loads(lines[1].removeprefix("data: "))
        events.append((name, data))
    return events


@pytest.fixture
def alice():
    return ConnectionIdentity(user_id=ALICE_ID, username="alice", session_token="alice-session")


@pytest.fixture
def bob():
    return ConnectionIdentity(user_id=BOB_ID, username="bob", session_token="bob-session")


@pytest.fixture
def store():
    return FakeMessageStore()


@pytest.fixture
def registry():
    return FakeSessionRegistry()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def settings():
    return RealtimeSettings()


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def sse_events():
    return parse_sse


@pytest.fixture
def mock_user():
    """Create a mock user for testing."""
    return User(
        id=ALICE_ID,
        username="alice",
        password_hash="$2b$12$hashed_password_here",
    )
