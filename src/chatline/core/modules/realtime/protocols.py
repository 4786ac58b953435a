"""Collaborators the realtime loop depends on.

MessageService, PresenceService and the SSE transport implement these; tests
substitute in-memory versions.
"""

from datetime import timedelta
from typing import Any, Protocol
from uuid import UUID

from chatline.core.modules.message.models import ChatMessageView, DirectMessageView
from chatline.core.modules.user.models import UserView


class MessageFeeds(Protocol):
    async def fetch_chat_since(self, last_id: int) -> list[ChatMessageView]: ...

    async def fetch_direct_since(self, last_id: int, user_id: UUID) -> list[DirectMessageView]: ...

    async def mark_direct_read(self, recipient_id: UUID, sender_id: UUID) -> int: ...


class SessionRegistry(Protocol):
    async def register(self, user_id: UUID, session_token: str) -> None: ...

    async def refresh(self, user_id: UUID, session_token: str) -> bool: ...

    async def sweep(self, stale_after: timedelta, hard_delete_after: timedelta) -> Any: ...

    async def deregister(self, user_id: UUID, session_token: str) -> None: ...

    async def list_online_users(self, exclude_user_id: UUID) -> list[UserView]: ...


class EventTransport(Protocol):
    def frame(self, event_name: str, payload: dict[str, Any]) -> str: ...

    async def is_disconnected(self) -> bool: ...
