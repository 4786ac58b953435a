from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from datetime import date
from uuid import UUID

from chatline.config import Config
from chatline.core.core import Core
from chatline.core.modules.event.models import CalendarEventView
from chatline.core.modules.message.models import ChatMessageView, DirectMessageView
from chatline.core.modules.realtime.models import CursorPair
from chatline.core.modules.realtime.protocols import EventTransport
from chatline.core.modules.session.models import AuthToken
from chatline.core.modules.user.models import UserView
from chatline.errors import AuthenticationError, ValidationError


class App:
    """Facade for all application operations, validates authentication before delegating to Core."""

    def __init__(self, config: Config) -> None:
        self._core = Core(config)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Application lifespan management - delegates to Core."""
        async with self._core.lifespan():
            yield

    async def is_auth_token_valid(self, auth_token: AuthToken) -> bool:
        """Check if authentication token is valid."""
        return await self._core.services.session.is_auth_token_valid(auth_token)

    # === Auth ===
    async def register(self, username: str, password: str, email: str | None = None) -> AuthToken:
        """Create an account and log it in."""
        user = await self._core.services.user.create_user(username, password, email)
        return await self._core.services.session.create_session(user.id)

    async def login(self, username: str, password: str) -> AuthToken:
        """Authenticate user and create session."""
        if not self._core.services.user.verify_password(username, password):
            raise AuthenticationError("Invalid username or password")
        user = self._core.services.user.get_user_by_username(username)
        return await self._core.services.session.create_session(user.id)

    async def logout(self, auth_token: AuthToken) -> None:
        """Invalidate user session."""
        await self._core.services.access.ensure_authenticated(auth_token)
        await self._core.services.session.invalidate_session(auth_token)

    # === Users ===
    async def get_current_user(self, auth_token: AuthToken) -> UserView:
        """Get current authenticated user profile with presence."""
        current_user = await self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.user.get_user_view(current_user.id)

    async def get_users(self, auth_token: AuthToken) -> list[UserView]:
        """Get all other users with presence, ordered by username."""
        current_user = await self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.user.list_users(current_user.id)

    async def get_online_users(self, auth_token: AuthToken) -> list[UserView]:
        """Get other users that are currently online."""
        current_user = await self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.presence.list_online_users(current_user.id)

    # === Messages ===
    async def get_chat_messages(self, auth_token: AuthToken) -> list[ChatMessageView]:
        """Get the latest chat messages, oldest first."""
        await self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.message.get_recent_chat_messages()

    async def send_chat_message(self, auth_token: AuthToken, message: str) -> ChatMessageView:
        """Post a message to the shared chat."""
        current_user = await self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.message.send_chat_message(current_user.id, message)

    async def get_direct_messages(self, auth_token: AuthToken, other_user_id: UUID) -> list[DirectMessageView]:
        """Get the conversation with another user and mark their messages as read."""
        current_user = await self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.message.get_conversation(current_user.id, other_user_id)

    async def send_direct_message(self, auth_token: AuthToken, recipient_id: UUID, message: str) -> DirectMessageView:
        """Send a private message to another user."""
        current_user = await self._core.services.access.ensure_authenticated(auth_token)
        if recipient_id == current_user.id:
            raise ValidationError("Cannot send a direct message to yourself")
        return await self._core.services.message.send_direct_message(current_user.id, recipient_id, message)

    # === Calendar ===
    async def get_events(self, auth_token: AuthToken, year: int, month: int) -> dict[date, list[CalendarEventView]]:
        """Get the current user's events for a month, grouped by day."""
        current_user = await self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.event.list_month(current_user.id, year, month)

    async def create_event(self, auth_token: AuthToken, title: str, description: str, event_date: date) -> CalendarEventView:
        """Add an event to the current user's calendar."""
        current_user = await self._core.services.access.ensure_authenticated(auth_token)
        return await self._core.services.event.create_event(current_user.id, title, description, event_date)

    async def delete_event(self, auth_token: AuthToken, event_id: UUID) -> None:
        """Delete one of the current user's events."""
        current_user = await self._core.services.access.ensure_authenticated(auth_token)
        await self._core.services.event.delete_event(current_user.id, event_id)

    # === Realtime ===
    async def open_realtime_stream(
        self, auth_token: AuthToken, cursors: CursorPair, transport: EventTransport
    ) -> AsyncIterator[str]:
        """Authenticate a realtime connection and return its event stream.

        Identity is resolved here, before the stream starts, so a rejected connection
        never touches the session registry.
        """
        identity = await self._core.services.access.resolve_identity(auth_token)
        return self._core.services.realtime.open_stream(identity, cursors, transport)
