import secrets
from typing import Any
from uuid import UUID

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from chatline.core.core import Service
from chatline.core.modules.session.models import SESSION_TTL_SECONDS, AuthToken, Session
from chatline.core.modules.user.models import User
from chatline.errors import AuthenticationError

logger = structlog.get_logger(__name__)


class SessionService(Service):
    """Issues and verifies login tokens."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("sessions")
        self._authenticated_users: dict[AuthToken, User] = {}

    async def on_start(self) -> None:
        """Create indexes on startup."""
        await self._collection.create_index([("auth_token", 1)], unique=True)
        await self._collection.create_index([("user_id", 1)])
        await self._collection.create_index([("created_at", 1)], expireAfterSeconds=SESSION_TTL_SECONDS)

    async def create_session(self, user_id: UUID) -> AuthToken:
        auth_token = AuthToken(secrets.token_urlsafe(32))
        await self._collection.insert_one(Session(user_id=user_id, auth_token=auth_token).to_mongo())
        logger.info("session_created", user_id=user_id)
        return auth_token

    async def get_authenticated_user(self, auth_token: AuthToken) -> User:
        if auth_token in self._authenticated_users:
            return self._authenticated_users[auth_token]

        session = await self._collection.find_one({"auth_token": auth_token})
        if session is None or not self.core.services.user.has_user(session["user_id"]):
            raise AuthenticationError("Invalid or expired session")

        user = self.core.services.user.get_user(session["user_id"])
        self._authenticated_users[auth_token] = user
        return user

    async def is_auth_token_valid(self, auth_token: AuthToken) -> bool:
        try:
            await self.get_authenticated_user(auth_token)
        except AuthenticationError:
            return False
        return True

    async def invalidate_session(self, auth_token: AuthToken) -> None:
        """Invalidate a session by removing it from the database."""
        self._authenticated_users.pop(auth_token, None)
        await self._collection.delete_one({"auth_token": auth_token})
