from types import MappingProxyType
from typing import Any
from uuid import UUID

import bcrypt
import structlog
from pymongo.asynchronous.database import AsyncDatabase

from chatline.core.core import Service
from chatline.core.db import storage_errors
from chatline.core.modules.user.models import User, UserView
from chatline.core.modules.user.validators import validate_password, validate_username
from chatline.errors import NotFoundError, ValidationError
from chatline.utils import now

logger = structlog.get_logger(__name__)

# Presence fields are excluded from the credential cache
_VIEW_PROJECTION = {"username": 1, "is_online": 1, "last_seen": 1}


class UserService(Service):
    """Manages users with in-memory credential cache and database-backed presence."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("users")
        self._users: dict[UUID, User] = {}

    def get_user(self, user_id: UUID) -> User:
        """Get user by ID from cache."""
        if user_id not in self._users:
            raise NotFoundError(f"User '{user_id}' not found")
        return self._users[user_id]

    def get_user_by_username(self, username: str) -> User:
        """Get user by username from cache."""
        user = next((u for u in self._users.values() if u.username == username), None)
        if user is None:
            raise NotFoundError(f"User '{username}' not found")
        return user

    def has_user(self, user_id: UUID) -> bool:
        """Check if user exists by ID."""
        return user_id in self._users

    def has_username(self, username: str) -> bool:
        """Check if username exists."""
        return any(user.username == username for user in self._users.values())

    def get_user_cache(self) -> MappingProxyType[UUID, User]:
        """Get read-only view of user cache for formatting purposes."""
        return MappingProxyType(self._users)

    async def create_user(self, username: str, password: str, email: str | None = None) -> User:
        """Create user with hashed password. New users start offline."""
        username = username.strip()
        validate_username(username)
        if self.has_username(username):
            raise ValidationError(f"User '{username}' already exists")

        validate_password(password)
        password_hash = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
        user = User(username=username, password_hash=password_hash, email=email or None)
        res = await self._collection.insert_one({**user.to_mongo(), "is_online": False, "last_seen": None})
        logger.info("user_created", user_id=user.id, username=username)
        return await self.update_user_cache(res.inserted_id)

    def verify_password(self, username: str, password: str) -> bool:
        """Verify password against stored hash."""
        user = next((u for u in self._users.values() if u.username == username), None)
        if user is None:
            return False
        return bcrypt.checkpw(password.encode("utf-8"), user.password_hash.encode("utf-8"))

    async def set_presence(self, user_id: UUID, online: bool) -> None:
        """Write the derived presence flag. Only PresenceService should call this."""
        with storage_errors("set presence"):
            await self._collection.update_one({"_id": user_id}, {"$set": {"is_online": online, "last_seen": now()}})

    async def list_users(self, exclude_user_id: UUID) -> list[UserView]:
        """All users except the given one, with presence, ordered by username."""
        with storage_errors("list users"):
            cursor = self._collection.find({"_id": {"$ne": exclude_user_id}}, _VIEW_PROJECTION).sort("username", 1)
            return [UserView.from_document(doc) async for doc in cursor]

    async def list_online_users(self, exclude_user_id: UUID) -> list[UserView]:
        """Users currently flagged online, excluding the requesting user."""
        with storage_errors("list online users"):
            cursor = self._collection.find({"is_online": True, "_id": {"$ne": exclude_user_id}}, _VIEW_PROJECTION).sort(
                "username", 1
            )
            return [UserView.from_document(doc) async for doc in cursor]

    async def online_user_ids(self) -> list[UUID]:
        """IDs of every user currently flagged online."""
        with storage_errors("list online user ids"):
            cursor = self._collection.find({"is_online": True}, {"_id": 1})
            return [doc["_id"] async for doc in cursor]

    async def get_user_view(self, user_id: UUID) -> UserView:
        """Get a user's profile with current presence."""
        doc = await self._collection.find_one({"_id": user_id}, _VIEW_PROJECTION)
        if doc is None:
            raise NotFoundError(f"User '{user_id}' not found")
        return UserView.from_document(doc)

    async def update_all_users_cache(self) -> None:
        """Reload all users cache from database."""
        users = await User.list_cursor(self._collection.find())
        self._users = {user.id: user for user in users}

    async def update_user_cache(self, user_id: UUID) -> User:
        """Reload a specific user cache from database."""
        user = await self._collection.find_one({"_id": user_id})
        if user is None:
            raise NotFoundError(f"User '{user_id}' not found")
        self._users[user_id] = User.model_validate(user)
        return self._users[user_id]

    async def on_start(self) -> None:
        """Initialize indexes and cache."""
        await self._collection.create_index([("username", 1)], unique=True)
        await self._collection.create_index([("is_online", 1)])
        await self.update_all_users_cache()
        logger.debug("user_service_started", user_count=len(self._users))
