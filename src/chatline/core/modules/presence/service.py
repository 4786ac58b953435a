from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from chatline.core.core import Service
from chatline.core.db import storage_errors
from chatline.core.modules.presence.models import ActiveSession, SweepResult
from chatline.core.modules.user.models import UserView
from chatline.utils import now

logger = structlog.get_logger(__name__)


class PresenceService(Service):
    """Registry of live realtime connections; the only writer of users' presence flag.

    Presence is derived: a user is online while at least one of their registry
    entries has last_activity within stale_after. Every method that changes the
    registry recomputes the affected user's flag from that rule, so two connections
    of the same user can never race the flag in opposite directions on stale data.
    """

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("active_sessions")

    async def on_start(self) -> None:
        """Create indexes on startup."""
        await self._collection.create_index([("user_id", 1), ("session_token", 1)], unique=True)
        await self._collection.create_index([("last_activity", 1)])

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.core.config.presence_stale_after)

    async def register(self, user_id: UUID, session_token: str) -> None:
        """Upsert the registry entry with last_activity=now and mark the user online."""
        session = ActiveSession(user_id=user_id, session_token=session_token, last_activity=now())
        with storage_errors("register session"):
            await self._collection.update_one(
                {"user_id": user_id, "session_token": session_token},
                {"$set": {"last_activity": session.last_activity}, "$setOnInsert": {"_id": session.id}},
                upsert=True,
            )
        await self.core.services.user.set_presence(user_id, True)
        logger.debug("session_registered", user_id=user_id)

    async def refresh(self, user_id: UUID, session_token: str) -> bool:
        """Touch last_activity. Returns False if the entry was already swept."""
        with storage_errors("refresh session"):
            result = await self._collection.update_one(
                {"user_id": user_id, "session_token": session_token},
                {"$set": {"last_activity": now()}},
            )
        return result.matched_count > 0

    async def sweep(self, stale_after: timedelta, hard_delete_after: timedelta) -> SweepResult:
        """Re-derive presence, then delete sessions past hard_delete_after.

        Users with stale sessions are recomputed (offline once none is live); their rows are
        kept until hard_delete_after so repeated sweeps re-derive the same state. Users whose
        stored flag disagrees with the live sessions, left behind by a register racing a
        deregister, are recomputed too. Callers guarantee hard_delete_after > stale_after.
        """
        timestamp = now()
        cutoff = timestamp - stale_after
        result = SweepResult()
        with storage_errors("sweep sessions"):
            stale_user_ids = await self._collection.distinct("user_id", {"last_activity": {"$lt": cutoff}})
            live_user_ids = set(await self._collection.distinct("user_id", {"last_activity": {"$gte": cutoff}}))
        for user_id in stale_user_ids:
            result.stale_users += 1
            if not await self._recompute_presence(user_id, timestamp, stale_after):
                result.went_offline += 1

        flagged_online = set(await self.core.services.user.online_user_ids())
        for user_id in (live_user_ids ^ flagged_online).difference(stale_user_ids):
            result.corrected_users += 1
            await self._recompute_presence(user_id, timestamp, stale_after)

        with storage_errors("delete expired sessions"):
            deleted = await self._collection.delete_many({"last_activity": {"$lt": timestamp - hard_delete_after}})
        result.deleted_sessions = deleted.deleted_count

        if result.went_offline or result.corrected_users or result.deleted_sessions:
            logger.info("presence_sweep", **result.model_dump())
        return result

    async def deregister(self, user_id: UUID, session_token: str) -> None:
        """Remove the entry and recompute presence. Never raises: runs during connection teardown."""
        try:
            with storage_errors("deregister session"):
                await self._collection.delete_one({"user_id": user_id, "session_token": session_token})
            await self._recompute_presence(user_id, now(), self.stale_after)
        except Exception:
            logger.warning("session_deregister_failed", user_id=user_id, exc_info=True)
        else:
            logger.debug("session_deregistered", user_id=user_id)

    async def list_online_users(self, exclude_user_id: UUID) -> list[UserView]:
        return await self.core.services.user.list_online_users(exclude_user_id)

    async def _recompute_presence(self, user_id: UUID, timestamp: datetime, stale_after: timedelta) -> bool:
        """Derive and store the user's presence from their live entries. Returns the new flag."""
        with storage_errors("count live sessions"):
            live = await self._collection.count_documents(
                {"user_id": user_id, "last_activity": {"$gte": timestamp - stale_after}}, limit=1
            )
        online = live > 0
        await self.core.services.user.set_presence(user_id, online)
        return online
