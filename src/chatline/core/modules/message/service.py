from typing import Any
from uuid import UUID

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from chatline.core.core import Service
from chatline.core.db import storage_errors
from chatline.core.modules.counter.models import CounterType
from chatline.core.modules.message.models import ChatMessage, ChatMessageView, DirectMessage, DirectMessageView
from chatline.errors import ValidationError

logger = structlog.get_logger(__name__)

HISTORY_LIMIT = 100
UNKNOWN_USERNAME = "[deleted]"


class MessageService(Service):
    """Chat and direct messages, plus the incremental feeds read by the realtime stream."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._chat = database.get_collection("chat_messages")
        self._direct = database.get_collection("direct_messages")

    async def on_start(self) -> None:
        """Create indexes for the recipient feed and conversation lookups."""
        await self._direct.create_index([("recipient_id", 1), ("_id", 1)])
        await self._direct.create_index([("recipient_id", 1), ("sender_id", 1), ("is_read", 1)])
        await self._direct.create_index([("sender_id", 1), ("recipient_id", 1), ("_id", 1)])

    # === Chat ===
    async def send_chat_message(self, user_id: UUID, text: str) -> ChatMessageView:
        """Store a broadcast chat message."""
        text = _clean_text(text)
        message_id = await self.core.services.counter.get_next_sequence(CounterType.CHAT_MESSAGE)
        message = ChatMessage(id=message_id, user_id=user_id, message=text)
        with storage_errors("insert chat message"):
            await self._chat.insert_one(message.to_mongo())
        logger.debug("chat_message_sent", message_id=message_id, user_id=user_id)
        return self._chat_view(message)

    async def get_recent_chat_messages(self, limit: int = HISTORY_LIMIT) -> list[ChatMessageView]:
        """Latest chat messages, oldest first."""
        with storage_errors("read chat history"):
            messages = await ChatMessage.list_cursor(self._chat.find().sort("_id", -1).limit(limit))
        return [self._chat_view(m) for m in reversed(messages)]

    async def fetch_chat_since(self, last_id: int) -> list[ChatMessageView]:
        """All chat messages with id > last_id, ascending."""
        with storage_errors("fetch chat feed"):
            messages = await ChatMessage.list_cursor(self._chat.find({"_id": {"$gt": last_id}}).sort("_id", 1))
        return [self._chat_view(m) for m in messages]

    # === Direct ===
    async def send_direct_message(self, sender_id: UUID, recipient_id: UUID, text: str) -> DirectMessageView:
        """Store a direct message. The recipient must exist."""
        text = _clean_text(text)
        if not self.core.services.user.has_user(recipient_id):
            raise ValidationError("Recipient not found")
        message_id = await self.core.services.counter.get_next_sequence(CounterType.DIRECT_MESSAGE)
        message = DirectMessage(id=message_id, sender_id=sender_id, recipient_id=recipient_id, message=text)
        with storage_errors("insert direct message"):
            await self._direct.insert_one(message.to_mongo())
        logger.debug("direct_message_sent", message_id=message_id, sender_id=sender_id, recipient_id=recipient_id)
        return self._direct_view(message)

    async def get_conversation(self, user_id: UUID, other_user_id: UUID, limit: int = HISTORY_LIMIT) -> list[DirectMessageView]:
        """Latest messages between two users, oldest first. Marks the other user's messages as read."""
        query = {
            "$or": [
                {"sender_id": user_id, "recipient_id": other_user_id},
                {"sender_id": other_user_id, "recipient_id": user_id},
            ]
        }
        with storage_errors("read conversation"):
            messages = await DirectMessage.list_cursor(self._direct.find(query).sort("_id", -1).limit(limit))
        await self.mark_direct_read(recipient_id=user_id, sender_id=other_user_id)
        return [self._direct_view(m) for m in reversed(messages)]

    async def fetch_direct_since(self, last_id: int, user_id: UUID) -> list[DirectMessageView]:
        """All direct messages addressed to user_id with id > last_id, ascending."""
        with storage_errors("fetch direct feed"):
            cursor = self._direct.find({"recipient_id": user_id, "_id": {"$gt": last_id}}).sort("_id", 1)
            messages = await DirectMessage.list_cursor(cursor)
        return [self._direct_view(m) for m in messages]

    async def mark_direct_read(self, recipient_id: UUID, sender_id: UUID) -> int:
        """Mark unread messages from sender to recipient as read; returns how many flipped.

        Filtering on is_read=False makes the flip happen at most once per message.
        """
        with storage_errors("mark direct messages read"):
            result = await self._direct.update_many(
                {"recipient_id": recipient_id, "sender_id": sender_id, "is_read": False},
                {"$set": {"is_read": True}},
            )
        return result.modified_count

    # === Views ===
    def _username(self, user_id: UUID) -> str:
        user = self.core.services.user.get_user_cache().get(user_id)
        return user.username if user is not None else UNKNOWN_USERNAME

    def _chat_view(self, message: ChatMessage) -> ChatMessageView:
        return ChatMessageView(
            id=message.id,
            message=message.message,
            timestamp=message.timestamp,
            username=self._username(message.user_id),
            user_id=message.user_id,
        )

    def _direct_view(self, message: DirectMessage) -> DirectMessageView:
        return DirectMessageView(
            id=message.id,
            message=message.message,
            timestamp=message.timestamp,
            is_read=message.is_read,
            sender_username=self._username(message.sender_id),
            sender_id=message.sender_id,
            recipient_username=self._username(message.recipient_id),
            recipient_id=message.recipient_id,
        )


def _clean_text(text: str) -> str:
    text = text.strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    return text
