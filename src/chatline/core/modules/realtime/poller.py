from collections.abc import AsyncIterator

import structlog

from chatline.core.modules.realtime.models import ConnectionIdentity, CursorPair, RealtimeEvent, ServerEvent
from chatline.core.modules.realtime.protocols import MessageFeeds
from chatline.errors import StorageError

logger = structlog.get_logger(__name__)


class ChangeFeedPoller:
    """Fetches rows newer than the connection's cursors from the chat and direct feeds.

    Each feed is polled independently: a storage failure in one does not skip the
    other, and leaves the failed feed's cursor where it was. Cursors advance only
    after the batch has been handed to the consumer, so a crash mid-batch causes
    redelivery rather than loss.
    """

    def __init__(self, identity: ConnectionIdentity, cursors: CursorPair, feeds: MessageFeeds) -> None:
        self._identity = identity
        self._feeds = feeds
        self.cursors = cursors

    async def poll(self) -> AsyncIterator[ServerEvent]:
        """Yield chat events then direct events. Raises StorageError after both feeds were tried if either failed."""
        failures: list[StorageError] = []

        try:
            chat_batch = await self._feeds.fetch_chat_since(self.cursors.last_chat_id)
        except StorageError as e:
            logger.warning("chat_feed_failed", user_id=self._identity.user_id, error=str(e))
            failures.append(e)
        else:
            for chat_message in chat_batch:
                yield ServerEvent(name=RealtimeEvent.CHAT_MESSAGE, payload=chat_message.model_dump(mode="json"))
            self.cursors.advance_chat([m.id for m in chat_batch])

        try:
            direct_batch = await self._feeds.fetch_direct_since(self.cursors.last_direct_id, self._identity.user_id)
            for sender_id in dict.fromkeys(m.sender_id for m in direct_batch):
                await self._feeds.mark_direct_read(recipient_id=self._identity.user_id, sender_id=sender_id)
        except StorageError as e:
            logger.warning("direct_feed_failed", user_id=self._identity.user_id, error=str(e))
            failures.append(e)
        else:
            for direct_message in direct_batch:
                yield ServerEvent(name=RealtimeEvent.DIRECT_MESSAGE, payload=direct_message.model_dump(mode="json"))
            self.cursors.advance_direct([m.id for m in direct_batch])

        if failures:
            raise failures[0]
