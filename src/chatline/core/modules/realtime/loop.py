import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from enum import StrEnum

import anyio
import structlog

from chatline.core.modules.realtime.broadcaster import PresenceBroadcaster
from chatline.core.modules.realtime.models import (
    ConnectionIdentity,
    CursorPair,
    RealtimeEvent,
    RealtimeSettings,
    ServerEvent,
)
from chatline.core.modules.realtime.poller import ChangeFeedPoller
from chatline.core.modules.realtime.protocols import EventTransport, MessageFeeds, SessionRegistry
from chatline.errors import StorageError

logger = structlog.get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class ConnectionState(StrEnum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


class CloseReason(StrEnum):
    CLIENT_GONE = "client_gone"
    FATAL_ERROR = "fatal_error"
    CANCELLED = "cancelled"


class ConnectionLoop:
    """Drives one realtime connection from registration to teardown.

    Each tick polls both feeds, every `presence_every` ticks sweeps the registry and
    broadcasts presence, every `refresh_every` ticks refreshes this session's
    liveness, then checks for disconnection and sleeps `tick_interval`. A storage
    fault emits an `error` event and retries after `error_backoff` without counting
    the tick; any other fault emits `error` and ends the stream. Teardown always
    deregisters the session.
    """

    def __init__(
        self,
        identity: ConnectionIdentity,
        cursors: CursorPair,
        feeds: MessageFeeds,
        registry: SessionRegistry,
        transport: EventTransport,
        settings: RealtimeSettings,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.identity = identity
        self.poller = ChangeFeedPoller(identity, cursors, feeds)
        self.broadcaster = PresenceBroadcaster(identity, registry, settings.stale_after, settings.hard_delete_after)
        self._registry = registry
        self._transport = transport
        self._settings = settings
        self._sleep = sleep
        self.state = ConnectionState.CONNECTING
        self.close_reason: CloseReason | None = None
        self.tick = 0

    @property
    def cursors(self) -> CursorPair:
        return self.poller.cursors

    async def run(self) -> AsyncIterator[str]:
        """Yield SSE frames until the client leaves or a fatal error occurs."""
        log = logger.bind(user_id=self.identity.user_id)
        try:
            try:
                await self._registry.register(self.identity.user_id, self.identity.session_token)
            except StorageError:
                log.warning("session_register_failed", exc_info=True)

            yield self._frame(
                ServerEvent(
                    name=RealtimeEvent.CONNECTED,
                    payload={"user_id": str(self.identity.user_id), "username": self.identity.username},
                )
            )
            self.state = ConnectionState.STREAMING
            log.info("realtime_connected", **self.cursors.model_dump())

            while True:
                try:
                    async with aclosing(self._run_tick()) as events:
                        async for event in events:
                            yield self._frame(event)
                except StorageError:
                    log.warning("realtime_tick_storage_error", tick=self.tick, exc_info=True)
                    yield self._frame(ServerEvent(name=RealtimeEvent.ERROR, payload={"message": "Database error"}))
                    delay = self._settings.error_backoff
                except Exception:
                    log.exception("realtime_tick_failed", tick=self.tick)
                    self.close_reason = CloseReason.FATAL_ERROR
                    yield self._frame(ServerEvent(name=RealtimeEvent.ERROR, payload={"message": "Server error"}))
                    break
                else:
                    self.tick += 1
                    delay = self._settings.tick_interval

                if await self._transport.is_disconnected():
                    self.close_reason = CloseReason.CLIENT_GONE
                    break
                await self._sleep(delay)
        except (asyncio.CancelledError, GeneratorExit):
            self.close_reason = CloseReason.CANCELLED
            raise
        finally:
            self.state = ConnectionState.CLOSING
            # The server cancels the body task on disconnect; deregistration must still finish
            with anyio.CancelScope(shield=True):
                await self._close()
            log.info("realtime_disconnected", reason=self.close_reason, ticks=self.tick, **self.cursors.model_dump())

    async def _run_tick(self) -> AsyncIterator[ServerEvent]:
        async with aclosing(self.poller.poll()) as feed_events:
            async for event in feed_events:
                yield event

        if self.tick % self._settings.presence_every == 0:
            for event in await self.broadcaster.broadcast():
                yield event

        if self.tick % self._settings.refresh_every == 0:
            if not await self._registry.refresh(self.identity.user_id, self.identity.session_token):
                logger.warning("session_refresh_missed", user_id=self.identity.user_id)

    async def _close(self) -> None:
        try:
            await self._registry.deregister(self.identity.user_id, self.identity.session_token)
        except Exception:
            logger.warning("realtime_cleanup_failed", user_id=self.identity.user_id, exc_info=True)
        self.state = ConnectionState.CLOSED

    def _frame(self, event: ServerEvent) -> str:
        return self._transport.frame(event.name, event.payload)
