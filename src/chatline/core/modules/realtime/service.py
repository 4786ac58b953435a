from collections.abc import AsyncIterator
from datetime import timedelta

from chatline.core.core import Service
from chatline.core.modules.realtime.loop import ConnectionLoop
from chatline.core.modules.realtime.models import ConnectionIdentity, CursorPair, RealtimeSettings
from chatline.core.modules.realtime.protocols import EventTransport


class RealtimeService(Service):
    """Creates per-connection realtime loops wired to the message feeds and session registry."""

    @property
    def settings(self) -> RealtimeSettings:
        config = self.core.config
        return RealtimeSettings(
            tick_interval=config.realtime_tick_interval,
            error_backoff=config.realtime_error_backoff,
            presence_every=config.realtime_presence_every,
            refresh_every=config.realtime_refresh_every,
            stale_after=timedelta(seconds=config.presence_stale_after),
            hard_delete_after=timedelta(seconds=config.presence_hard_delete_after),
        )

    def open_stream(self, identity: ConnectionIdentity, cursors: CursorPair, transport: EventTransport) -> AsyncIterator[str]:
        """Return the SSE frame stream for one connection. Nothing runs until it is iterated."""
        loop = ConnectionLoop(
            identity=identity,
            cursors=cursors,
            feeds=self.core.services.message,
            registry=self.core.services.presence,
            transport=transport,
            settings=self.settings,
        )
        return loop.run()
