import time
from datetime import timedelta

from chatline.core.modules.realtime.models import ConnectionIdentity, RealtimeEvent, ServerEvent
from chatline.core.modules.realtime.protocols import SessionRegistry


class PresenceBroadcaster:
    """Sweeps the session registry, then reports every online user and a heartbeat.

    Sends a full snapshot each time rather than a diff, so a client that missed an
    update is corrected on the next broadcast.
    """

    def __init__(
        self,
        identity: ConnectionIdentity,
        registry: SessionRegistry,
        stale_after: timedelta,
        hard_delete_after: timedelta,
    ) -> None:
        self._identity = identity
        self._registry = registry
        self._stale_after = stale_after
        self._hard_delete_after = hard_delete_after

    async def broadcast(self) -> list[ServerEvent]:
        await self._registry.sweep(self._stale_after, self._hard_delete_after)
        online_users = await self._registry.list_online_users(self._identity.user_id)
        return [
            ServerEvent(
                name=RealtimeEvent.USER_STATUS,
                payload={"online_users": [user.model_dump(mode="json") for user in online_users]},
            ),
            ServerEvent(name=RealtimeEvent.HEARTBEAT, payload={"timestamp": int(time.time())}),
        ]
