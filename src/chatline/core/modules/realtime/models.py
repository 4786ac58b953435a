"""Realtime stream models: connection identity, delivery cursors, events and cadence."""

from datetime import timedelta
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RealtimeEvent(StrEnum):
    """Names of the events sent over the stream."""

    CONNECTED = "connected"
    CHAT_MESSAGE = "chat_message"
    DIRECT_MESSAGE = "direct_message"
    USER_STATUS = "user_status"
    HEARTBEAT = "heartbeat"
    ERROR = "error"


class ServerEvent(BaseModel):
    """One named event with a JSON-serializable payload."""

    name: RealtimeEvent
    payload: dict[str, Any]


class ConnectionIdentity(BaseModel):
    """Who is on the other end of a realtime connection. Fixed for the connection's lifetime."""

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    username: str
    session_token: str  # Registry key, not the auth secret


class CursorPair(BaseModel):
    """Highest message ids already delivered on this connection, one per feed.

    Held in connection memory only. Cursors never move backwards.
    """

    last_chat_id: int = Field(0, ge=0)
    last_direct_id: int = Field(0, ge=0)

    def advance_chat(self, ids: list[int]) -> None:
        self.last_chat_id = max([self.last_chat_id, *ids])

    def advance_direct(self, ids: list[int]) -> None:
        self.last_direct_id = max([self.last_direct_id, *ids])


class RealtimeSettings(BaseModel):
    """Loop cadence. Defaults: 3s ticks, 5s backoff, presence every 10th tick, refresh every 5th."""

    tick_interval: float = Field(3.0, ge=0)
    error_backoff: float = Field(5.0, ge=0)
    presence_every: int = Field(10, ge=1)
    refresh_every: int = Field(5, ge=1)
    stale_after: timedelta = timedelta(minutes=5)
    hard_delete_after: timedelta = timedelta(minutes=10)

    @model_validator(mode="after")
    def _check_retention(self) -> "RealtimeSettings":
        if self.hard_delete_after <= self.stale_after:
            raise ValueError("hard_delete_after must be greater than stale_after")
        return self
