"""Session registry models for realtime presence."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from chatline.core.db import MongoModel
from chatline.utils import now


class ActiveSession(MongoModel):
    """Liveness record of one realtime connection.

    One document per (user_id, session_token) - unique index; registering the same pair
    again refreshes last_activity instead of adding a row. Each connection gets its own
    session_token, so tabs of one login have separate rows. Indexed on last_activity
    for sweeps.
    """

    user_id: UUID
    session_token: str
    last_activity: datetime = Field(default_factory=now)


class SweepResult(BaseModel):
    """Outcome of one registry sweep."""

    stale_users: int = 0  # Users whose presence was recomputed because of stale sessions
    went_offline: int = 0  # Of those, users left with no live session
    corrected_users: int = 0  # Users whose stored flag disagreed with their live sessions
    deleted_sessions: int = 0
