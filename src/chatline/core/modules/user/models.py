from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from chatline.core.db import MongoModel
from chatline.utils import now


class User(MongoModel):
    """User domain model with credentials.

    Presence (is_online, last_seen) lives on the same document but is written only
    by PresenceService and read straight from the database, never from this model.
    """

    username: str
    password_hash: str  # bcrypt hash
    email: str | None = None
    created_at: datetime = Field(default_factory=now)


class UserView(BaseModel):
    """User account information with presence (API representation)."""

    id: UUID = Field(..., description="User ID")
    username: str = Field(..., description="Username")
    is_online: bool = Field(False, description="Whether the user has a live realtime session")
    last_seen: datetime | None = Field(None, description="Last presence change")

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "UserView":
        """Create view model from a raw users document."""
        return cls(
            id=doc["_id"],
            username=doc["username"],
            is_online=doc.get("is_online", False),
            last_seen=doc.get("last_seen"),
        )
