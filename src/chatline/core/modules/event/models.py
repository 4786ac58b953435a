"""Personal calendar events."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from chatline.core.db import MongoModel
from chatline.utils import now


class CalendarEvent(MongoModel):
    """Event on a user's private calendar.

    event_date is stored as an ISO string (YYYY-MM-DD) so month ranges are plain string
    comparisons. Indexed on (user_id, event_date).
    """

    user_id: UUID
    title: str
    description: str = ""
    event_date: date
    created_at: datetime = Field(default_factory=now)

    def to_mongo(self) -> dict[str, Any]:
        data = super().to_mongo()
        data["event_date"] = self.event_date.isoformat()
        return data


class CalendarEventView(BaseModel):
    """Calendar event (API representation)."""

    id: UUID = Field(..., description="Event ID")
    title: str = Field(..., description="Event title")
    description: str = Field(..., description="Optional details, may be empty")
    event_date: date = Field(..., description="Day of the event")
    created_at: datetime = Field(..., description="When the event was created")

    @classmethod
    def from_event(cls, event: CalendarEvent) -> "CalendarEventView":
        return cls(
            id=event.id,
            title=event.title,
            description=event.description,
            event_date=event.event_date,
            created_at=event.created_at,
        )
