from datetime import date
from typing import Any
from uuid import UUID

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from chatline.core.core import Service
from chatline.core.db import storage_errors
from chatline.core.modules.event.models import CalendarEvent, CalendarEventView
from chatline.errors import NotFoundError, ValidationError

logger = structlog.get_logger(__name__)


def month_bounds(year: int, month: int) -> tuple[str, str]:
    """ISO date range [first day of month, first day of next month)."""
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start.isoformat(), end.isoformat()


class EventService(Service):
    """Per-user calendar events, listed by month."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("calendar_events")

    async def on_start(self) -> None:
        """Create indexes on startup."""
        await self._collection.create_index([("user_id", 1), ("event_date", 1)])

    async def list_month(self, user_id: UUID, year: int, month: int) -> dict[date, list[CalendarEventView]]:
        """User's events in a month grouped by day, days and events in chronological order."""
        start, end = month_bounds(year, month)
        query = {"user_id": user_id, "event_date": {"$gte": start, "$lt": end}}
        with storage_errors("list calendar events"):
            cursor = self._collection.find(query).sort([("event_date", 1), ("created_at", 1)])
            events = await CalendarEvent.list_cursor(cursor)

        grouped: dict[date, list[CalendarEventView]] = {}
        for event in events:
            grouped.setdefault(event.event_date, []).append(CalendarEventView.from_event(event))
        return grouped

    async def create_event(self, user_id: UUID, title: str, description: str, event_date: date) -> CalendarEventView:
        """Add an event to the user's calendar. Title is required."""
        title = title.strip()
        if not title:
            raise ValidationError("Title is required")
        event = CalendarEvent(user_id=user_id, title=title, description=description.strip(), event_date=event_date)
        with storage_errors("insert calendar event"):
            await self._collection.insert_one(event.to_mongo())
        logger.debug("calendar_event_created", event_id=event.id, user_id=user_id)
        return CalendarEventView.from_event(event)

    async def delete_event(self, user_id: UUID, event_id: UUID) -> None:
        """Delete one of the user's own events."""
        with storage_errors("delete calendar event"):
            result = await self._collection.delete_one({"_id": event_id, "user_id": user_id})
        if result.deleted_count == 0:
            raise NotFoundError("Event not found")
        logger.debug("calendar_event_deleted", event_id=event_id, user_id=user_id)
