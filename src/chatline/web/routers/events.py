"""Personal calendar endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from chatline.core.modules.event.models import CalendarEventView
from chatline.utils import now
from chatline.web.deps import AppDep, AuthTokenDep
from chatline.web.openapi import ErrorResponse

router: APIRouter = APIRouter(tags=["events"])


class CreateEventRequest(BaseModel):
    """Request to add a calendar event."""

    title: str = Field(..., description="Event title, must not be blank")
    description: str = Field("", description="Optional details")
    event_date: date = Field(..., description="Day of the event (YYYY-MM-DD)")


@router.get(
    "/events",
    summary="List calendar events",
    description="Get your events for one month, grouped by day. Defaults to the current month.",
    operation_id="listEvents",
    responses={
        200: {"description": "Events keyed by date"},
        400: {"model": ErrorResponse, "description": "Invalid month"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def list_events(
    app: AppDep,
    auth_token: AuthTokenDep,
    month: Annotated[str | None, Query(pattern=r"^\d{4}-\d{1,2}$", description="Month as YYYY-MM")] = None,
) -> dict[date, list[CalendarEventView]]:
    if month is None:
        today = now()
        year, month_number = today.year, today.month
    else:
        year_part, month_part = month.split("-")
        year, month_number = int(year_part), int(month_part)
    return await app.get_events(auth_token, year, month_number)


@router.post(
    "/events",
    summary="Create calendar event",
    description="Add an event to your calendar.",
    operation_id="createEvent",
    status_code=201,
    responses={
        201: {"description": "Event created"},
        400: {"model": ErrorResponse, "description": "Missing title"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def create_event(request: CreateEventRequest, app: AppDep, auth_token: AuthTokenDep) -> CalendarEventView:
    return await app.create_event(auth_token, request.title, request.description, request.event_date)


@router.delete(
    "/events/{event_id}",
    summary="Delete calendar event",
    description="Delete one of your own events.",
    operation_id="deleteEvent",
    status_code=204,
    responses={
        204: {"description": "Event deleted"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Event not found"},
    },
)
async def delete_event(event_id: UUID, app: AppDep, auth_token: AuthTokenDep) -> None:
    await app.delete_event(auth_token, event_id)
