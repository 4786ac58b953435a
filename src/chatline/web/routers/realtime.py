"""Server-Sent Events stream of chat, direct messages and presence."""

from typing import Annotated

from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse

from chatline.core.modules.realtime.models import CursorPair
from chatline.core.modules.realtime.transport import SSE_HEADERS, SSETransport
from chatline.web.deps import AppDep, AuthTokenDep
from chatline.web.openapi import ErrorResponse

router: APIRouter = APIRouter(tags=["realtime"])


@router.get(
    "/realtime",
    summary="Realtime event stream",
    description=(
        "Open a `text/event-stream` connection. Events: `connected`, `chat_message`, `direct_message`, "
        "`user_status`, `heartbeat`, `error`. Pass the highest message ids already received as "
        "`last_chat_id` / `last_direct_id` to resume after a reconnect; a message may be delivered "
        "twice across a reconnect, never skipped."
    ),
    operation_id="streamRealtimeEvents",
    response_class=StreamingResponse,
    responses={
        200: {"description": "Event stream", "content": {"text/event-stream": {}}},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def stream_realtime_events(
    request: Request,
    app: AppDep,
    auth_token: AuthTokenDep,
    last_chat_id: Annotated[int, Query(ge=0, description="Highest chat message id already received")] = 0,
    last_direct_id: Annotated[int, Query(ge=0, description="Highest direct message id already received")] = 0,
) -> StreamingResponse:
    cursors = CursorPair(last_chat_id=last_chat_id, last_direct_id=last_direct_id)
    stream = await app.open_realtime_stream(auth_token, cursors, SSETransport(request))
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)
