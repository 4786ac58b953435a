"""Server-Sent Events framing."""

import json
from typing import Any

from fastapi import Request

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable proxy buffering so frames reach the browser per tick
}


def encode_sse_event(event_name: str, payload: dict[str, Any]) -> str:
    """Encode one named event as an SSE frame: `event:` line, single `data:` line, blank line."""
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"event: {event_name}\ndata: {data}\n\n"


class SSETransport:
    """Frames events for a streaming response and reports when the client has gone.

    Frames are yielded one at a time into the response body, so each is written to
    the socket before the loop continues; nothing is buffered across ticks.
    """

    def __init__(self, request: Request) -> None:
        self._request = request

    def frame(self, event_name: str, payload: dict[str, Any]) -> str:
        return encode_sse_event(event_name, payload)

    async def is_disconnected(self) -> bool:
        return await self._request.is_disconnected()
