"""Tests for SSE framing and disconnect detection."""

from unittest.mock import AsyncMock, MagicMock

from chatline.core.modules.realtime.transport import SSE_HEADERS, SSETransport, encode_sse_event


class TestEncodeSseEvent:
    """Tests for SSE frame encoding."""

    def test_frame_layout(self):
        assert encode_sse_event("heartbeat", {"timestamp": 5}) == 'event: heartbeat\ndata: {"timestamp":5}\n\n'

    def test_newlines_in_payload_stay_on_one_data_line(self):
        """Multi-line message text is JSON-escaped so the frame is not split."""
        frame = encode_sse_event("chat_message", {"message": "line one\nline two"})
        assert frame.count("\n") == 3
        assert '"line one\\nline two"' in frame

    def test_unicode_not_escaped(self):
        assert "привет" in encode_sse_event("chat_message", {"message": "привет"})


class TestSSETransport:
    """Tests for the request-backed transport."""

    async def test_disconnect_delegates_to_request(self):
        request = MagicMock()
        request.is_disconnected = AsyncMock(return_value=True)

        assert await SSETransport(request).is_disconnected() is True

    def test_headers_disable_caching_and_buffering(self):
        assert SSE_HEADERS["Cache-Control"] == "no-cache"
        assert SSE_HEADERS["X-Accel-Buffering"] == "no"
