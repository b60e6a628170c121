"""
CLI Progress Monitor Tests

Run with:
    python -m pytest tests/test_progress_monitor.py -v
"""

import json
from unittest.mock import patch

import aiohttp
import pytest
from tenacity import wait_none

from cli.progress_monitor import (
    ProgressMonitor,
    format_update,
    is_terminal,
    parse_sse_line,
)


def sse_lines(*events: dict) -> list[bytes]:
    lines = []
    for event in events:
        lines += [f"data: {json.dumps(event)}\n".encode(), b"\n"]
    return lines


class FakeStream:
    """Stands in for aiohttp.ClientSession; each session plays the next script."""

    def __init__(self, scripts: list):
        self.scripts = list(scripts)
        self.urls: list[str] = []

    def __call__(self, *args, **kwargs):
        script = self.scripts.pop(0)
        stream = self

        class Response:
            status = 200

            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc):
                return False

            @property
            def content(self):
                async def lines():
                    for line in script:
                        yield line
                return lines()

        class Session:
            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc):
                return False

            def get(self, url):
                stream.urls.append(url)
                if isinstance(script, Exception):
                    raise script
                return Response()

        return Session()


class TestFormatUpdate:

    def test_done_shows_url(self):
        line = format_update({"id": "abc123", "status": "done", "url": "https://cdn.example/out.mp4"})
        assert "DONE" in line
        assert "https://cdn.example/out.mp4" in line

    def test_failed_shows_error(self):
        line = format_update({"status": "failed", "error": "Font missing"})
        assert "FAILED" in line
        assert "Font missing" in line

    def test_attempt_and_vendor_label(self):
        line = format_update({"status": "processing", "provider_status": "rendering", "attempt": 4})
        assert "[  4]" in line
        assert "(rendering)" in line

    def test_connected_event(self):
        line = format_update({"type": "connected", "message": "Tracking render abc123"})
        assert "Tracking render abc123" in line


class TestStreamParsing:

    def test_data_line(self):
        assert parse_sse_line(b'data: {"status": "queued"}\n') == {"status": "queued"}

    @pytest.mark.parametrize("raw", [b"\n", b": keep-alive\n", b"data: not-json\n", b"event: status\n"])
    def test_other_lines_ignored(self, raw):
        assert parse_sse_line(raw) is None

    @pytest.mark.parametrize("event,expected", [
        ({"status": "queued"}, False),
        ({"status": "check_failed"}, False),
        ({"status": "done"}, True),
        ({"status": "failed"}, True),
        ({"status": "timeout"}, True),
        ({"type": "error", "status": "error"}, True),
        ({"type": "connected"}, False),
    ])
    def test_is_terminal(self, event, expected):
        assert is_terminal(event) is expected


class TestProgressMonitor:

    def test_stream_url(self):
        monitor = ProgressMonitor("abc123", server_url="http://localhost:8765/")
        assert monitor.stream_url == "http://localhost:8765/renders/abc123/events"

    def test_terminal_event_stops_monitor(self, capsys):
        monitor = ProgressMonitor("abc123")
        monitor._running = True

        monitor._handle_event({"status": "processing"})
        assert monitor._running
        assert monitor.final_event is None

        monitor._handle_event({"status": "done", "url": "https://cdn.example/out.mp4"})
        assert not monitor._running
        assert monitor.final_event["url"] == "https://cdn.example/out.mp4"
        assert "DONE" in capsys.readouterr().out


class TestReconnect:
    """Dropped connections are retried with backoff until a terminal event."""

    @pytest.mark.asyncio
    async def test_reconnects_after_connection_error(self):
        stream = FakeStream([
            aiohttp.ClientConnectionError("Connection refused"),
            sse_lines(
                {"type": "connected", "id": "abc123"},
                {"type": "status", "status": "done", "url": "https://cdn.example/out.mp4"},
            ),
        ])
        monitor = ProgressMonitor("abc123", reconnect_wait=wait_none())

        with patch("cli.progress_monitor.aiohttp.ClientSession", stream):
            final = await monitor.start()

        assert final["status"] == "done"
        assert stream.urls == ["http://localhost:8765/renders/abc123/events"] * 2

    @pytest.mark.asyncio
    async def test_stream_closed_early_reconnects(self):
        stream = FakeStream([
            sse_lines({"type": "status", "status": "processing"}),
            sse_lines({"type": "status", "status": "failed", "error": "Font missing"}),
        ])
        monitor = ProgressMonitor("abc123", reconnect_wait=wait_none())

        with patch("cli.progress_monitor.aiohttp.ClientSession", stream):
            final = await monitor.start()

        assert final["error"] == "Font missing"
        assert len(stream.urls) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, capsys):
        stream = FakeStream([aiohttp.ClientConnectionError("down")] * 3)
        monitor = ProgressMonitor("abc123", max_retries=3, reconnect_wait=wait_none())

        with patch("cli.progress_monitor.aiohttp.ClientSession", stream):
            final = await monitor.start()

        assert final is None
        assert len(stream.urls) == 3
        assert "Failed to connect after 3 attempts" in capsys.readouterr().out
