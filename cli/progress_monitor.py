#!/usr/bin/env python3
"""
CLI Progress Monitor for Render Jobs

Follows the render proxy's SSE stream and prints one line per status
observation, then a final success/failure line.

Usage:
    python -m cli.progress_monitor abc123
    python -m cli.progress_monitor --server http://localhost:8765 abc123
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

import aiohttp
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"


def colored(text: str, color: str) -> str:
    """Apply color to text."""
    return f"{color}{text}{Colors.RESET}"


STATUS_STYLE = {
    "connected": ("🔌", Colors.BLUE),
    "queued": ("⏳", Colors.DIM),
    "processing": ("🎬", Colors.CYAN),
    "check_failed": ("🔄", Colors.YELLOW),
    "done": ("✅", Colors.GREEN),
    "failed": ("❌", Colors.RED),
    "timeout": ("⏱️", Colors.YELLOW),
    "error": ("🔴", Colors.RED),
}

TERMINAL = ("done", "failed", "timeout", "error")


def format_update(event: dict) -> str:
    """Format one status observation (RenderStatus.to_dict() or SSE event)."""
    if event.get("type") == "connected":
        icon, color = STATUS_STYLE["connected"]
        return f"{icon} {colored(event.get('message', 'Connected'), color)}"

    status = event.get("status", "unknown")
    icon, color = STATUS_STYLE.get(status, ("•", Colors.WHITE))

    attempt = event.get("attempt")
    prefix = colored(f"[{attempt:>3}]", Colors.DIM) + " " if attempt else ""
    label = status.upper() if status in TERMINAL else status
    line = f"{prefix}{icon} {colored(label, color)}"

    provider_status = event.get("provider_status")
    if provider_status and provider_status != status:
        line += colored(f" ({provider_status})", Colors.DIM)

    if status == "done" and event.get("url"):
        line += f"\n    → {colored(event['url'], Colors.BOLD)}"
    elif event.get("error"):
        line += colored(f"\n    {event['error']}", Colors.DIM)

    return line


def is_terminal(event: dict) -> bool:
    return event.get("type") != "connected" and event.get("status") in TERMINAL


def parse_sse_line(raw: bytes) -> Optional[dict]:
    """Decode a ``data:`` line of the SSE stream; other lines yield None."""
    line = raw.decode("utf-8").strip()
    if not line.startswith("data:"):
        return None
    try:
        return json.loads(line[5:].strip())
    except json.JSONDecodeError:
        return None


class ProgressMonitor:
    """CLI progress monitor for one render job."""

    def __init__(
        self,
        render_id: str,
        server_url: str = "http://localhost:8765",
        max_retries: int = 5,
        reconnect_wait: Optional[wait_base] = None,
    ):
        self.render_id = render_id
        self.server_url = server_url.rstrip("/")
        self.stream_url = f"{self.server_url}/renders/{render_id}/events"
        self.max_retries = max_retries
        if reconnect_wait is None:
            reconnect_wait = wait_exponential(multiplier=1, min=2, max=30)
        self.reconnect_wait = reconnect_wait

        self._running = False
        self.final_event: Optional[dict] = None

    async def start(self) -> Optional[dict]:
        """Follow the stream until a terminal event; returns that event."""
        self._running = True

        print(colored("\n╔═══════════════════════════════════════════╗", Colors.CYAN))
        print(colored("║  Render Progress Monitor                  ║", Colors.CYAN))
        print(colored("╚═══════════════════════════════════════════╝", Colors.CYAN))
        print(f"Render: {colored(self.render_id, Colors.BOLD)}")
        print(f"Server: {colored(self.stream_url, Colors.DIM)}")
        print(colored("─" * 45, Colors.DIM))

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=self.reconnect_wait,
                retry=retry_if_exception_type(aiohttp.ClientError),
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        print(colored(
                            f"⚠️ Connection lost. Reconnecting "
                            f"({attempt.retry_state.attempt_number}/{self.max_retries})...",
                            Colors.YELLOW,
                        ))
                    await self._stream_events()
        except RetryError:
            print(colored(f"\n❌ Failed to connect after {self.max_retries} attempts", Colors.RED))
        except asyncio.CancelledError:
            pass

        print(colored("─" * 45, Colors.DIM))
        return self.final_event

    async def _stream_events(self):
        """Stream and display events."""
        async with aiohttp.ClientSession() as session:
            async with session.get(self.stream_url) as response:
                if response.status != 200:
                    raise aiohttp.ClientResponseError(
                        response.request_info,
                        response.history,
                        status=response.status,
                        message=f"Server returned {response.status}",
                    )

                async for line in response.content:
                    if not self._running:
                        break
                    event = parse_sse_line(line)
                    if event is not None:
                        self._handle_event(event)

        if self._running:
            # Stream closed before a terminal status
            raise aiohttp.ServerDisconnectedError()

    def _handle_event(self, event: dict):
        print(format_update(event))
        if is_terminal(event):
            self.final_event = event
            self._running = False

    def stop(self):
        """Stop monitoring."""
        self._running = False


async def main():
    parser = argparse.ArgumentParser(
        description="Monitor render job progress",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s abc123
    %(prog)s --server http://remote:8765 abc123
        """,
    )
    parser.add_argument("render_id", help="Render ID to monitor")
    parser.add_argument(
        "--server",
        default="http://localhost:8765",
        help="Render proxy URL (default: http://localhost:8765)",
    )

    args = parser.parse_args()
    monitor = ProgressMonitor(render_id=args.render_id, server_url=args.server)

    try:
        final = await monitor.start()
    except KeyboardInterrupt:
        print(colored("\n\nInterrupted by user.", Colors.YELLOW))
        monitor.stop()
        return 1

    return 0 if final and final.get("status") == "done" else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
