#!/usr/bin/env python3
"""
Render Tracker - Main Entry Point

Usage:
    # Start the render proxy (HTTP + SSE)
    python main.py server

    # Submit a composition and follow it to completion
    python main.py render edit.json --interval-ms 3000 --max-attempts 100

    # Check a render once
    python main.py status abc123

    # Follow a render through a running proxy
    python main.py monitor abc123
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from core.config import Config

logger = logging.getLogger("rendertracker")


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )


def start_server(config: Config, host: Optional[str] = None, port: Optional[int] = None):
    """Run the render proxy under uvicorn."""
    import uvicorn

    from services.proxy import create_app

    host = host or config.server.host
    port = port or config.server.port
    logger.info(f"Render proxy running at http://{host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port, log_level=config.log_level.lower())


async def render_composition(
    config: Config,
    composition_path: str,
    interval_ms: Optional[int] = None,
    max_attempts: Optional[int] = None,
    timeout_seconds: Optional[float] = None,
) -> bool:
    """
    Submit a composition file and print every status until a terminal one.

    Returns:
        True when the render finished with an output URL
    """
    from cli.progress_monitor import Colors, colored, format_update
    from services.rendering import RenderError, RenderJobTracker

    try:
        document = Path(composition_path).read_text(encoding="utf-8")
    except OSError as e:
        print(colored(f"❌ Cannot read composition {composition_path}: {e.strerror or e}", Colors.RED))
        return False

    interval_ms = config.render.poll_interval_ms if interval_ms is None else interval_ms
    if max_attempts is None and timeout_seconds is None:
        max_attempts = config.render.max_attempts or None
        timeout_seconds = config.render.timeout_seconds or None

    async with RenderJobTracker(config.render) as tracker:
        try:
            handle = await tracker.submit(document)
            print(f"Queued: {colored(handle, Colors.BOLD)} ({tracker.client.provider_name})")

            final = None
            async for update in tracker.track(
                handle,
                interval_ms,
                max_attempts=max_attempts,
                timeout_seconds=timeout_seconds,
            ):
                print(format_update(update.to_dict()))
                final = update
        except RenderError as e:
            print(colored(f"❌ {e}", Colors.RED))
            return False

    return final is not None and final.url is not None


async def check_status(config: Config, render_id: str) -> bool:
    """Poll a render once and print the result as JSON."""
    from services.rendering import RenderError, RenderJobTracker

    async with RenderJobTracker(config.render) as tracker:
        try:
            status = await tracker.poll(render_id)
        except RenderError as e:
            print(json.dumps({"id": render_id, "status": "error", "error": str(e)}, indent=2))
            return False

    print(json.dumps(status.to_dict(), indent=2))
    return True


async def monitor_render(render_id: str, server_url: str) -> bool:
    """Follow a render through the proxy's SSE stream."""
    from cli.progress_monitor import ProgressMonitor

    monitor = ProgressMonitor(render_id=render_id, server_url=server_url)
    final = await monitor.start()
    return bool(final and final.get("status") == "done")


def main(argv: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(
        description="Render Tracker - submit and follow cloud video renders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python main.py server --port 8765
    python main.py render templates/hello.json
    RENDER_PROVIDER=creatomate python main.py render creatomate.json
    python main.py render edit.json --provider proxy --timeout 300
    python main.py status abc123
    python main.py monitor abc123 --server http://localhost:8765
        """,
    )
    parser.add_argument(
        "--provider",
        choices=["shotstack", "creatomate", "proxy"],
        help="Render provider (default: $RENDER_PROVIDER or shotstack)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    server_parser = subparsers.add_parser("server", help="Start the render proxy")
    server_parser.add_argument("--host", help="Host to bind")
    server_parser.add_argument("--port", type=int, help="Port to bind")

    render_parser = subparsers.add_parser("render", help="Submit a composition and track it")
    render_parser.add_argument("composition", help="Path to the composition JSON")
    render_parser.add_argument("--interval-ms", type=int, help="Delay between polls")
    render_parser.add_argument("--max-attempts", type=int, help="Poll budget")
    render_parser.add_argument("--timeout", type=float, help="Wall-clock budget in seconds")

    status_parser = subparsers.add_parser("status", help="Check a render once")
    status_parser.add_argument("render_id", help="Render ID")

    mon_parser = subparsers.add_parser("monitor", help="Follow a render via the proxy")
    mon_parser.add_argument("render_id", help="Render ID to monitor")
    mon_parser.add_argument("--server", help="Render proxy URL (default: $RENDER_PROXY_URL)")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config.from_env()
    if args.provider:
        config.render.provider = args.provider
    configure_logging(config.log_level)

    if args.command == "server":
        start_server(config, host=args.host, port=args.port)

    elif args.command == "render":
        ok = asyncio.run(
            render_composition(
                config,
                args.composition,
                interval_ms=args.interval_ms,
                max_attempts=args.max_attempts,
                timeout_seconds=args.timeout,
            )
        )
        sys.exit(0 if ok else 1)

    elif args.command == "status":
        ok = asyncio.run(check_status(config, args.render_id))
        sys.exit(0 if ok else 1)

    elif args.command == "monitor":
        ok = asyncio.run(monitor_render(args.render_id, args.server or config.render.proxy_url))
        sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
