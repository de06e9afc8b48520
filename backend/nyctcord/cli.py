#!/usr/bin/env python3
"""Command-line entry point for the alert poller.

Usage:
    # Run a single poll round and print its statistics
    nyctcord poll-once

    # Run the poller in the foreground (one round now, then every interval)
    nyctcord run
"""

import argparse
import asyncio
import signal
import sys
from collections.abc import Sequence

import structlog

from nyctcord.core.config import settings
from nyctcord.core.database import check_database_connection, dispose_engine, get_session_factory
from nyctcord.core.errors import ConfigError
from nyctcord.core.logging import configure_logging
from nyctcord.core.telemetry import init_process_telemetry, shutdown_telemetry
from nyctcord.services.feed_service import create_http_client
from nyctcord.services.poll_service import create_poll_service
from nyctcord.services.scheduler import PollScheduler

logger = structlog.get_logger(__name__)


async def cmd_poll_once(args: argparse.Namespace) -> int:
    """
    Run one poll round.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    session_factory = get_session_factory()
    try:
        await check_database_connection(session_factory)
        async with create_http_client() as http_client:
            poll_service = create_poll_service(http_client, session_factory)
            stats = await poll_service.run_once()
    except ConfigError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1
    finally:
        await dispose_engine()

    print("✅ Poll round completed")
    print(f"   Feeds:     {stats['feeds_attempted'] - stats['feeds_failed']}/{stats['feeds_attempted']} ok")
    print(f"   Lines:     {stats['lines_resolved']} resolved")
    print(f"   Changed:   {stats['lines_changed']}")
    print(f"   Unchanged: {stats['lines_unchanged']}")
    print(f"   Failed:    {stats['lines_failed']}")
    if stats["aborted"]:
        print("⚠️  Round ended early; remaining lines retry next round")
    return 0


async def cmd_run(args: argparse.Namespace) -> int:
    """
    Run the poll scheduler until SIGINT or SIGTERM.

    Returns:
        Exit code (0 for clean shutdown, 1 for startup error)
    """
    session_factory = get_session_factory()
    try:
        await check_database_connection(session_factory)
        async with create_http_client() as http_client:
            poll_service = create_poll_service(http_client, session_factory)
            scheduler = PollScheduler(poll_service)

            loop = asyncio.get_running_loop()
            stop_requested = asyncio.Event()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop_requested.set)

            scheduler.start()
            try:
                await stop_requested.wait()
                logger.info("shutdown_requested")
                await scheduler.stop()
            finally:
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.remove_signal_handler(sig)
    except ConfigError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1
    finally:
        await dispose_engine()
    return 0


COMMANDS = {
    "poll-once": cmd_poll_once,
    "run": cmd_run,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nyctcord",
        description="Poll subway alert feeds and record line status changes.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("poll-once", help="Run a single poll round and exit")
    subparsers.add_parser("run", help="Poll on a fixed interval until interrupted")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    configure_logging(log_level=settings.LOG_LEVEL, log_format=settings.LOG_FORMAT)
    if settings.OTEL_ENABLED:
        init_process_telemetry()

    try:
        return asyncio.run(COMMANDS[args.command](args))
    finally:
        if settings.OTEL_ENABLED:
            shutdown_telemetry()


if __name__ == "__main__":
    sys.exit(main())
