"""Tests for CLI tool.

Command handlers run against the per-test SQLite store and the mock feed transport.
"""

import argparse
import asyncio
import os
import signal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from nyctcord import cli
from nyctcord.cli import build_parser, cmd_poll_once, cmd_run, main
from nyctcord.core.config import settings
from nyctcord.core.errors import ConfigError
from nyctcord.models import AlertEvent
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tests.helpers.feeds import (
    FEED_URL,
    FeedResponses,
    build_alert_entity,
    build_feed_payload,
    build_mock_transport,
    protobuf_response,
)


@pytest.fixture
def cli_environment(
    monkeypatch: pytest.MonkeyPatch,
    session_factory: async_sessionmaker[AsyncSession],
    feed_responses: FeedResponses,
) -> AsyncMock:
    """
    Point CLI commands at the test store and mock feed.

    Returns:
        The dispose_engine mock, so tests can check cleanup
    """
    monkeypatch.setattr(settings, "FEED_URLS", [FEED_URL])
    monkeypatch.setattr(cli, "get_session_factory", lambda: session_factory)
    monkeypatch.setattr(
        cli,
        "create_http_client",
        lambda: httpx.AsyncClient(transport=build_mock_transport(feed_responses)),
    )
    dispose = AsyncMock()
    monkeypatch.setattr(cli, "dispose_engine", dispose)
    return dispose


async def test_cmd_poll_once_success(
    cli_environment: AsyncMock,
    feed_responses: FeedResponses,
    session_factory: async_sessionmaker[AsyncSession],
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Test poll-once runs a round and prints its statistics."""
    feed_responses[FEED_URL] = protobuf_response(
        build_feed_payload(build_alert_entity("n1", ["N"], effect="NO_SERVICE", header="No N trains"))
    )

    exit_code = await cmd_poll_once(argparse.Namespace())

    assert exit_code == 0
    captured = capsys.readouterr()
    assert "Poll round completed" in captured.out
    assert "Changed:   1" in captured.out
    async with session_factory() as session:
        assert (await session.execute(select(func.count()).select_from(AlertEvent))).scalar_one() == 1
    cli_environment.assert_awaited_once()


async def test_cmd_poll_once_reports_early_end(
    cli_environment: AsyncMock,
    feed_responses: FeedResponses,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Test poll-once warns when the round was cut short."""
    feed_responses[FEED_URL] = protobuf_response(build_feed_payload())
    stats = {
        "feeds_attempted": 1,
        "feeds_failed": 0,
        "lines_resolved": 2,
        "lines_changed": 0,
        "lines_unchanged": 0,
        "lines_failed": 2,
        "aborted": True,
    }

    with patch("nyctcord.services.poll_service.PollService.run_once", AsyncMock(return_value=stats)):
        exit_code = await cmd_poll_once(argparse.Namespace())

    assert exit_code == 0
    assert "Round ended early" in capsys.readouterr().out


async def test_cmd_poll_once_unreachable_store(
    cli_environment: AsyncMock,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Test poll-once exits 1 when the store cannot be reached."""
    monkeypatch.setattr(
        cli,
        "check_database_connection",
        AsyncMock(side_effect=ConfigError("Persistent store is unreachable: refused")),
    )

    exit_code = await cmd_poll_once(argparse.Namespace())

    assert exit_code == 1
    assert "Persistent store is unreachable" in capsys.readouterr().err
    cli_environment.assert_awaited_once()


async def test_cmd_run_stops_on_sigterm(cli_environment: AsyncMock, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test run starts the scheduler and stops it cleanly on SIGTERM."""
    scheduler = MagicMock()
    scheduler.stop = AsyncMock()
    scheduler.start.side_effect = lambda: asyncio.get_running_loop().call_soon(
        os.kill, os.getpid(), signal.SIGTERM
    )
    monkeypatch.setattr(cli, "PollScheduler", MagicMock(return_value=scheduler))

    exit_code = await asyncio.wait_for(cmd_run(argparse.Namespace()), timeout=5.0)

    assert exit_code == 0
    scheduler.start.assert_called_once()
    scheduler.stop.assert_awaited_once()
    cli_environment.assert_awaited_once()


def test_parser_requires_command() -> None:
    """Test that a subcommand is mandatory."""
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_main_dispatches_to_command() -> None:
    """Test that main runs the selected command and returns its exit code."""
    handler = AsyncMock(return_value=0)

    with patch.dict(cli.COMMANDS, {"poll-once": handler}):
        assert main(["poll-once"]) == 0

    handler.assert_awaited_once()
