"""Pytest configuration and fixtures."""

import os

# Test settings must be in place BEFORE nyctcord.core.config loads settings
os.environ["DEBUG"] = "true"
os.environ["OTEL_ENABLED"] = "false"
os.environ["SECRET_DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_REDIS_URL"] = "redis://localhost:6379/0"
os.environ["SECRET_CELERY_BROKER_URL"] = "memory://"
os.environ["SECRET_CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ.pop("MTA_FEEDS", None)

import itertools
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import httpx
import pytest
from nyctcord.models import Base, Subscription, User
from nyctcord.services.feed_service import FeedClient
from nyctcord.services.poll_service import PollService
from nyctcord.services.state_service import LineStateService
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tests.helpers.feeds import FEED_URL, FeedResponses, build_mock_transport


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """
    File-backed SQLite store with the full schema, one per test.

    A file (rather than ``:memory:``) lets every session get its own connection, so
    transactions behave the way they do against the production store.

    Yields:
        AsyncEngine bound to a fresh database
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'nyctcord-test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for the per-test store."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def add_subscriber(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Awaitable[int]]:
    """
    Factory fixture committing a user subscribed to the given line ids.

    Example:
        user_id = await add_subscriber("N", "Q", via_guild=True)

    Returns:
        Async callable returning the new user's id
    """
    counter = itertools.count(1)

    async def _add(*line_ids: str, via_dm: bool = True, via_guild: bool = False) -> int:
        n = next(counter)
        async with session_factory() as session, session.begin():
            user = User(discord_id=f"{400000000000000000 + n}", discord_username=f"rider{n}")
            user.subscriptions = [
                Subscription(line_id=line_id, via_dm=via_dm, via_guild=via_guild) for line_id in line_ids
            ]
            session.add(user)
            await session.flush()
            return user.id

    return _add


@pytest.fixture
def state_service(session_factory: async_sessionmaker[AsyncSession]) -> LineStateService:
    """LineStateService bound to the per-test store."""
    return LineStateService(session_factory)


@pytest.fixture
def feed_responses() -> FeedResponses:
    """Mutable map of feed URL to canned response; tests fill it in."""
    return FeedResponses()


@pytest.fixture
async def http_client(feed_responses: FeedResponses) -> AsyncGenerator[httpx.AsyncClient]:
    """HTTP client whose transport serves ``feed_responses``."""
    async with httpx.AsyncClient(transport=build_mock_transport(feed_responses)) as client:
        yield client


@pytest.fixture
def poll_service(http_client: httpx.AsyncClient, state_service: LineStateService) -> PollService:
    """PollService polling FEED_URL through the mock transport."""
    return PollService(
        feed_client=FeedClient(http_client, timeout=1.0),
        state_service=state_service,
        feed_urls=[FEED_URL],
        write_timeout=5.0,
    )
