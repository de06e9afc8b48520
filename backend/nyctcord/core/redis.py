"""
Redis client protocol and factory.

Redis is only used by the Celery runtime, to hold the lock that keeps poll rounds
from overlapping across worker processes.
"""

from typing import Protocol, cast

import redis.asyncio as redis

from nyctcord.core.config import require_config, settings


class RedisLockProtocol(Protocol):
    """Subset of redis.asyncio.lock.Lock used by the poll task."""

    async def acquire(self, blocking: bool | None = None) -> bool:
        """Try to take the lock."""
        ...

    async def release(self) -> None:
        """Release a lock held by this client."""
        ...


class RedisClientProtocol(Protocol):
    """
    Protocol for the Redis async client.

    Defines the subset of redis.asyncio.Redis methods used in this application so
    tests can substitute a mock.
    """

    def lock(self, name: str, timeout: float | None = None, blocking: bool = True) -> RedisLockProtocol:
        """Create a distributed lock object."""
        ...

    async def aclose(self, close_connection_pool: bool = True) -> None:
        """Close the client connection."""
        ...


def create_redis_client() -> RedisClientProtocol:
    """
    Create Redis client with standard configuration.

    Raises:
        ValueError: If REDIS_URL is not configured
    """
    require_config("REDIS_URL")
    return cast(
        RedisClientProtocol,
        redis.from_url(  # type: ignore[no-untyped-call]
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        ),
    )
