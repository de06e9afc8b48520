"""Celery tasks for background processing.

The only task is the periodic poll round. A Redis lock guarantees rounds never
overlap, even with several workers or a startup round racing a Beat tick.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from redis.exceptions import LockError

from nyctcord.celery.app import celery_app
from nyctcord.celery.database import (
    get_worker_http_client,
    get_worker_loop,
    get_worker_redis_client,
    get_worker_session_factory,
)
from nyctcord.core.errors import ConfigError
from nyctcord.schemas.alerts import PollRoundStats
from nyctcord.services.poll_service import create_poll_service, init_poll_round_stats

logger = structlog.get_logger(__name__)

POLL_LOCK_NAME = "nyctcord:poll-round"
# Matches task_time_limit so a killed worker cannot hold the lock forever
POLL_LOCK_TIMEOUT_SECONDS = 240


def run_in_worker_loop[T](
    coro_func: Callable[..., Awaitable[T]],
    *args: Any,  # noqa: ANN401 - Pass-through args to async function
    **kwargs: Any,  # noqa: ANN401 - Pass-through kwargs to async function
) -> T:
    """
    Run an async function in the worker's persistent event loop.

    Raises:
        RuntimeError: If worker not initialized or event loop is closed
    """
    loop = get_worker_loop()
    coro = coro_func(*args, **kwargs)
    return loop.run_until_complete(coro)


class PollTaskResult(PollRoundStats):
    """Result from poll_alert_feeds task."""

    status: str


@celery_app.task(name="nyctcord.celery.tasks.poll_alert_feeds")
def poll_alert_feeds() -> PollTaskResult:
    """
    Run one poll round: fetch feeds, resolve alerts, record changed lines.

    Not retried on failure; the next scheduled round starts from persisted state.

    Returns:
        PollTaskResult with status ``success``, ``aborted`` or ``skipped``
    """
    try:
        result = run_in_worker_loop(_poll_alert_feeds_async)
    except ConfigError as exc:
        logger.error("poll_task_misconfigured", error=str(exc))
        raise
    except Exception as exc:
        logger.error(
            "poll_task_failed",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        raise

    logger.info("poll_task_completed", result=result)
    return result


async def _poll_alert_feeds_async() -> PollTaskResult:
    """Async body of poll_alert_feeds, guarded by the cross-worker lock."""
    redis_client = get_worker_redis_client()
    lock = redis_client.lock(POLL_LOCK_NAME, timeout=POLL_LOCK_TIMEOUT_SECONDS, blocking=False)

    if not await lock.acquire(blocking=False):
        logger.info("poll_round_skipped", reason="previous round still running")
        return PollTaskResult(status="skipped", **init_poll_round_stats())

    try:
        poll_service = create_poll_service(get_worker_http_client(), get_worker_session_factory())
        stats = await poll_service.run_once()
    finally:
        try:
            await lock.release()
        except LockError as e:
            # Lock expired mid-round; another round may already hold it
            logger.warning("poll_lock_release_failed", error=str(e))

    status = "aborted" if stats["aborted"] else "success"
    return PollTaskResult(status=status, **stats)
