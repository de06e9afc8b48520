"""Per-worker resources for Celery poll tasks.

Each worker process owns a persistent event loop, created after fork, plus the
database engine, Redis client and HTTP client bound to that loop. Tasks reuse them
so connections are pooled across poll rounds.
"""

import asyncio
import contextlib
import threading

import httpx
import structlog
from celery.signals import worker_process_init, worker_process_shutdown
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from nyctcord.core.config import settings
from nyctcord.core.database import check_database_connection, create_engine_from_settings
from nyctcord.core.redis import RedisClientProtocol, create_redis_client
from nyctcord.services.feed_service import create_http_client

_worker_loop: asyncio.AbstractEventLoop | None = None
_worker_engine: AsyncEngine | None = None
_worker_session_factory: async_sessionmaker[AsyncSession] | None = None
_worker_redis_client: RedisClientProtocol | None = None
_worker_http_client: httpx.AsyncClient | None = None
_worker_sqlalchemy_instrumented: bool = False

# RLock: session factory creation calls engine creation under the same lock
_init_lock = threading.RLock()

logger = structlog.get_logger(__name__)


@worker_process_init.connect
def init_worker_resources(
    **kwargs: object,
) -> None:
    """
    Create the persistent event loop and telemetry providers after worker fork.

    Raises:
        ConfigError: If the persistent store is unreachable, so the worker does not boot
    """
    global _worker_loop  # noqa: PLW0603

    if _worker_loop is not None and not _worker_loop.is_closed():
        logger.debug("worker_process_init_loop_already_exists")
        return

    _worker_loop = asyncio.new_event_loop()
    asyncio.set_event_loop(_worker_loop)

    if settings.OTEL_ENABLED:
        from nyctcord.core.telemetry import init_process_telemetry  # noqa: PLC0415  # Lazy import for fork-safety

        init_process_telemetry()
        logger.info("worker_otel_providers_initialized")

    _worker_loop.run_until_complete(check_database_connection(get_worker_session_factory()))
    logger.info("worker_process_init_completed")


@worker_process_shutdown.connect
def cleanup_worker_resources(
    **kwargs: object,
) -> None:
    """Dispose pooled resources and close the event loop on worker shutdown."""
    global _worker_loop, _worker_engine, _worker_session_factory, _worker_redis_client, _worker_http_client  # noqa: PLW0603
    global _worker_sqlalchemy_instrumented  # noqa: PLW0603

    if _worker_loop is None:
        return

    loop = _worker_loop
    engine = _worker_engine
    redis_client = _worker_redis_client
    http_client = _worker_http_client

    # Clear globals first so nothing new is created during disposal
    _worker_loop = None
    _worker_engine = None
    _worker_session_factory = None
    _worker_redis_client = None
    _worker_http_client = None
    _worker_sqlalchemy_instrumented = False

    try:
        if engine is not None:
            loop.run_until_complete(engine.dispose())
        if redis_client is not None:
            loop.run_until_complete(redis_client.aclose())
        if http_client is not None:
            loop.run_until_complete(http_client.aclose())
        if settings.OTEL_ENABLED:
            from nyctcord.core.telemetry import shutdown_telemetry  # noqa: PLC0415

            shutdown_telemetry()
    except Exception as exc:
        # Shutting down anyway; report and carry on closing the loop
        logger.warning(
            "worker_shutdown_cleanup_error",
            error=str(exc),
            error_type=type(exc).__name__,
        )
    finally:
        pending = asyncio.all_tasks(loop)
        if pending:
            for task in pending:
                task.cancel()
            with contextlib.suppress(Exception):
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()
        asyncio.set_event_loop(None)

    logger.info("worker_process_shutdown_completed")


def _get_worker_engine() -> AsyncEngine:
    """Get or create the worker database engine, instrumenting it once for OTEL."""
    global _worker_engine, _worker_sqlalchemy_instrumented  # noqa: PLW0603
    if _worker_engine is None or (settings.OTEL_ENABLED and not _worker_sqlalchemy_instrumented):
        with _init_lock:
            if _worker_engine is None:
                _worker_engine = create_engine_from_settings()
            if settings.OTEL_ENABLED and not _worker_sqlalchemy_instrumented:
                from opentelemetry.instrumentation.sqlalchemy import (  # noqa: PLC0415
                    SQLAlchemyInstrumentor,
                )

                SQLAlchemyInstrumentor().instrument(engine=_worker_engine.sync_engine)
                _worker_sqlalchemy_instrumented = True
    return _worker_engine


def get_worker_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the worker's session factory, creating it on first access."""
    global _worker_session_factory  # noqa: PLW0603
    if _worker_session_factory is None:
        with _init_lock:
            if _worker_session_factory is None:
                _worker_session_factory = async_sessionmaker(
                    _get_worker_engine(),
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )
    return _worker_session_factory


def get_worker_redis_client() -> RedisClientProtocol:
    """Get the worker's shared Redis client. Do not close it from task code."""
    global _worker_redis_client  # noqa: PLW0603
    if _worker_redis_client is None:
        with _init_lock:
            if _worker_redis_client is None:
                _worker_redis_client = create_redis_client()
    return _worker_redis_client


def get_worker_http_client() -> httpx.AsyncClient:
    """Get the worker's shared HTTP client for feed fetches."""
    global _worker_http_client  # noqa: PLW0603
    if _worker_http_client is None:
        with _init_lock:
            if _worker_http_client is None:
                _worker_http_client = create_http_client()
    return _worker_http_client


def get_worker_loop() -> asyncio.AbstractEventLoop:
    """
    Get the worker's persistent event loop.

    Raises:
        RuntimeError: If init_worker_resources was not called or loop is closed
    """
    if _worker_loop is None:
        msg = (
            "Worker event loop not initialized. "
            "Ensure init_worker_resources was called (via worker_process_init signal)."
        )
        raise RuntimeError(msg)
    if _worker_loop.is_closed():
        msg = "Worker event loop has been closed. Cannot run tasks after cleanup_worker_resources has been called."
        raise RuntimeError(msg)
    return _worker_loop
