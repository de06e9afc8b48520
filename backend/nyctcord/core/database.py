"""Database configuration and session management."""

import threading

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from nyctcord.core.config import settings
from nyctcord.core.errors import ConfigError

logger = structlog.get_logger(__name__)

# Module-level globals for lazy initialization (fork-safety)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

_engine_lock = threading.Lock()
_session_factory_lock = threading.Lock()


def create_engine_from_settings() -> AsyncEngine:
    """
    Build an async engine for the configured store.

    SQLite (the single-host default) and DEBUG mode use NullPool; production
    PostgreSQL uses a sized connection pool.
    """
    if settings.DEBUG or settings.DATABASE_URL.startswith("sqlite"):
        return create_async_engine(
            settings.DATABASE_URL,
            echo=settings.DATABASE_ECHO,
            poolclass=NullPool,
        )
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def get_engine() -> AsyncEngine:
    """
    Get or create database engine (lazy initialization).

    Lazy initialization prevents forked worker processes from inheriting
    the parent's engine with asyncio primitives bound to the parent's event loop.

    Returns:
        AsyncEngine: SQLAlchemy async engine
    """
    global _engine  # noqa: PLW0603
    if _engine is None:
        with _engine_lock:
            if _engine is None:  # Double-checked locking
                _engine = create_engine_from_settings()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get or create session factory (lazy initialization).

    Returns:
        async_sessionmaker[AsyncSession]: SQLAlchemy async session factory
    """
    global _session_factory  # noqa: PLW0603
    if _session_factory is None:
        with _session_factory_lock:
            if _session_factory is None:  # Double-checked locking
                _session_factory = async_sessionmaker(
                    get_engine(),
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )
    return _session_factory


async def check_database_connection(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """
    Verify the persistent store is reachable.

    Args:
        session_factory: Factory for the store to probe

    Raises:
        ConfigError: If a trivial query cannot be executed
    """
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error("database_unreachable", error=str(e), error_type=type(e).__name__)
        msg = f"Persistent store is unreachable: {e}"
        raise ConfigError(msg) from e


async def dispose_engine() -> None:
    """Dispose the shared engine and forget the cached factory."""
    global _engine, _session_factory  # noqa: PLW0603
    engine = _engine
    _engine = None
    _session_factory = None
    if engine is not None:
        await engine.dispose()
