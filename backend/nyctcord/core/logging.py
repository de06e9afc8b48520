"""Structured logging for the poller.

structlog renders its own events and stdlib records (httpx, SQLAlchemy, Celery)
through a single formatter. A poll round binds its context with
``poll_round_context``; feed fetches and line transitions bind ``feed_url`` and
``line_id`` on top of it, so every event emitted inside a round, including those
from concurrently running fetches, says which round, feed or line it belongs to.
"""

import logging
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.sdk._logs import LoggingHandler
from opentelemetry.util.types import Attributes

from nyctcord.core.config import settings
from nyctcord.core.telemetry import get_logger_provider

# Too chatty at INFO for a process that polls every few minutes
QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "sqlalchemy.engine",
    "celery.app.trace",
    "opentelemetry.instrumentation.celery",
    "opentelemetry.exporter.otlp.proto.http",
)


def _add_otel_context(
    logger: logging.Logger, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Add the active trace and span ids so log lines can be joined to poll round traces."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


class StructlogOTLPHandler(LoggingHandler):
    """OTLP log handler for records that went through structlog.

    The OTEL handler skips formatters, so structlog's private record attributes
    (``_logger``, ``_name``) would reach the exporter, which cannot serialize them.
    """

    @staticmethod
    def _get_attributes(record: logging.LogRecord) -> Attributes:
        attributes = LoggingHandler._get_attributes(record)
        if attributes is None:
            return None
        return {key: value for key, value in attributes.items() if not key.startswith("_")}


def _build_renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(*, log_level: str = "INFO", log_format: str = "console") -> None:
    """
    Route structlog and stdlib logging to stdout, and to OTLP when telemetry is enabled.

    Args:
        log_level: Root log level name (case-insensitive)
        log_format: ``console`` for human-readable lines, ``json`` for one object per line
    """
    level = logging.getLevelNamesMapping()[log_level.upper()]

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_otel_context,
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _build_renderer(log_format),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(stdout_handler)
    root_logger.setLevel(level)

    # None when telemetry is disabled
    if logger_provider := get_logger_provider():
        root_logger.addHandler(
            StructlogOTLPHandler(
                level=logging.getLevelNamesMapping()[settings.OTEL_LOG_LEVEL],
                logger_provider=logger_provider,
            )
        )
        structlog.get_logger(__name__).info(
            "otel_logging_handler_attached",
            level=settings.OTEL_LOG_LEVEL,
            endpoint=settings.OTEL_EXPORTER_OTLP_LOGS_ENDPOINT,
        )

    for logger_name in QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


@contextmanager
def poll_round_context(round_timestamp: int, feeds_attempted: int) -> Iterator[None]:
    """
    Bind round-scoped fields to every log event emitted inside the block.

    Tasks started inside the block (concurrent feed fetches) inherit the binding.

    Example:
        >>> with poll_round_context(1717243200, 2):
        ...     structlog.contextvars.get_contextvars()["poll_round"]
        '2024-06-01T12:00:00+00:00'
    """
    round_id = datetime.fromtimestamp(round_timestamp, UTC).isoformat()
    with structlog.contextvars.bound_contextvars(poll_round=round_id, feeds_attempted=feeds_attempted):
        yield
