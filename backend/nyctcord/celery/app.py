"""Celery application instance and configuration."""

import structlog
from celery import Celery
from celery.signals import beat_init, worker_ready

from nyctcord.core.config import require_config, settings
from nyctcord.core.logging import configure_logging

logger = structlog.get_logger(__name__)

configure_logging(log_level=settings.LOG_LEVEL, log_format=settings.LOG_FORMAT)

require_config("CELERY_BROKER_URL", "CELERY_RESULT_BACKEND")

celery_app = Celery("nyctcord")

celery_app.conf.update(
    broker_url=settings.CELERY_BROKER_URL,
    result_backend=settings.CELERY_RESULT_BACKEND,
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # A round must finish well inside one poll interval
    task_time_limit=240,
    task_soft_time_limit=180,
    # Let structlog own the root logger
    worker_hijack_root_logger=False,
)

if settings.OTEL_ENABLED:
    from opentelemetry.instrumentation.celery import CeleryInstrumentor

    CeleryInstrumentor().instrument()
    logger.info("celery_otel_instrumentation_enabled")


@beat_init.connect
def init_beat_otel(
    **kwargs: object,
) -> None:
    """Install telemetry providers in the Beat scheduler process."""
    if settings.OTEL_ENABLED:
        try:
            from nyctcord.core.telemetry import init_process_telemetry  # noqa: PLC0415  # Lazy import for fork-safety

            init_process_telemetry()
            logger.info("beat_otel_providers_initialized")
        except Exception:
            # Beat keeps scheduling without tracing
            logger.exception("beat_otel_initialization_failed")


@worker_ready.connect
def trigger_startup_poll(
    **kwargs: object,
) -> None:
    """
    Run one poll round as soon as a worker is ready.

    Without this, a fresh deployment would wait a full interval for its first
    round. The task lock makes a concurrent Beat-triggered round a no-op.
    """
    try:
        celery_app.send_task("nyctcord.celery.tasks.poll_alert_feeds")
        logger.info("worker_startup_poll_triggered")
    except Exception:
        # The next scheduled round still runs
        logger.exception("worker_startup_poll_failed")


# Registers tasks and populates celery_app.conf.beat_schedule; must follow celery_app creation
from nyctcord.celery import (  # noqa: E402
    schedules,  # noqa: F401
    tasks,  # noqa: F401
)
