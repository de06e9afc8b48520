"""OpenTelemetry tracing and log export configuration."""

import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog
from opentelemetry import trace
from opentelemetry._logs import set_logger_provider as otel_set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from nyctcord import __version__
from nyctcord.core.config import settings

if TYPE_CHECKING:
    from opentelemetry.trace.span import Span

logger = structlog.get_logger(__name__)

# Created lazily so each forked worker process builds its own providers
_tracer_provider: TracerProvider | None = None
_tracer_provider_lock = threading.Lock()
_logger_provider: LoggerProvider | None = None
_logger_provider_lock = threading.Lock()


def _build_resource() -> Resource:
    return Resource(
        attributes={
            "service.name": settings.OTEL_SERVICE_NAME,
            "service.version": __version__,
            "deployment.environment": settings.OTEL_ENVIRONMENT,
        }
    )


def parse_otlp_headers(headers_str: str) -> dict[str, str]:
    """
    Parse OTLP headers from comma-separated key=value pairs.

    Example:
        >>> parse_otlp_headers("Authorization=Bearer token123,X-Custom=value")
        {'Authorization': 'Bearer token123', 'X-Custom': 'value'}
    """
    if not headers_str or not headers_str.strip():
        return {}

    headers = {}
    for raw_pair in headers_str.split(","):
        pair = raw_pair.strip()
        if "=" in pair:
            key, value = pair.split("=", 1)
            headers[key.strip()] = value.strip()
        elif pair:
            logger.warning("otel_malformed_header", pair=pair)

    return headers


def get_tracer_provider() -> TracerProvider | None:
    """
    Get or create the TracerProvider.

    Returns:
        TracerProvider if OTEL is enabled, None otherwise
    """
    if not settings.OTEL_ENABLED:
        return None

    global _tracer_provider  # noqa: PLW0603
    if _tracer_provider is None:
        with _tracer_provider_lock:
            if _tracer_provider is None:
                provider = TracerProvider(resource=_build_resource())
                if settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT:
                    exporter = OTLPSpanExporter(
                        endpoint=settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT,
                        headers=parse_otlp_headers(settings.OTEL_EXPORTER_OTLP_HEADERS or ""),
                    )
                    provider.add_span_processor(BatchSpanProcessor(exporter))
                    logger.info(
                        "otel_tracer_provider_created",
                        endpoint=settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT,
                        service_name=settings.OTEL_SERVICE_NAME,
                    )
                else:
                    logger.warning("otel_no_traces_endpoint_configured", message="traces will not be exported")
                _tracer_provider = provider
    return _tracer_provider


def get_logger_provider() -> LoggerProvider | None:
    """
    Get or create the LoggerProvider used for OTLP log export.

    Returns:
        LoggerProvider if OTEL is enabled, None otherwise
    """
    if not settings.OTEL_ENABLED:
        return None

    global _logger_provider  # noqa: PLW0603
    if _logger_provider is None:
        with _logger_provider_lock:
            if _logger_provider is None:
                provider = LoggerProvider(resource=_build_resource())
                if settings.OTEL_EXPORTER_OTLP_LOGS_ENDPOINT:
                    exporter = OTLPLogExporter(
                        endpoint=settings.OTEL_EXPORTER_OTLP_LOGS_ENDPOINT,
                        headers=parse_otlp_headers(settings.OTEL_EXPORTER_OTLP_HEADERS or ""),
                    )
                    provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
                else:
                    logger.warning("otel_no_logs_endpoint_configured", message="logs will not be exported to OTLP")
                _logger_provider = provider
    return _logger_provider


def init_process_telemetry() -> None:
    """Install the tracer and logger providers for the current process."""
    if provider := get_tracer_provider():
        trace.set_tracer_provider(provider)
    if log_provider := get_logger_provider():
        otel_set_logger_provider(log_provider)


def shutdown_telemetry() -> None:
    """Flush pending spans and log records. Safe to call when nothing was created."""
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
    if _logger_provider is not None:
        _logger_provider.shutdown()  # type: ignore[no-untyped-call]  # SDK method lacks type annotations
    logger.debug("otel_providers_shutdown")


# OpenTelemetry attribute values can be primitives or lists of primitives
AttributeValue = str | int | float | bool | list[str] | list[int] | list[float] | list[bool]


@contextmanager
def service_span(
    name: str,
    service: str,
    kind: SpanKind = SpanKind.INTERNAL,
    **attributes: AttributeValue,
) -> Generator["Span"]:
    """Context manager for service operation spans with explicit status.

    Sets StatusCode.OK on successful completion; on failure the SDK records the
    exception and sets StatusCode.ERROR.

    Example:
        with service_span("feed.fetch", "mta-feed", kind=SpanKind.CLIENT, feed_url=url) as span:
            payload = await client.get(url)
            span.set_attribute("feed.bytes", len(payload.content))
    """
    # Tracer acquired at call time so the provider installed at startup is used
    tracer = trace.get_tracer(__name__)
    span_attributes = {
        "peer.service": service,
        **attributes,
    }
    with tracer.start_as_current_span(
        name,
        kind=kind,
        attributes=span_attributes,
    ) as span:
        yield span
        span.set_status(Status(StatusCode.OK))
