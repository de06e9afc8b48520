"""Fetching and decoding of GTFS-realtime alert feeds."""

import httpx
import structlog
from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.transit import gtfs_realtime_pb2
from opentelemetry.trace import SpanKind

from nyctcord import __version__
from nyctcord.core.config import settings
from nyctcord.core.errors import BODY_SNIPPET_LIMIT, DecodeError, FetchError
from nyctcord.core.telemetry import service_span
from nyctcord.schemas.alerts import ActivePeriod, AlertEntity, FeedResult

logger = structlog.get_logger(__name__)


def _first_translation(text: gtfs_realtime_pb2.TranslatedString) -> str:
    """Text of the first translation, or an empty string when there is none."""
    if not text.translation:
        return ""
    return text.translation[0].text


def _effect_name(alert: gtfs_realtime_pb2.Alert) -> str:
    try:
        return gtfs_realtime_pb2.Alert.Effect.Name(alert.effect)
    except ValueError:
        return "UNKNOWN_EFFECT"


def alert_entity_from_proto(entity: gtfs_realtime_pb2.FeedEntity) -> AlertEntity:
    """
    Convert one protobuf feed entity carrying an alert into an AlertEntity.

    Args:
        entity: FeedEntity with its ``alert`` field set

    Returns:
        AlertEntity with blank informed route ids dropped
    """
    alert = entity.alert
    line_ids = tuple(
        informed.route_id for informed in alert.informed_entity if informed.route_id and informed.route_id.strip()
    )
    return AlertEntity(
        entity_id=entity.id,
        effect=_effect_name(alert),
        header=_first_translation(alert.header_text),
        body=_first_translation(alert.description_text),
        active_periods=tuple(ActivePeriod(start=period.start, end=period.end) for period in alert.active_period),
        line_ids=line_ids,
    )


def decode_feed(feed_url: str, payload: bytes, content_type: str | None = None) -> FeedResult:
    """
    Decode a GTFS-realtime FeedMessage payload into alert entities.

    Entities without an alert (trip updates, vehicle positions) are ignored.

    Args:
        feed_url: Feed the payload came from (for error reporting)
        payload: Raw response body
        content_type: Response Content-Type header, included in error messages

    Returns:
        FeedResult holding the decoded alert entities

    Raises:
        DecodeError: If the payload is not a valid FeedMessage
    """
    message = gtfs_realtime_pb2.FeedMessage()
    try:
        message.ParseFromString(payload)
    except ProtobufDecodeError as e:
        msg = f"Unmarshal failed (content-type={content_type!r} bytes={len(payload)}): {e}"
        raise DecodeError(feed_url, msg) from e

    entities = tuple(alert_entity_from_proto(entity) for entity in message.entity if entity.HasField("alert"))
    return FeedResult(feed_url=feed_url, entities=entities)


class FeedClient:
    """Fetches one feed at a time. Does not retry; the poll round decides what to skip."""

    def __init__(self, http_client: httpx.AsyncClient, timeout: float | None = None) -> None:
        """
        Initialize the feed client.

        Args:
            http_client: Shared HTTP client (owned by the caller)
            timeout: Per-request timeout in seconds, defaults to FEED_TIMEOUT_SECONDS
        """
        self.http_client = http_client
        self.timeout = timeout if timeout is not None else settings.FEED_TIMEOUT_SECONDS

    async def fetch(self, feed_url: str) -> FeedResult:
        """
        Fetch and decode one feed.

        Args:
            feed_url: Feed endpoint

        Returns:
            FeedResult with the feed's alert entities

        Raises:
            FetchError: On network failure, timeout or a non-2xx response
            DecodeError: If the body is not a valid GTFS-realtime message
        """
        with service_span("feed.fetch", "mta-feed", kind=SpanKind.CLIENT, feed_url=feed_url) as span:
            try:
                response = await self.http_client.get(feed_url, timeout=self.timeout)
            except httpx.TimeoutException as e:
                msg = f"Timed out after {self.timeout:g}s"
                raise FetchError(feed_url, msg) from e
            except httpx.HTTPError as e:
                msg = f"Request failed: {type(e).__name__}: {e}"
                raise FetchError(feed_url, msg) from e

            span.set_attribute("http.status_code", response.status_code)
            if not response.is_success:
                snippet = response.text[:BODY_SNIPPET_LIMIT]
                msg = f"HTTP {response.status_code}: {snippet!r}"
                raise FetchError(
                    feed_url,
                    msg,
                    status_code=response.status_code,
                    body_snippet=snippet,
                )

            result = decode_feed(feed_url, response.content, response.headers.get("content-type"))
            span.set_attribute("feed.alert_count", len(result.entities))
            logger.debug("feed_fetched", feed_url=feed_url, alert_count=len(result.entities))
            return result


def create_http_client() -> httpx.AsyncClient:
    """HTTP client shared by all feed fetches of a process."""
    return httpx.AsyncClient(
        timeout=settings.FEED_TIMEOUT_SECONDS,
        follow_redirects=True,
        headers={"User-Agent": f"nyctcord/{__version__}"},
    )
