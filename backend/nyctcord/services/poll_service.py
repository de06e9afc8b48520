"""Poll round orchestration: fetch feeds, resolve alerts, apply line transitions."""

import asyncio
import time
from collections.abc import Callable, Sequence

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nyctcord.core.config import settings
from nyctcord.core.errors import ConfigError, FeedError, StorageError, StorageUnavailableError
from nyctcord.core.logging import poll_round_context
from nyctcord.core.telemetry import service_span
from nyctcord.helpers.change_detection import fingerprint_alert
from nyctcord.schemas.alerts import FeedResult, PollRoundStats, ResolvedAlerts, TransitionOutcome
from nyctcord.services.feed_service import FeedClient
from nyctcord.services.severity_resolver import resolve_best_alerts
from nyctcord.services.state_service import LineStateService

logger = structlog.get_logger(__name__)


def init_poll_round_stats(feeds_attempted: int = 0) -> PollRoundStats:
    """
    Initialize poll round statistics.

    Example:
        >>> init_poll_round_stats(2)["feeds_attempted"]
        2
    """
    return PollRoundStats(
        feeds_attempted=feeds_attempted,
        feeds_failed=0,
        lines_resolved=0,
        lines_changed=0,
        lines_unchanged=0,
        lines_failed=0,
        aborted=False,
    )


class PollService:
    """Runs one independent poll round at a time.

    Nothing is carried between rounds except what the store persists, so a line that
    failed in one round is retried naturally by the next.
    """

    def __init__(
        self,
        feed_client: FeedClient,
        state_service: LineStateService,
        feed_urls: Sequence[str] | None = None,
        *,
        fetch_concurrency: int | None = None,
        write_timeout: float | None = None,
    ) -> None:
        """
        Initialize the poll service.

        Args:
            feed_client: Client used to fetch and decode each feed
            state_service: Applies per-line transitions
            feed_urls: Feeds to poll, defaults to FEED_URLS
            fetch_concurrency: Max feeds fetched at once, defaults to FEED_FETCH_CONCURRENCY
            write_timeout: Budget in seconds for the whole write phase, defaults to DB_WRITE_TIMEOUT_SECONDS

        Raises:
            ConfigError: If no feeds are configured
        """
        urls = list(feed_urls) if feed_urls is not None else list(settings.FEED_URLS)
        if not urls:
            msg = "No alert feeds configured"
            raise ConfigError(msg)

        self.feed_client = feed_client
        self.state_service = state_service
        self.feed_urls = urls
        self.fetch_concurrency = max(1, fetch_concurrency or settings.FEED_FETCH_CONCURRENCY)
        self.write_timeout = write_timeout if write_timeout is not None else settings.DB_WRITE_TIMEOUT_SECONDS

    async def run_once(
        self,
        now: int | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> PollRoundStats:
        """
        Run one complete poll round.

        Args:
            now: Round timestamp in POSIX seconds, defaults to the current time
            should_stop: Checked between line transitions; returning True ends the round early

        Returns:
            PollRoundStats for the round
        """
        round_now = int(time.time()) if now is None else now
        stats = init_poll_round_stats(len(self.feed_urls))

        with (
            poll_round_context(round_now, len(self.feed_urls)),
            service_span("poll.round", "poller", feeds_attempted=len(self.feed_urls)) as span,
        ):
            logger.info("poll_round_started", feeds_attempted=len(self.feed_urls))

            feed_results = await self.fetch_feeds()
            stats["feeds_failed"] = len(self.feed_urls) - len(feed_results)

            resolved = resolve_best_alerts(feed_results, round_now)
            stats["lines_resolved"] = len(resolved)

            await self.apply_resolved(resolved, stats, should_stop)

            for key, value in stats.items():
                span.set_attribute(f"poll.{key}", value)

            logger.info("poll_round_completed", **stats)
            return stats

    async def fetch_feeds(self) -> list[FeedResult]:
        """
        Fetch every configured feed with bounded concurrency.

        Failing feeds are logged and left out; results keep the configured feed order.
        """
        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def fetch_one(feed_url: str) -> FeedResult | None:
            async with semaphore:
                structlog.contextvars.bind_contextvars(feed_url=feed_url)
                try:
                    return await self.feed_client.fetch(feed_url)
                except FeedError as e:
                    logger.warning(
                        "feed_fetch_failed",
                        feed_url=feed_url,
                        error_type=type(e).__name__,
                        status_code=getattr(e, "status_code", None),
                        error=str(e),
                    )
                    return None

        results = await asyncio.gather(*(fetch_one(url) for url in self.feed_urls))
        return [result for result in results if result is not None]

    async def apply_resolved(
        self,
        resolved: ResolvedAlerts,
        stats: PollRoundStats,
        should_stop: Callable[[], bool] | None = None,
    ) -> None:
        """
        Apply each line's resolved alert, within the write phase time budget.

        Shutdown and the write deadline are only honoured between lines; a transition
        that is cut short by the deadline is rolled back as a whole.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.write_timeout
        line_ids = resolved.line_ids()

        for index, line_id in enumerate(line_ids):
            pending = len(line_ids) - index
            if should_stop is not None and should_stop():
                logger.info("poll_round_stopped", lines_skipped=pending)
                stats["aborted"] = True
                return

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(
                    "write_phase_timeout",
                    timeout_seconds=self.write_timeout,
                    lines_skipped=pending,
                )
                stats["lines_failed"] += pending
                stats["aborted"] = True
                return

            alert = resolved.by_line[line_id]
            fingerprint = fingerprint_alert(alert)
            try:
                with structlog.contextvars.bound_contextvars(line_id=line_id):
                    async with asyncio.timeout(remaining):
                        if await self.state_service.has_changed(line_id, fingerprint):
                            outcome = await self.state_service.apply_transition(line_id, alert, fingerprint)
                        else:
                            outcome = TransitionOutcome.UNCHANGED
            except StorageUnavailableError as e:
                logger.error("store_connection_lost", line_id=line_id, error=str(e), lines_skipped=pending)
                stats["lines_failed"] += pending
                stats["aborted"] = True
                return
            except StorageError as e:
                logger.error("line_transition_failed", line_id=line_id, error=str(e))
                stats["lines_failed"] += 1
                continue
            except TimeoutError:
                logger.error("line_transition_timed_out", line_id=line_id)
                stats["lines_failed"] += 1
                continue

            if outcome is TransitionOutcome.CHANGED:
                stats["lines_changed"] += 1
            else:
                stats["lines_unchanged"] += 1


def create_poll_service(
    http_client: httpx.AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
) -> PollService:
    """Wire a PollService from settings for the given HTTP client and store."""
    return PollService(
        feed_client=FeedClient(http_client),
        state_service=LineStateService(session_factory),
    )
