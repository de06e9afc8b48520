"""Selection of the single most severe active alert per line."""

from collections.abc import Iterable

import structlog

from nyctcord.helpers.alert_helpers import is_alert_active, normalize_line_id, severity_rank
from nyctcord.schemas.alerts import AlertEntity, FeedResult, RawAlert, ResolvedAlerts

logger = structlog.get_logger(__name__)


class SeverityResolver:
    """Accumulates the best alert seen per line during one poll round.

    A candidate replaces the current best only when its effect ranks strictly higher,
    so among equally severe alerts the first one encountered wins. Create a new
    resolver for every round.
    """

    def __init__(self, now: int) -> None:
        """
        Args:
            now: Round timestamp (POSIX seconds) used for active-window checks
        """
        self.now = now
        self._best: dict[str, RawAlert] = {}
        self._best_rank: dict[str, int] = {}
        self.inactive_skipped = 0

    def consider(self, entity: AlertEntity) -> None:
        """Offer one alert entity to every line it informs."""
        if not is_alert_active(entity, self.now):
            self.inactive_skipped += 1
            return

        rank = severity_rank(entity.effect)
        candidate: RawAlert | None = None
        for raw_line_id in entity.line_ids:
            line_id = normalize_line_id(raw_line_id)
            if not line_id:
                continue
            if line_id in self._best and rank <= self._best_rank[line_id]:
                continue
            if candidate is None:
                candidate = entity.to_raw_alert()
            self._best[line_id] = candidate
            self._best_rank[line_id] = rank

    def consider_all(self, entities: Iterable[AlertEntity]) -> None:
        for entity in entities:
            self.consider(entity)

    def result(self) -> ResolvedAlerts:
        """Snapshot of the per-line best alerts accumulated so far."""
        return ResolvedAlerts(by_line=dict(self._best))


def resolve_best_alerts(feed_results: Iterable[FeedResult], now: int) -> ResolvedAlerts:
    """
    Resolve one best alert per line across all successfully fetched feeds.

    Args:
        feed_results: Decoded feeds, in configured feed order
        now: Round timestamp (POSIX seconds)

    Returns:
        ResolvedAlerts keyed by normalized line id
    """
    resolver = SeverityResolver(now)
    for feed in feed_results:
        resolver.consider_all(feed.entities)

    resolved = resolver.result()
    logger.debug(
        "alerts_resolved",
        lines=len(resolved),
        inactive_skipped=resolver.inactive_skipped,
    )
    return resolved
