"""Atomic line state transitions with notification fan-out."""

from datetime import datetime

import structlog
from sqlalchemy import DateTime, Integer, String, and_, case, func, insert, literal, select
from sqlalchemy.exc import DBAPIError, InterfaceError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nyctcord.core.errors import StorageError, StorageUnavailableError
from nyctcord.core.telemetry import service_span
from nyctcord.helpers.alert_helpers import empty_to_none, status_from_effect
from nyctcord.helpers.change_detection import get_stored_fingerprint, is_changed
from nyctcord.models.base import utc_now
from nyctcord.models.line import AlertEvent, LineState
from nyctcord.models.notification import ChannelType, NotificationStatus, PendingNotification
from nyctcord.models.user import ALL_LINES, Subscription
from nyctcord.schemas.alerts import RawAlert, TransitionOutcome

logger = structlog.get_logger(__name__)


def _is_connection_loss(exc: BaseException) -> bool:
    """True when the failure means the store itself is gone rather than one bad write."""
    if isinstance(exc, InterfaceError | ConnectionError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class LineStateService:
    """Applies resolved alerts to persisted line state.

    Each transition runs in its own transaction: the AlertEvent insert, the
    PendingNotification fan-out and the LineState upsert either all commit or
    are all rolled back.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """
        Initialize the line state service.

        Args:
            session_factory: Factory producing sessions bound to the shared store
        """
        self.session_factory = session_factory

    async def has_changed(self, line_id: str, fingerprint: str) -> bool:
        """
        Compare a fingerprint against the last accepted one for the line.

        Raises:
            StorageError: If the lookup fails
        """
        try:
            async with self.session_factory() as session:
                stored = await get_stored_fingerprint(session, line_id)
        except (SQLAlchemyError, OSError) as e:
            raise self._storage_error(line_id, "Fingerprint lookup failed", e) from e
        return is_changed(stored, fingerprint)

    async def apply_transition(self, line_id: str, alert: RawAlert, fingerprint: str) -> TransitionOutcome:
        """
        Record a line's new resolved alert if its content changed.

        Args:
            line_id: Normalized line id
            alert: Resolved alert for the line
            fingerprint: Content fingerprint of ``alert``

        Returns:
            TransitionOutcome.CHANGED if history, fan-out and state were written,
            TransitionOutcome.UNCHANGED if the stored fingerprint already matches

        Raises:
            StorageError: If any write failed (the transaction was rolled back)
            StorageUnavailableError: If the connection to the store was lost
        """
        with service_span("line_state.transition", "line-state-service", line_id=line_id) as span:
            try:
                async with self.session_factory() as session, session.begin():
                    outcome = await self._transition(session, line_id, alert, fingerprint)
            except (SQLAlchemyError, OSError) as e:
                raise self._storage_error(line_id, "Line transition rolled back", e) from e

            span.set_attribute("line_state.outcome", outcome.value)
            return outcome

    async def _transition(
        self,
        session: AsyncSession,
        line_id: str,
        alert: RawAlert,
        fingerprint: str,
    ) -> TransitionOutcome:
        # Row lock serializes concurrent pollers on the same line (ignored by SQLite)
        result = await session.execute(select(LineState).where(LineState.line_id == line_id).with_for_update())
        state = result.scalar_one_or_none()

        if state is not None and not is_changed(state.content_hash, fingerprint):
            logger.debug("line_state_unchanged", line_id=line_id, content_hash=fingerprint)
            return TransitionOutcome.UNCHANGED

        now = utc_now()
        old_status = state.status if state is not None else ""
        new_status = status_from_effect(alert.effect)

        event = AlertEvent(
            source_alert_id=alert.source_alert_id,
            line_id=line_id,
            old_status=old_status,
            new_status=new_status,
            header=empty_to_none(alert.header),
            body=empty_to_none(alert.body),
            effect=empty_to_none(alert.effect),
            created_at=now,
        )
        session.add(event)
        await session.flush()

        queued = await self._fan_out_notifications(session, event, now)

        if state is None:
            state = LineState(line_id=line_id)
            session.add(state)
        state.status = new_status
        state.header = empty_to_none(alert.header)
        state.body = empty_to_none(alert.body)
        state.effect = empty_to_none(alert.effect)
        state.content_hash = fingerprint
        state.updated_at = now
        await session.flush()

        logger.info(
            "line_state_changed",
            line_id=line_id,
            old_status=old_status,
            new_status=new_status,
            alert_event_id=event.id,
            notifications_queued=queued,
        )
        return TransitionOutcome.CHANGED

    async def _fan_out_notifications(self, session: AsyncSession, event: AlertEvent, now: datetime) -> int:
        """
        Queue one pending notification per subscriber of the line or of ``ALL``.

        Returns:
            Number of notifications queued
        """
        channel = case(
            (
                and_(Subscription.via_guild.is_(True), Subscription.via_dm.is_(False)),
                literal(ChannelType.GUILD.value, type_=String),
            ),
            else_=literal(ChannelType.DM.value, type_=String),
        )
        subscribers = select(
            Subscription.user_id,
            literal(event.id, type_=Integer),
            literal(event.line_id, type_=String),
            channel,
            literal(NotificationStatus.PENDING.value, type_=String),
            literal(now, type_=DateTime(timezone=True)),
        ).where(func.upper(func.trim(Subscription.line_id)).in_([event.line_id, ALL_LINES]))

        stmt = insert(PendingNotification).from_select(
            ["user_id", "alert_event_id", "line_id", "channel_type", "status", "created_at"],
            subscribers,
        )
        result = await session.execute(stmt)
        return max(result.rowcount or 0, 0)

    @staticmethod
    def _storage_error(line_id: str, message: str, exc: BaseException) -> StorageError:
        if _is_connection_loss(exc):
            return StorageUnavailableError(line_id, f"{message}: store connection lost: {exc}")
        return StorageError(line_id, f"{message}: {exc}")
