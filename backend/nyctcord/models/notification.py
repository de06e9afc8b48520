"""Pending notification queue consumed by the delivery worker."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nyctcord.models.base import Base, CreatedAtMixin, IntegerIdMixin


class NotificationStatus(str, enum.Enum):
    """Notification delivery status."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ChannelType(str, enum.Enum):
    """Messaging channel a notification is delivered through."""

    DM = "dm"
    GUILD = "guild"


class PendingNotification(Base, IntegerIdMixin, CreatedAtMixin):
    """One queued notification per interested subscriber per alert event.

    The poller only inserts rows with status ``pending``; the delivery worker owns
    every later transition.
    """

    __tablename__ = "notifications"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    alert_event_id: Mapped[int] = mapped_column(
        ForeignKey("alerts.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    # Stored as VARCHAR + CHECK so INSERT ... SELECT can write plain string literals
    channel_type: Mapped[ChannelType] = mapped_column(
        Enum(
            ChannelType,
            name="channel_type",
            native_enum=False,
            create_constraint=True,
            length=16,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    status: Mapped[NotificationStatus] = mapped_column(
        Enum(
            NotificationStatus,
            name="notification_status",
            native_enum=False,
            create_constraint=True,
            length=16,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=NotificationStatus.PENDING,
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Delivery worker claims the oldest pending rows first
    __table_args__ = (Index("ix_notifications_status_created", "status", "created_at"),)

    def __repr__(self) -> str:
        """String representation of the notification."""
        return f"<PendingNotification(id={self.id}, user_id={self.user_id}, status={self.status})>"
