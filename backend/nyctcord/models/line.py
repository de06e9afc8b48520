"""Line status models: current reconciled state and append-only history."""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nyctcord.models.base import Base, CreatedAtMixin, IntegerIdMixin, utc_now


class LineState(Base):
    """Current reconciled status for one line. Exactly one row per line."""

    __tablename__ = "line_status"

    line_id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
    )
    status: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    header: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    effect: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    content_hash: Mapped[str | None] = mapped_column(
        String(64),  # SHA-256 hex digest
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation of the line state."""
        return f"<LineState(line_id={self.line_id}, status={self.status})>"


class AlertEvent(Base, IntegerIdMixin, CreatedAtMixin):
    """Immutable record of one accepted status change for a line."""

    __tablename__ = "alerts"

    source_alert_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )
    line_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    old_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    header: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    effect: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Recent history per line is the query API's main access path
    __table_args__ = (Index("idx_alerts_line_created_at", "line_id", "created_at"),)

    def __repr__(self) -> str:
        """String representation of the alert event."""
        return f"<AlertEvent(id={self.id}, line_id={self.line_id}, new_status={self.new_status})>"
