"""Subscriber models.

Users and subscriptions are owned by the query API; the poller only reads
subscriptions when fanning out notifications.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nyctcord.models.base import Base, CreatedAtMixin, IntegerIdMixin, utc_now

# Subscription line id matching every line
ALL_LINES = "ALL"


class User(Base, IntegerIdMixin, CreatedAtMixin):
    """Discord user known to the bot."""

    __tablename__ = "users"

    discord_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )
    discord_username: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )

    subscriptions: Mapped[list["Subscription"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        """String representation of the user."""
        return f"<User(id={self.id}, discord_id={self.discord_id})>"


class Subscription(Base, IntegerIdMixin, CreatedAtMixin):
    """A user's interest in one line, or in every line via ``ALL``."""

    __tablename__ = "subscriptions"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        index=True,
    )
    via_dm: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
    )
    via_guild: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
    )

    user: Mapped[User] = relationship(back_populates="subscriptions")

    __table_args__ = (UniqueConstraint("user_id", "line_id", name="uq_subscriptions_user_line"),)

    def __repr__(self) -> str:
        """String representation of the subscription."""
        return f"<Subscription(id={self.id}, user_id={self.user_id}, line_id={self.line_id})>"
