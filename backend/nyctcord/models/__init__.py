"""Database models for the NYCTcord poller."""

# Import all models to register them with SQLAlchemy metadata
from nyctcord.models.base import Base
from nyctcord.models.line import AlertEvent, LineState
from nyctcord.models.notification import ChannelType, NotificationStatus, PendingNotification
from nyctcord.models.user import ALL_LINES, Subscription, User

__all__ = [
    # Base
    "Base",
    # Line state models
    "LineState",
    "AlertEvent",
    # Subscriber models
    "User",
    "Subscription",
    "ALL_LINES",
    # Notification models
    "PendingNotification",
    "NotificationStatus",
    "ChannelType",
]
