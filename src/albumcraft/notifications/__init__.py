"""Progress notifications: event log, publisher and push channel."""

from .notification_log import NotificationLog
from .notification_service import (
    ChannelSettings,
    NotificationChannel,
    NotificationPublisher,
    Subscription,
)

__all__ = [
    "ChannelSettings",
    "NotificationChannel",
    "NotificationLog",
    "NotificationPublisher",
    "Subscription",
]
