"""Side-channel services used by the record accessors."""

from .notifications import NotificationSink, PendingNotification

__all__ = ["NotificationSink", "PendingNotification"]
