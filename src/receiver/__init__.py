"""
Webmention receiver for blogwatch.

Exports:
    create_app: Flask factory for the POST / webmention endpoint
    Notification: An accepted webmention awaiting verification
    NotificationQueue: Arrival-ordered SQLite queue of notifications
"""

from receiver.notification_queue import Notification, NotificationQueue, QueuedNotification
from receiver.receiver import create_app

__all__ = ["create_app", "Notification", "NotificationQueue", "QueuedNotification"]
