from .broker import NotificationBroker
from .service import (
    NotificationCleanup,
    cleanup_notifications,
    clear_notifications,
    deliver_reminder,
    format_sse,
    list_notifications,
    mark_read,
    notification_payload,
    unread_count,
)

__all__ = [
    "NotificationBroker",
    "NotificationCleanup",
    "cleanup_notifications",
    "clear_notifications",
    "deliver_reminder",
    "format_sse",
    "list_notifications",
    "mark_read",
    "notification_payload",
    "unread_count",
]
