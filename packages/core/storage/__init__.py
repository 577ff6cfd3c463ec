from .base import (
    NotificationState,
    NotificationStore,
    ReminderQuery,
    ReminderState,
    ReminderStore,
)
from .sqlite import SQLiteReminderStore

__all__ = [
    "NotificationState",
    "NotificationStore",
    "ReminderQuery",
    "ReminderState",
    "ReminderStore",
    "SQLiteReminderStore",
]
