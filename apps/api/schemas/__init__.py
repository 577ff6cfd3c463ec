from .common import Envelope, ErrorEnvelope, Pagination
from .notifications import (
    ClearAllResponse,
    MarkReadRequest,
    MarkReadResponse,
    NotificationListEnvelope,
    NotificationResponse,
    UnreadCountResponse,
)
from .reminders import (
    DueRemindersResponse,
    MarkDoneEnvelope,
    ReminderChangesResponse,
    ReminderCreateRequest,
    ReminderListEnvelope,
    ReminderResponse,
    ReminderStatsResponse,
    ReminderUpdateRequest,
    SnoozeRequest,
    VersionRequest,
)

__all__ = [
    "ClearAllResponse",
    "DueRemindersResponse",
    "Envelope",
    "ErrorEnvelope",
    "MarkDoneEnvelope",
    "MarkReadRequest",
    "MarkReadResponse",
    "NotificationListEnvelope",
    "NotificationResponse",
    "Pagination",
    "ReminderChangesResponse",
    "ReminderCreateRequest",
    "ReminderListEnvelope",
    "ReminderResponse",
    "ReminderStatsResponse",
    "ReminderUpdateRequest",
    "SnoozeRequest",
    "UnreadCountResponse",
    "VersionRequest",
]
