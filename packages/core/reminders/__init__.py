from .due import dispatch_due_reminders, poll_due
from .errors import (
    InvalidTransition,
    ReminderConflict,
    ReminderError,
    ReminderNotFound,
    ReminderValidationError,
)
from .models import LinkedEntity, MarkDoneResult
from .service import (
    cleanup_done_reminders,
    create_reminder,
    delete_reminder,
    dismiss_reminder,
    list_changes,
    list_reminders,
    mark_done,
    normalize_cursor,
    prune_tombstones,
    reminder_stats,
    snooze_reminder,
    update_reminder,
)

__all__ = [
    "InvalidTransition",
    "LinkedEntity",
    "MarkDoneResult",
    "ReminderConflict",
    "ReminderError",
    "ReminderNotFound",
    "ReminderValidationError",
    "cleanup_done_reminders",
    "create_reminder",
    "delete_reminder",
    "dismiss_reminder",
    "dispatch_due_reminders",
    "list_changes",
    "list_reminders",
    "mark_done",
    "normalize_cursor",
    "poll_due",
    "prune_tombstones",
    "reminder_stats",
    "snooze_reminder",
    "update_reminder",
]
