from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..reminders.clock import as_utc, to_iso, utc_now
from ..reminders.errors import ReminderValidationError
from ..storage.base import NotificationState, NotificationStore, ReminderState
from .broker import NotificationBroker


logger = logging.getLogger("crm_reminders.notifications")

REMINDER_TITLE = "Reminder"


def notification_payload(notification: NotificationState) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "type": "reminder",
        "reminder_id": notification.reminder_id,
        "title": notification.title,
        "message": notification.message,
        "priority": notification.priority,
        "is_read": notification.is_read,
        "created_at": notification.created_at,
    }


def format_sse(event: str, data: Dict[str, Any]) -> str:
    body = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    return f"event: {event}\ndata: {body}\n\n"


def deliver_reminder(
    store: NotificationStore,
    broker: NotificationBroker,
    reminder: ReminderState,
    now: Optional[dt.datetime] = None,
) -> NotificationState:
    """Persist a notification for a due reminder and push it to the owner's live streams."""
    now = as_utc(now or utc_now())
    notification = store.create_notification(
        NotificationState(
            id=None,
            owner_id=reminder.owner_id,
            reminder_id=reminder.id,
            title=REMINDER_TITLE,
            message=reminder.note,
            priority=reminder.priority,
            is_read=False,
            read_at=None,
            created_at=to_iso(now),
        )
    )
    # A failed live push does not fail the delivery.
    try:
        reached = broker.publish(reminder.owner_id, notification_payload(notification))
    except Exception as exc:
        reached = 0
        logger.exception(
            "notification_publish_failed id=%s owner=%s error=%s",
            notification.id,
            reminder.owner_id,
            exc,
        )
    logger.info(
        "notification_sent id=%s reminder=%s owner=%s live_streams=%s",
        notification.id,
        reminder.id,
        reminder.owner_id,
        reached,
    )
    return notification


def list_notifications(
    store: NotificationStore,
    owner_id: int,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
) -> Tuple[List[NotificationState], int]:
    if page < 1:
        raise ReminderValidationError("page must be a positive integer")
    if limit < 1 or limit > 100:
        raise ReminderValidationError("limit must be between 1 and 100")
    return store.list_notifications(
        owner_id, unread_only=unread_only, limit=limit, offset=(page - 1) * limit
    )


def mark_read(
    store: NotificationStore,
    owner_id: int,
    ids: List[int],
    now: Optional[dt.datetime] = None,
) -> int:
    if not ids:
        raise ReminderValidationError("ids must be a non-empty list")
    now = as_utc(now or utc_now())
    return store.mark_notifications_read(owner_id, ids, to_iso(now))


def unread_count(store: NotificationStore, owner_id: int) -> int:
    return store.count_unread_notifications(owner_id)


def clear_notifications(store: NotificationStore, owner_id: int) -> int:
    deleted = store.clear_notifications(owner_id)
    logger.info("notifications_cleared owner=%s count=%s", owner_id, deleted)
    return deleted


@dataclass(frozen=True)
class NotificationCleanup:
    deleted_old: int
    deleted_read: int
    deleted_excess: int


def cleanup_notifications(
    store: NotificationStore,
    retention_days: int,
    read_retention_days: int,
    max_rows: int,
    now: Optional[dt.datetime] = None,
) -> NotificationCleanup:
    """Apply notification retention.

    Deletes everything older than `retention_days`, read notifications older
    than `read_retention_days`, then the oldest rows beyond `max_rows`.
    A zero value disables that rule.
    """
    now = as_utc(now or utc_now())
    deleted_old = deleted_read = deleted_excess = 0
    if retention_days > 0:
        deleted_old = store.delete_notifications(
            to_iso(now - dt.timedelta(days=retention_days))
        )
    if read_retention_days > 0:
        deleted_read = store.delete_notifications(
            to_iso(now - dt.timedelta(days=read_retention_days)), read_only=True
        )
    if max_rows > 0:
        deleted_excess = store.trim_notifications(max_rows)
    result = NotificationCleanup(deleted_old, deleted_read, deleted_excess)
    logger.info(
        "notifications_cleanup deleted_old=%s deleted_read=%s deleted_excess=%s",
        deleted_old,
        deleted_read,
        deleted_excess,
    )
    return result
