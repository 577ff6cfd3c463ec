from __future__ import annotations

from typing import Callable

from packages.core.notifications.broker import NotificationBroker
from packages.core.notifications.service import deliver_reminder
from packages.core.storage.base import ReminderState
from packages.core.storage.sqlite import SQLiteReminderStore


BROKER = NotificationBroker()


def get_broker() -> NotificationBroker:
    return BROKER


def reminder_deliverer(
    store: SQLiteReminderStore, broker: NotificationBroker
) -> Callable[[ReminderState], None]:
    def _deliver(reminder: ReminderState) -> None:
        deliver_reminder(store, broker, reminder)

    return _deliver
