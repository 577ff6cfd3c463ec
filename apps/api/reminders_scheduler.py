from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from apps.api.notifications import get_broker, reminder_deliverer
from apps.api.observability import tracer
from packages.core.notifications.service import NotificationCleanup, cleanup_notifications
from packages.core.reminders.config import ReminderSettings
from packages.core.reminders.due import dispatch_due_reminders
from packages.core.reminders.models import DispatchReport
from packages.core.reminders.service import (
    cleanup_done_reminders,
    prune_tombstones,
    reminder_stats,
)
from packages.core.storage.sqlite import SQLiteReminderStore


logger = logging.getLogger("crm_reminders.scheduler")


def process_due_reminders(
    store: SQLiteReminderStore, settings: ReminderSettings
) -> Optional[DispatchReport]:
    with tracer().start_as_current_span("reminders.dispatch") as span:
        try:
            report = dispatch_due_reminders(
                store, reminder_deliverer(store, get_broker()), settings
            )
        except Exception as exc:
            span.record_exception(exc)
            logger.exception("reminders_dispatch_failed error=%s", exc)
            return None
        span.set_attribute("reminders.claimed", report.claimed)
        span.set_attribute("reminders.delivered", report.delivered)
        span.set_attribute("reminders.failed", report.failed)
        if report.claimed:
            stats = reminder_stats(store, owner_id=None)
            logger.info(
                "reminders_dispatched claimed=%s delivered=%s failed=%s exhausted=%s "
                "pending_total=%s overdue=%s done_today=%s",
                report.claimed,
                report.delivered,
                report.failed,
                report.exhausted,
                stats["pending"] + stats["snoozed"],
                stats["overdue"],
                stats["done_today"],
            )
        return report


def cleanup_reminders(store: SQLiteReminderStore, settings: ReminderSettings) -> int:
    with tracer().start_as_current_span("reminders.cleanup"):
        try:
            deleted = cleanup_done_reminders(store, settings.cleanup_after_days)
            prune_tombstones(store, settings.tombstone_retention_days)
            return deleted
        except Exception as exc:
            logger.exception("reminders_cleanup_failed error=%s", exc)
            return 0


def cleanup_notifications_job(
    store: SQLiteReminderStore, settings: ReminderSettings
) -> Optional[NotificationCleanup]:
    with tracer().start_as_current_span("notifications.cleanup"):
        try:
            return cleanup_notifications(
                store,
                retention_days=settings.notification_retention_days,
                read_retention_days=settings.notification_read_retention_days,
                max_rows=settings.max_notifications,
            )
        except Exception as exc:
            logger.exception("notifications_cleanup_failed error=%s", exc)
            return None


def start_scheduler(
    store: SQLiteReminderStore, settings: ReminderSettings
) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        process_due_reminders,
        "interval",
        seconds=settings.poll_seconds,
        args=[store, settings],
        id="reminders",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        next_run_time=dt.datetime.now(dt.timezone.utc),
    )
    scheduler.add_job(
        cleanup_reminders,
        "cron",
        hour=3,
        timezone=settings.timezone,
        args=[store, settings],
        id="reminders_cleanup",
        replace_existing=True,
    )
    scheduler.add_job(
        cleanup_notifications_job,
        "cron",
        hour=3,
        minute=15,
        timezone=settings.timezone,
        args=[store, settings],
        id="notifications_cleanup",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        "reminders_scheduler_started poll_seconds=%s cleanup_after_days=%s",
        settings.poll_seconds,
        settings.cleanup_after_days,
    )
    return scheduler
