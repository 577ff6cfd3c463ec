"""Due-set computation and exactly-once claiming of due reminders.

A reminder is due when it is pending or snoozed and its effective due time
(snooze time when snoozed, otherwise due_at) has passed. Each due transition
is handed out once to each consumer. Session polls share one claim: the
first poll to take it reports the reminder as newly due, later polls still
see it in the due set. The notification dispatcher has its own claim, so a
notification is recorded whether or not a session saw the reminder first.
"""

from __future__ import annotations

import datetime as dt
import logging
import zoneinfo
from typing import Callable, List, Optional

from ..storage.base import ReminderState, ReminderStore
from .clock import as_utc, parse_iso, to_iso, utc_now
from .config import ReminderSettings
from .models import DispatchReport, DuePoll, effective_due_at


logger = logging.getLogger("crm_reminders.due")

# Seconds to wait before retrying a failed delivery, indexed by attempt.
RETRY_DELAYS = [60, 300, 900, 3600]


def retry_delay(attempts: int) -> int:
    return RETRY_DELAYS[min(max(attempts, 1), len(RETRY_DELAYS)) - 1]


def due_reminders(
    store: ReminderStore, owner_id: Optional[int] = None, now: Optional[dt.datetime] = None
) -> List[ReminderState]:
    now = as_utc(now or utc_now())
    return store.list_due_reminders(to_iso(now), owner_id=owner_id)


def poll_due(
    store: ReminderStore,
    owner_id: int,
    now: Optional[dt.datetime] = None,
    claim: bool = True,
) -> DuePoll:
    now = as_utc(now or utc_now())
    due = due_reminders(store, owner_id=owner_id, now=now)
    if not claim:
        return DuePoll(due=due, newly_due=[])
    now_iso = to_iso(now)
    newly_due = [
        reminder for reminder in due if store.claim_delivery(reminder.id, now_iso)
    ]
    return DuePoll(due=due, newly_due=newly_due)


def in_working_hours(settings: ReminderSettings, now: Optional[dt.datetime] = None) -> bool:
    if not settings.working_hours_enabled:
        return True
    now = as_utc(now or utc_now())
    local_hour = now.astimezone(zoneinfo.ZoneInfo(settings.timezone)).hour
    return settings.working_hours_start <= local_hour <= settings.working_hours_end


def dispatch_due_reminders(
    store: ReminderStore,
    deliver: Callable[[ReminderState], None],
    settings: ReminderSettings,
    now: Optional[dt.datetime] = None,
) -> DispatchReport:
    """Claim every undispatched due reminder across owners and hand it to `deliver`.

    A failed delivery releases the dispatch claim and schedules a retry; after
    `max_delivery_attempts` failures the claim is kept and the reminder is
    no longer retried.
    """
    now = as_utc(now or utc_now())
    report = DispatchReport()
    if not in_working_hours(settings, now):
        logger.info("reminders_dispatch_skipped reason=outside_working_hours")
        return report

    now_iso = to_iso(now)
    for reminder in store.list_due_reminders(now_iso):
        if not store.claim_dispatch(reminder.id, now_iso):
            continue
        report.claimed += 1
        try:
            deliver(reminder)
        except Exception as exc:
            attempts = reminder.delivery_attempts + 1
            report.errors[reminder.id] = str(exc)
            if attempts >= settings.max_delivery_attempts:
                report.exhausted += 1
                store.record_delivery_failure(reminder.id, attempts, retry_at=None)
                logger.error(
                    "reminder_delivery_exhausted id=%s attempts=%s error=%s",
                    reminder.id,
                    attempts,
                    exc,
                )
                continue
            report.failed += 1
            retry_at = to_iso(now + dt.timedelta(seconds=retry_delay(attempts)))
            store.record_delivery_failure(reminder.id, attempts, retry_at=retry_at)
            logger.exception(
                "reminder_delivery_failed id=%s attempts=%s retry_at=%s",
                reminder.id,
                attempts,
                retry_at,
            )
            continue
        report.delivered += 1
        delay_minutes = int((now - parse_iso(effective_due_at(reminder))).total_seconds() // 60)
        logger.info(
            "reminder_delivered id=%s owner=%s priority=%s delay_minutes=%s",
            reminder.id,
            reminder.owner_id,
            reminder.priority,
            delay_minutes,
        )
    return report
