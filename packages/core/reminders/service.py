from __future__ import annotations

import datetime as dt
import logging
import uuid
import zoneinfo
from dataclasses import replace
from typing import Dict, Optional

from ..storage.base import ReminderQuery, ReminderState, ReminderStore
from .clock import as_utc, parse_iso, to_iso, utc_now
from .config import load_reminder_settings
from .errors import ReminderConflict, ReminderNotFound, ReminderValidationError
from .models import (
    CLIENT,
    DEFAULT_PRIORITY,
    DEFAULT_TYPE,
    DISMISSED,
    DONE,
    LEAD,
    NOTE_MAX_LENGTH,
    PENDING,
    PRIORITIES,
    SNOOZED,
    STATUSES,
    ChangeSet,
    LinkedEntity,
    MarkDoneResult,
    ReminderPage,
)
from .state import validate_transition


logger = logging.getLogger("crm_reminders.reminders")

MAX_PAGE_SIZE = 100
_MARK_DONE_RETRIES = 3


def _clean_note(note: Optional[str]) -> str:
    cleaned = (note or "").strip()
    if not cleaned:
        raise ReminderValidationError("Note cannot be empty")
    if len(cleaned) > NOTE_MAX_LENGTH:
        raise ReminderValidationError(
            f"Note must be between 1 and {NOTE_MAX_LENGTH} characters"
        )
    return cleaned


def _clean_priority(priority: Optional[str]) -> str:
    if priority is None:
        return DEFAULT_PRIORITY
    value = priority.strip().lower()
    if value not in PRIORITIES:
        raise ReminderValidationError(
            f"Priority must be one of: {', '.join(PRIORITIES)}"
        )
    return value


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _future_time(value: dt.datetime, now: dt.datetime, field_name: str) -> str:
    value = as_utc(value)
    if value <= now:
        raise ReminderValidationError(f"{field_name} must be in the future")
    return to_iso(value)


def resolve_link(
    client_id: Optional[int], lead_id: Optional[int]
) -> Optional[LinkedEntity]:
    if client_id is not None and lead_id is not None:
        raise ReminderValidationError(
            "A reminder can be linked to a client or a lead, not both"
        )
    if client_id is not None:
        return LinkedEntity(kind=CLIENT, entity_id=int(client_id))
    if lead_id is not None:
        return LinkedEntity(kind=LEAD, entity_id=int(lead_id))
    return None


def _write(store: ReminderStore, current: ReminderState, updated: ReminderState) -> ReminderState:
    written = replace(updated, version=current.version + 1)
    if not store.update_reminder(written, expected_version=current.version):
        latest = store.get_reminder(current.id)
        if latest is None:
            raise ReminderNotFound(current.id)
        raise ReminderConflict(current.id, current.version, latest.version)
    return written


def _check_version(reminder: ReminderState, expected_version: Optional[int]) -> None:
    if expected_version is not None and expected_version != reminder.version:
        raise ReminderConflict(reminder.id, expected_version, reminder.version)


def _reset_delivery(reminder: ReminderState) -> ReminderState:
    return replace(
        reminder,
        notified_at=None,
        dispatched_at=None,
        delivery_attempts=0,
        next_delivery_at=None,
    )


def get_owned_reminder(
    store: ReminderStore, owner_id: int, reminder_id: str
) -> ReminderState:
    # Other owners' reminders are reported as missing.
    reminder = store.get_reminder(reminder_id)
    if reminder is None or reminder.owner_id != owner_id:
        raise ReminderNotFound(reminder_id)
    return reminder


def create_reminder(
    store: ReminderStore,
    owner_id: int,
    note: str,
    remind_at: dt.datetime,
    priority: Optional[str] = None,
    type: Optional[str] = None,
    description: Optional[str] = None,
    client_id: Optional[int] = None,
    lead_id: Optional[int] = None,
    now: Optional[dt.datetime] = None,
) -> ReminderState:
    now = as_utc(now or utc_now())
    link = resolve_link(client_id, lead_id)
    reminder = ReminderState(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        note=_clean_note(note),
        description=_clean_optional(description),
        due_at=_future_time(remind_at, now, "remind_at"),
        status=PENDING,
        snoozed_until=None,
        link_type=link.kind if link else None,
        link_id=link.entity_id if link else None,
        priority=_clean_priority(priority),
        type=_clean_optional(type) or DEFAULT_TYPE,
        version=1,
        notified_at=None,
        dispatched_at=None,
        delivery_attempts=0,
        next_delivery_at=None,
        created_at=to_iso(now),
        updated_at=to_iso(now),
    )
    store.create_reminder(reminder)
    logger.info(
        "reminder_created id=%s owner=%s due_at=%s", reminder.id, owner_id, reminder.due_at
    )
    return reminder


def update_reminder(
    store: ReminderStore,
    owner_id: int,
    reminder_id: str,
    note: Optional[str] = None,
    remind_at: Optional[dt.datetime] = None,
    description: Optional[str] = None,
    priority: Optional[str] = None,
    type: Optional[str] = None,
    client_id: Optional[int] = None,
    lead_id: Optional[int] = None,
    clear_link: bool = False,
    expected_version: Optional[int] = None,
    now: Optional[dt.datetime] = None,
) -> ReminderState:
    """Edit content, time or links. Status only changes when a snoozed reminder is re-timed."""
    now = as_utc(now or utc_now())
    reminder = get_owned_reminder(store, owner_id, reminder_id)
    _check_version(reminder, expected_version)

    updated = replace(reminder, updated_at=to_iso(now))
    if note is not None:
        updated = replace(updated, note=_clean_note(note))
    if description is not None:
        updated = replace(updated, description=_clean_optional(description))
    if priority is not None:
        updated = replace(updated, priority=_clean_priority(priority))
    if type is not None:
        updated = replace(updated, type=_clean_optional(type) or DEFAULT_TYPE)

    if clear_link and (client_id is not None or lead_id is not None):
        raise ReminderValidationError("clear_link cannot be combined with client_id or lead_id")
    if clear_link:
        updated = replace(updated, link_type=None, link_id=None)
    else:
        link = resolve_link(client_id, lead_id)
        if link is not None:
            updated = replace(updated, link_type=link.kind, link_id=link.entity_id)

    if remind_at is not None:
        due_at = _future_time(remind_at, now, "remind_at")
        if reminder.status == SNOOZED:
            validate_transition(reminder.id, SNOOZED, PENDING)
            updated = replace(updated, status=PENDING, snoozed_until=None)
        updated = _reset_delivery(replace(updated, due_at=due_at))

    return _write(store, reminder, updated)


def mark_done(
    store: ReminderStore,
    owner_id: int,
    reminder_id: str,
    expected_version: Optional[int] = None,
    now: Optional[dt.datetime] = None,
) -> MarkDoneResult:
    """Complete a reminder. Completing an already done reminder is not an error."""
    now = as_utc(now or utc_now())
    attempted_version = expected_version
    for _ in range(_MARK_DONE_RETRIES):
        reminder = get_owned_reminder(store, owner_id, reminder_id)
        if reminder.status == DONE:
            logger.info("reminder_already_done id=%s owner=%s", reminder.id, owner_id)
            return MarkDoneResult(reminder=reminder, already_done=True)
        _check_version(reminder, expected_version)
        validate_transition(reminder.id, reminder.status, DONE)
        attempted_version = reminder.version
        try:
            updated = _write(
                store,
                reminder,
                replace(reminder, status=DONE, snoozed_until=None, updated_at=to_iso(now)),
            )
        except ReminderConflict:
            if expected_version is not None:
                # The caller's version is stale unless the winner completed it.
                latest = get_owned_reminder(store, owner_id, reminder_id)
                if latest.status == DONE:
                    return MarkDoneResult(reminder=latest, already_done=True)
                raise
            continue
        logger.info("reminder_done id=%s owner=%s", updated.id, owner_id)
        return MarkDoneResult(reminder=updated, already_done=False)
    latest = get_owned_reminder(store, owner_id, reminder_id)
    if latest.status == DONE:
        return MarkDoneResult(reminder=latest, already_done=True)
    raise ReminderConflict(reminder_id, attempted_version, latest.version)


def snooze_reminder(
    store: ReminderStore,
    owner_id: int,
    reminder_id: str,
    until: dt.datetime,
    expected_version: Optional[int] = None,
    now: Optional[dt.datetime] = None,
) -> ReminderState:
    now = as_utc(now or utc_now())
    reminder = get_owned_reminder(store, owner_id, reminder_id)
    _check_version(reminder, expected_version)
    validate_transition(reminder.id, reminder.status, SNOOZED)
    snoozed_until = _future_time(until, now, "until")
    updated = _write(
        store,
        reminder,
        _reset_delivery(
            replace(
                reminder,
                status=SNOOZED,
                snoozed_until=snoozed_until,
                updated_at=to_iso(now),
            )
        ),
    )
    logger.info(
        "reminder_snoozed id=%s owner=%s until=%s", reminder.id, owner_id, snoozed_until
    )
    return updated


def dismiss_reminder(
    store: ReminderStore,
    owner_id: int,
    reminder_id: str,
    expected_version: Optional[int] = None,
    now: Optional[dt.datetime] = None,
) -> ReminderState:
    now = as_utc(now or utc_now())
    reminder = get_owned_reminder(store, owner_id, reminder_id)
    if reminder.status == DISMISSED:
        return reminder
    _check_version(reminder, expected_version)
    validate_transition(reminder.id, reminder.status, DISMISSED)
    updated = _write(
        store,
        reminder,
        replace(reminder, status=DISMISSED, snoozed_until=None, updated_at=to_iso(now)),
    )
    logger.info("reminder_dismissed id=%s owner=%s", reminder.id, owner_id)
    return updated


def delete_reminder(
    store: ReminderStore,
    owner_id: int,
    reminder_id: str,
    now: Optional[dt.datetime] = None,
) -> None:
    now = as_utc(now or utc_now())
    reminder = get_owned_reminder(store, owner_id, reminder_id)
    if not store.delete_reminder(reminder.id, deleted_at=to_iso(now)):
        raise ReminderNotFound(reminder_id)
    logger.info("reminder_deleted id=%s owner=%s", reminder.id, owner_id)


def list_reminders(
    store: ReminderStore,
    owner_id: int,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    search: Optional[str] = None,
    due_from: Optional[dt.datetime] = None,
    due_to: Optional[dt.datetime] = None,
) -> ReminderPage:
    if page < 1:
        raise ReminderValidationError("page must be a positive integer")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ReminderValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if status is not None and status not in STATUSES:
        raise ReminderValidationError(f"Status must be one of: {', '.join(STATUSES)}")
    query = ReminderQuery(
        owner_id=owner_id,
        status=status,
        search=_clean_optional(search),
        due_from=to_iso(due_from),
        due_to=to_iso(due_to),
        limit=limit,
        offset=(page - 1) * limit,
    )
    items, total = store.list_reminders(query)
    return ReminderPage(items=items, total=total, page=page, limit=limit)


def reminder_stats(
    store: ReminderStore,
    owner_id: Optional[int],
    now: Optional[dt.datetime] = None,
    timezone: Optional[str] = None,
) -> Dict[str, int]:
    """Status counts for one owner, or for every owner when owner_id is None.

    Overdue means still open with an effective due time strictly before now.
    `done_today` counts completions since local midnight in `timezone`
    (the configured reminders timezone by default).
    """
    now = as_utc(now or utc_now())
    zone = zoneinfo.ZoneInfo(timezone or load_reminder_settings().timezone)
    day_start = now.astimezone(zone).replace(hour=0, minute=0, second=0, microsecond=0)
    counts = store.reminder_counts(owner_id, to_iso(now), to_iso(day_start))
    counts["completed"] = counts["done"]
    return counts


def normalize_cursor(since: Optional[str]) -> str:
    """Parse a sync cursor into the stored timestamp form. Empty means from the start."""
    if since is None or not since.strip():
        return ""
    try:
        return to_iso(parse_iso(since))
    except ValueError as exc:
        raise ReminderValidationError(
            f"since must be an ISO-8601 timestamp, got {since!r}"
        ) from exc


def list_changes(
    store: ReminderStore, owner_id: int, since: Optional[str] = None
) -> ChangeSet:
    cursor = normalize_cursor(since)
    reminders = store.list_changed_reminders(owner_id, cursor)
    deleted = store.list_deleted_since(owner_id, cursor)
    stamps = [cursor] + [r.updated_at for r in reminders] + [d[1] for d in deleted]
    return ChangeSet(
        reminders=reminders,
        deleted_ids=[reminder_id for reminder_id, _ in deleted],
        cursor=max(stamps),
    )


def cleanup_done_reminders(
    store: ReminderStore, older_than_days: int, now: Optional[dt.datetime] = None
) -> int:
    if older_than_days <= 0:
        return 0
    now = as_utc(now or utc_now())
    cutoff = to_iso(now - dt.timedelta(days=older_than_days))
    deleted = 0
    for reminder in store.list_stale_done(cutoff):
        if store.delete_reminder(reminder.id, deleted_at=to_iso(now)):
            deleted += 1
    if deleted:
        logger.info("reminders_cleanup deleted=%s cutoff=%s", deleted, cutoff)
    return deleted


def prune_tombstones(
    store: ReminderStore, older_than_days: int, now: Optional[dt.datetime] = None
) -> int:
    """Forget deletions older than the window.

    A client syncing from a cursor older than the window misses those deletions
    and has to reload its full list.
    """
    if older_than_days <= 0:
        return 0
    now = as_utc(now or utc_now())
    pruned = store.prune_tombstones(to_iso(now - dt.timedelta(days=older_than_days)))
    if pruned:
        logger.info("reminder_tombstones_pruned count=%s", pruned)
    return pruned
