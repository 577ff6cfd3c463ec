from __future__ import annotations

import datetime as dt
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query

from apps.api.auth import current_owner
from apps.api.schemas.common import Envelope, Pagination
from apps.api.schemas.reminders import (
    DueRemindersResponse,
    LinkedEntityResponse,
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
from packages.core.reminders.clock import utc_now
from packages.core.reminders.config import db_path
from packages.core.reminders.due import poll_due
from packages.core.reminders.errors import ReminderValidationError
from packages.core.reminders.models import linked_entity
from packages.core.reminders.service import (
    create_reminder,
    delete_reminder,
    dismiss_reminder,
    get_owned_reminder,
    list_changes,
    list_reminders,
    mark_done,
    reminder_stats,
    snooze_reminder,
    update_reminder,
)
from packages.core.storage.base import ReminderState
from packages.core.storage.sqlite import SQLiteReminderStore


router = APIRouter(prefix="/reminders", tags=["reminders"])


def _store() -> SQLiteReminderStore:
    return SQLiteReminderStore(db_path=db_path())


def _to_response(reminder: ReminderState) -> ReminderResponse:
    link = linked_entity(reminder)
    return ReminderResponse(
        id=reminder.id,
        owner_id=reminder.owner_id,
        note=reminder.note,
        description=reminder.description,
        remind_at=reminder.due_at,
        status=reminder.status,
        snoozed_until=reminder.snoozed_until,
        client_id=link.client_id if link else None,
        lead_id=link.lead_id if link else None,
        linked_entity=(
            LinkedEntityResponse(type=link.kind, id=link.entity_id) if link else None
        ),
        priority=reminder.priority,
        type=reminder.type,
        version=reminder.version,
        notified_at=reminder.notified_at,
        created_at=reminder.created_at,
        updated_at=reminder.updated_at,
    )


@router.post("", response_model=Envelope[ReminderResponse], status_code=201)
def create(
    payload: ReminderCreateRequest, owner_id: int = Depends(current_owner)
) -> Envelope[ReminderResponse]:
    reminder = create_reminder(
        _store(),
        owner_id=owner_id,
        note=payload.note,
        remind_at=payload.remind_at,
        priority=payload.priority,
        type=payload.type,
        description=payload.description,
        client_id=payload.client_id,
        lead_id=payload.lead_id,
    )
    return Envelope(data=_to_response(reminder), message="Reminder created")


@router.get("", response_model=ReminderListEnvelope)
def list_all(
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    search: Optional[str] = None,
    due_from: Optional[dt.datetime] = Query(default=None, alias="from"),
    due_to: Optional[dt.datetime] = Query(default=None, alias="to"),
    owner_id: int = Depends(current_owner),
) -> ReminderListEnvelope:
    result = list_reminders(
        _store(),
        owner_id,
        page=page,
        limit=limit,
        status=status,
        search=search,
        due_from=due_from,
        due_to=due_to,
    )
    return ReminderListEnvelope(
        data=[_to_response(reminder) for reminder in result.items],
        pagination=Pagination(
            total=result.total, page=result.page, limit=result.limit, pages=result.pages
        ),
    )


@router.get("/stats", response_model=Envelope[ReminderStatsResponse])
def stats(owner_id: int = Depends(current_owner)) -> Envelope[ReminderStatsResponse]:
    return Envelope(data=ReminderStatsResponse(**reminder_stats(_store(), owner_id)))


@router.get("/due", response_model=Envelope[DueRemindersResponse])
def due(
    claim: bool = True, owner_id: int = Depends(current_owner)
) -> Envelope[DueRemindersResponse]:
    result = poll_due(_store(), owner_id, claim=claim)
    return Envelope(
        data=DueRemindersResponse(
            due=[_to_response(reminder) for reminder in result.due],
            newly_due_ids=[reminder.id for reminder in result.newly_due],
        )
    )


@router.get("/changes", response_model=Envelope[ReminderChangesResponse])
def changes(
    since: Optional[str] = None, owner_id: int = Depends(current_owner)
) -> Envelope[ReminderChangesResponse]:
    result = list_changes(_store(), owner_id, since=since)
    return Envelope(
        data=ReminderChangesResponse(
            reminders=[_to_response(reminder) for reminder in result.reminders],
            deleted_ids=result.deleted_ids,
            cursor=result.cursor,
        )
    )


@router.get("/{reminder_id}", response_model=Envelope[ReminderResponse])
def get(reminder_id: str, owner_id: int = Depends(current_owner)) -> Envelope[ReminderResponse]:
    return Envelope(data=_to_response(get_owned_reminder(_store(), owner_id, reminder_id)))


@router.put("/{reminder_id}", response_model=Envelope[ReminderResponse])
def update(
    reminder_id: str,
    payload: ReminderUpdateRequest,
    owner_id: int = Depends(current_owner),
) -> Envelope[ReminderResponse]:
    updated = update_reminder(
        _store(),
        owner_id,
        reminder_id,
        note=payload.note,
        remind_at=payload.remind_at,
        description=payload.description,
        priority=payload.priority,
        type=payload.type,
        client_id=payload.client_id,
        lead_id=payload.lead_id,
        clear_link=payload.clear_link,
        expected_version=payload.version,
    )
    return Envelope(data=_to_response(updated), message="Reminder updated")


@router.patch("/{reminder_id}/done", response_model=MarkDoneEnvelope)
def done(
    reminder_id: str,
    payload: Optional[VersionRequest] = None,
    owner_id: int = Depends(current_owner),
) -> MarkDoneEnvelope:
    result = mark_done(
        _store(),
        owner_id,
        reminder_id,
        expected_version=payload.version if payload else None,
    )
    message = "Reminder is already marked as done" if result.already_done else "Reminder marked as done"
    return MarkDoneEnvelope(
        data=_to_response(result.reminder),
        message=message,
        already_done=result.already_done,
    )


@router.post("/{reminder_id}/snooze", response_model=Envelope[ReminderResponse])
def snooze(
    reminder_id: str,
    payload: SnoozeRequest,
    owner_id: int = Depends(current_owner),
) -> Envelope[ReminderResponse]:
    if (payload.minutes is None) == (payload.until is None):
        raise ReminderValidationError("Provide exactly one of minutes or until")
    now = utc_now()
    until = payload.until or now + dt.timedelta(minutes=payload.minutes)
    updated = snooze_reminder(
        _store(),
        owner_id,
        reminder_id,
        until=until,
        expected_version=payload.version,
        now=now,
    )
    return Envelope(data=_to_response(updated), message="Reminder snoozed")


@router.post("/{reminder_id}/dismiss", response_model=Envelope[ReminderResponse])
def dismiss(
    reminder_id: str,
    payload: Optional[VersionRequest] = None,
    owner_id: int = Depends(current_owner),
) -> Envelope[ReminderResponse]:
    updated = dismiss_reminder(
        _store(),
        owner_id,
        reminder_id,
        expected_version=payload.version if payload else None,
    )
    return Envelope(data=_to_response(updated), message="Reminder dismissed")


@router.delete("/{reminder_id}", response_model=Envelope[Dict[str, str]])
def delete(
    reminder_id: str, owner_id: int = Depends(current_owner)
) -> Envelope[Dict[str, str]]:
    delete_reminder(_store(), owner_id, reminder_id)
    return Envelope(
        data={"status": "deleted", "id": reminder_id},
        message="Reminder deleted successfully",
    )
