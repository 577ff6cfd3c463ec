from __future__ import annotations

import asyncio
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from apps.api.auth import current_owner, stream_owner
from apps.api.notifications import get_broker
from apps.api.schemas.common import Envelope, Pagination
from apps.api.schemas.notifications import (
    ClearAllResponse,
    MarkReadRequest,
    MarkReadResponse,
    NotificationListEnvelope,
    NotificationResponse,
    UnreadCountResponse,
)
from packages.core.notifications.broker import NotificationBroker
from packages.core.notifications.service import (
    clear_notifications,
    format_sse,
    list_notifications,
    mark_read,
    unread_count,
)
from packages.core.reminders.config import db_path, load_reminder_settings
from packages.core.storage.base import NotificationState
from packages.core.storage.sqlite import SQLiteReminderStore


router = APIRouter(prefix="/notifications", tags=["notifications"])


def _store() -> SQLiteReminderStore:
    return SQLiteReminderStore(db_path=db_path())


def _to_response(notification: NotificationState) -> NotificationResponse:
    return NotificationResponse(
        id=notification.id,
        reminder_id=notification.reminder_id,
        title=notification.title,
        message=notification.message,
        priority=notification.priority,
        is_read=notification.is_read,
        read_at=notification.read_at,
        created_at=notification.created_at,
    )


@router.get("", response_model=NotificationListEnvelope)
def list_all(
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
    owner_id: int = Depends(current_owner),
) -> NotificationListEnvelope:
    items, total = list_notifications(
        _store(), owner_id, page=page, limit=limit, unread_only=unread_only
    )
    return NotificationListEnvelope(
        data=[_to_response(item) for item in items],
        pagination=Pagination(
            total=total, page=page, limit=limit, pages=(total + limit - 1) // limit
        ),
    )


@router.get("/unread-count", response_model=Envelope[UnreadCountResponse])
def count_unread(owner_id: int = Depends(current_owner)) -> Envelope[UnreadCountResponse]:
    return Envelope(data=UnreadCountResponse(count=unread_count(_store(), owner_id)))


@router.post("/read", response_model=Envelope[MarkReadResponse])
def read(
    payload: MarkReadRequest, owner_id: int = Depends(current_owner)
) -> Envelope[MarkReadResponse]:
    updated = mark_read(_store(), owner_id, payload.ids)
    return Envelope(data=MarkReadResponse(updated_count=updated))


@router.delete("/clear-all", response_model=Envelope[ClearAllResponse])
def clear_all(owner_id: int = Depends(current_owner)) -> Envelope[ClearAllResponse]:
    deleted = clear_notifications(_store(), owner_id)
    return Envelope(
        data=ClearAllResponse(deleted_count=deleted),
        message="All notifications cleared successfully",
    )


async def event_stream(
    request: Request,
    owner_id: int,
    broker: NotificationBroker,
    heartbeat_seconds: float,
) -> AsyncIterator[str]:
    queue = broker.subscribe(owner_id)
    try:
        yield format_sse("connected", {"owner_id": owner_id})
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield ": heartbeat\n\n"
                continue
            yield format_sse("notification", event)
    finally:
        broker.unsubscribe(owner_id, queue)


@router.get("/stream")
async def stream(
    request: Request,
    owner_id: int = Depends(stream_owner),
    broker: NotificationBroker = Depends(get_broker),
) -> StreamingResponse:
    settings = load_reminder_settings()
    return StreamingResponse(
        event_stream(request, owner_id, broker, settings.heartbeat_seconds),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
