from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .common import Envelope, Pagination


class NotificationResponse(BaseModel):
    id: int
    reminder_id: Optional[str]
    title: str
    message: str
    priority: str
    is_read: bool
    read_at: Optional[str]
    created_at: str


class MarkReadRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)


class MarkReadResponse(BaseModel):
    updated_count: int


class UnreadCountResponse(BaseModel):
    count: int


class ClearAllResponse(BaseModel):
    deleted_count: int


class NotificationListEnvelope(Envelope[List[NotificationResponse]]):
    pagination: Pagination
