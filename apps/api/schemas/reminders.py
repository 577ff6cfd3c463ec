from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .common import Envelope, Pagination


Priority = Literal["low", "medium", "high"]


class ReminderCreateRequest(BaseModel):
    note: str
    remind_at: datetime
    priority: Optional[Priority] = None
    type: Optional[str] = None
    description: Optional[str] = None
    client_id: Optional[int] = None
    lead_id: Optional[int] = None


class ReminderUpdateRequest(BaseModel):
    note: Optional[str] = None
    remind_at: Optional[datetime] = None
    priority: Optional[Priority] = None
    type: Optional[str] = None
    description: Optional[str] = None
    client_id: Optional[int] = None
    lead_id: Optional[int] = None
    clear_link: bool = False
    version: Optional[int] = None


class VersionRequest(BaseModel):
    version: Optional[int] = None


class SnoozeRequest(BaseModel):
    minutes: Optional[int] = Field(default=None, ge=1, le=7 * 24 * 60)
    until: Optional[datetime] = None
    version: Optional[int] = None


class LinkedEntityResponse(BaseModel):
    type: str
    id: int


class ReminderResponse(BaseModel):
    id: str
    owner_id: int
    note: str
    description: Optional[str]
    remind_at: str
    status: str
    snoozed_until: Optional[str]
    client_id: Optional[int]
    lead_id: Optional[int]
    linked_entity: Optional[LinkedEntityResponse]
    priority: str
    type: str
    version: int
    notified_at: Optional[str]
    created_at: str
    updated_at: str


class ReminderStatsResponse(BaseModel):
    total: int
    pending: int
    snoozed: int
    done: int
    completed: int
    dismissed: int
    done_today: int
    overdue: int
    upcoming: int


class DueRemindersResponse(BaseModel):
    due: List[ReminderResponse]
    newly_due_ids: List[str]


class ReminderChangesResponse(BaseModel):
    reminders: List[ReminderResponse]
    deleted_ids: List[str]
    cursor: str


class ReminderListEnvelope(Envelope[List[ReminderResponse]]):
    pagination: Pagination


class MarkDoneEnvelope(Envelope[ReminderResponse]):
    already_done: bool = False
