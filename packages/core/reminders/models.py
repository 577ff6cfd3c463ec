from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..storage.base import ReminderState


PENDING = "pending"
SNOOZED = "snoozed"
DONE = "done"
DISMISSED = "dismissed"

STATUSES = (PENDING, SNOOZED, DONE, DISMISSED)
OPEN_STATUSES = (PENDING, SNOOZED)

PRIORITIES = ("low", "medium", "high")
DEFAULT_PRIORITY = "medium"
DEFAULT_TYPE = "general"

CLIENT = "client"
LEAD = "lead"

NOTE_MAX_LENGTH = 1000


@dataclass(frozen=True)
class LinkedEntity:
    kind: str
    entity_id: int

    @property
    def client_id(self) -> Optional[int]:
        return self.entity_id if self.kind == CLIENT else None

    @property
    def lead_id(self) -> Optional[int]:
        return self.entity_id if self.kind == LEAD else None


def linked_entity(reminder: ReminderState) -> Optional[LinkedEntity]:
    if reminder.link_type is None or reminder.link_id is None:
        return None
    return LinkedEntity(kind=reminder.link_type, entity_id=reminder.link_id)


def effective_due_at(reminder: ReminderState) -> str:
    if reminder.status == SNOOZED and reminder.snoozed_until:
        return reminder.snoozed_until
    return reminder.due_at


@dataclass(frozen=True)
class MarkDoneResult:
    reminder: ReminderState
    already_done: bool


@dataclass(frozen=True)
class DuePoll:
    due: List[ReminderState]
    newly_due: List[ReminderState]


@dataclass(frozen=True)
class ReminderPage:
    items: List[ReminderState]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


@dataclass(frozen=True)
class ChangeSet:
    reminders: List[ReminderState]
    deleted_ids: List[str]
    cursor: str


@dataclass
class DispatchReport:
    claimed: int = 0
    delivered: int = 0
    failed: int = 0
    exhausted: int = 0
    errors: Dict[str, str] = field(default_factory=dict)
