from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable


@dataclass(frozen=True)
class ReminderState:
    id: str
    owner_id: int
    note: str
    description: Optional[str]
    due_at: str
    status: str
    snoozed_until: Optional[str]
    link_type: Optional[str]
    link_id: Optional[int]
    priority: str
    type: str
    version: int
    notified_at: Optional[str]
    dispatched_at: Optional[str]
    delivery_attempts: int
    next_delivery_at: Optional[str]
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class ReminderQuery:
    owner_id: int
    status: Optional[str] = None
    search: Optional[str] = None
    due_from: Optional[str] = None
    due_to: Optional[str] = None
    limit: int = 10
    offset: int = 0


@runtime_checkable
class ReminderStore(Protocol):
    def create_reminder(self, reminder: ReminderState) -> None:
        """Persist a new reminder."""

    def update_reminder(self, reminder: ReminderState, expected_version: int) -> bool:
        """Write reminder if the stored version still matches. Returns True if written."""

    def get_reminder(self, reminder_id: str) -> Optional[ReminderState]:
        """Return reminder by id."""

    def list_reminders(self, query: ReminderQuery) -> Tuple[List[ReminderState], int]:
        """Return a page of reminders and the total matching count."""

    def delete_reminder(self, reminder_id: str, deleted_at: str) -> bool:
        """Hard delete a reminder and record a tombstone. Returns True if deleted."""

    def list_due_reminders(
        self, now_iso: str, owner_id: Optional[int] = None
    ) -> List[ReminderState]:
        """List reminders whose effective due time has passed."""

    def claim_delivery(self, reminder_id: str, now_iso: str) -> bool:
        """Mark the current due transition as seen by a session poll. Returns True for the first caller."""

    def claim_dispatch(self, reminder_id: str, now_iso: str) -> bool:
        """Mark the current due transition as taken by the notification dispatcher."""

    def record_delivery_failure(
        self, reminder_id: str, attempts: int, retry_at: Optional[str]
    ) -> None:
        """Record a failed dispatch. Releases the dispatch claim unless retry_at is None."""

    def reminder_counts(
        self, owner_id: Optional[int], now_iso: str, day_start_iso: str
    ) -> Dict[str, int]:
        """Aggregate status counts for an owner, or every owner when None."""

    def list_changed_reminders(self, owner_id: int, since: str) -> List[ReminderState]:
        """List reminders updated after the cursor."""

    def list_deleted_since(self, owner_id: int, since: str) -> List[Tuple[str, str]]:
        """List (reminder_id, deleted_at) tombstones after the cursor."""

    def list_stale_done(self, before_iso: str) -> List[ReminderState]:
        """List done reminders last updated before the cutoff."""

    def prune_tombstones(self, before_iso: str) -> int:
        """Delete tombstones recorded before the cutoff. Returns the number removed."""


@dataclass(frozen=True)
class NotificationState:
    id: Optional[int]
    owner_id: int
    reminder_id: Optional[str]
    title: str
    message: str
    priority: str
    is_read: bool
    read_at: Optional[str]
    created_at: str


@runtime_checkable
class NotificationStore(Protocol):
    def create_notification(self, notification: NotificationState) -> NotificationState:
        """Persist a notification and return it with its id."""

    def list_notifications(
        self, owner_id: int, unread_only: bool = False, limit: int = 20, offset: int = 0
    ) -> Tuple[List[NotificationState], int]:
        """Return a page of notifications, newest first, and the total count."""

    def mark_notifications_read(self, owner_id: int, ids: List[int], read_at: str) -> int:
        """Mark notifications read. Returns the number updated."""

    def count_unread_notifications(self, owner_id: int) -> int:
        """Return the number of unread notifications."""

    def delete_notifications(self, before_iso: str, read_only: bool = False) -> int:
        """Delete notifications created before the cutoff, optionally only read ones."""

    def trim_notifications(self, max_rows: int) -> int:
        """Delete the oldest notifications beyond max_rows. Returns the number removed."""

    def clear_notifications(self, owner_id: int) -> int:
        """Delete every notification of an owner."""
