"""Reminder status transitions.

    pending   -> snoozed | done | dismissed
    snoozed   -> pending | snoozed | done | dismissed
    dismissed -> done
    done      -> (terminal)

A snoozed reminder goes back to pending only when its due time is edited.
"""

from __future__ import annotations

from .errors import InvalidTransition
from .models import DISMISSED, DONE, PENDING, SNOOZED


VALID_TRANSITIONS = {
    PENDING: (SNOOZED, DONE, DISMISSED),
    SNOOZED: (PENDING, SNOOZED, DONE, DISMISSED),
    DISMISSED: (DONE,),
    DONE: (),
}


def is_terminal(status: str) -> bool:
    return not VALID_TRANSITIONS.get(status, ())


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in VALID_TRANSITIONS.get(from_status, ())


def validate_transition(reminder_id: str, from_status: str, to_status: str) -> None:
    if not can_transition(from_status, to_status):
        raise InvalidTransition(reminder_id, from_status, to_status)
