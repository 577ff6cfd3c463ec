from __future__ import annotations


class ReminderError(Exception):
    """Base class for reminder failures. `code` is stable and safe to show clients."""

    code = "reminder_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ReminderValidationError(ReminderError):
    code = "validation_error"


class ReminderNotFound(ReminderError):
    code = "not_found"

    def __init__(self, reminder_id: str) -> None:
        super().__init__(f"Reminder not found: {reminder_id}")
        self.reminder_id = reminder_id


class InvalidTransition(ReminderError):
    code = "invalid_transition"

    def __init__(self, reminder_id: str, from_status: str, to_status: str) -> None:
        super().__init__(
            f"Reminder {reminder_id} cannot go from '{from_status}' to '{to_status}'"
        )
        self.reminder_id = reminder_id
        self.from_status = from_status
        self.to_status = to_status


class ReminderConflict(ReminderError):
    code = "version_conflict"

    def __init__(self, reminder_id: str, expected_version: int, actual_version: int) -> None:
        super().__init__(
            f"Reminder {reminder_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.reminder_id = reminder_id
        self.expected_version = expected_version
        self.actual_version = actual_version
