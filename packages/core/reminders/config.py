from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_DB_PATH = os.path.abspath(
    os.path.join(os.path.dirname(__file__), "..", "..", "..", "apps", "api", "data", "reminders.db")
)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class ReminderSettings:
    scheduler_enabled: bool = True
    poll_seconds: int = 60
    max_delivery_attempts: int = 5
    cleanup_after_days: int = 30
    tombstone_retention_days: int = 30
    notification_retention_days: int = 30
    notification_read_retention_days: int = 7
    max_notifications: int = 10000
    working_hours_enabled: bool = False
    working_hours_start: int = 8
    working_hours_end: int = 22
    timezone: str = "Africa/Cairo"
    heartbeat_seconds: int = 30


def load_reminder_settings() -> ReminderSettings:
    return ReminderSettings(
        scheduler_enabled=_env_bool("REMINDERS_SCHEDULER_ENABLED", "true"),
        poll_seconds=max(1, _env_int("REMINDERS_POLL_SECONDS", 60)),
        max_delivery_attempts=max(1, _env_int("REMINDERS_MAX_DELIVERY_ATTEMPTS", 5)),
        cleanup_after_days=max(0, _env_int("REMINDERS_CLEANUP_DAYS", 30)),
        tombstone_retention_days=max(0, _env_int("REMINDERS_TOMBSTONE_RETENTION_DAYS", 30)),
        notification_retention_days=max(0, _env_int("NOTIFICATIONS_RETENTION_DAYS", 30)),
        notification_read_retention_days=max(
            0, _env_int("NOTIFICATIONS_READ_RETENTION_DAYS", 7)
        ),
        max_notifications=max(0, _env_int("NOTIFICATIONS_MAX_ROWS", 10000)),
        working_hours_enabled=_env_bool("REMINDERS_WORKING_HOURS_ENABLED", "false"),
        working_hours_start=_env_int("REMINDERS_WORKING_HOURS_START", 8),
        working_hours_end=_env_int("REMINDERS_WORKING_HOURS_END", 22),
        timezone=os.getenv("REMINDERS_TIMEZONE", "Africa/Cairo"),
        heartbeat_seconds=max(1, _env_int("NOTIFICATIONS_HEARTBEAT_SECONDS", 30)),
    )


def db_path(path: Optional[str] = None) -> str:
    return path or os.getenv("CRM_REMINDERS_DB_PATH", DEFAULT_DB_PATH)
