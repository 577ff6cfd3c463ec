from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from .base import (
    NotificationState,
    NotificationStore,
    ReminderQuery,
    ReminderState,
    ReminderStore,
)


_REMINDER_COLUMNS = """
    id, owner_id, note, description, due_at, status, snoozed_until,
    link_type, link_id, priority, type, version, notified_at,
    dispatched_at, delivery_attempts, next_delivery_at, created_at, updated_at
"""

_EFFECTIVE_DUE = "COALESCE(snoozed_until, due_at)"

_PRIORITY_RANK = "CASE priority WHEN 'high' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END"

_OPEN_STATUSES = "('pending', 'snoozed')"


def _row_to_reminder(row: tuple) -> ReminderState:
    return ReminderState(
        id=row[0],
        owner_id=row[1],
        note=row[2],
        description=row[3],
        due_at=row[4],
        status=row[5],
        snoozed_until=row[6],
        link_type=row[7],
        link_id=row[8],
        priority=row[9],
        type=row[10],
        version=row[11],
        notified_at=row[12],
        dispatched_at=row[13],
        delivery_attempts=row[14] or 0,
        next_delivery_at=row[15],
        created_at=row[16],
        updated_at=row[17],
    )


def _row_to_notification(row: tuple) -> NotificationState:
    return NotificationState(
        id=row[0],
        owner_id=row[1],
        reminder_id=row[2],
        title=row[3],
        message=row[4],
        priority=row[5],
        is_read=bool(row[6]),
        read_at=row[7],
        created_at=row[8],
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteReminderStore(ReminderStore, NotificationStore):
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path, timeout=30)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reminders (
                    id TEXT PRIMARY KEY,
                    owner_id INTEGER NOT NULL,
                    note TEXT NOT NULL,
                    description TEXT,
                    due_at TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    snoozed_until TEXT,
                    link_type TEXT,
                    link_id INTEGER,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    type TEXT NOT NULL DEFAULT 'general',
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK (status IN ('pending', 'snoozed', 'done', 'dismissed')),
                    CHECK ((status = 'snoozed') = (snoozed_until IS NOT NULL)),
                    CHECK (
                        (link_type IS NULL AND link_id IS NULL)
                        OR (link_type IN ('client', 'lead') AND link_id IS NOT NULL)
                    )
                )
                """
            )
            self._ensure_column(conn, "reminders", "notified_at", "TEXT", "NULL")
            self._ensure_column(conn, "reminders", "dispatched_at", "TEXT", "NULL")
            self._ensure_column(
                conn, "reminders", "delivery_attempts", "INTEGER NOT NULL", "0"
            )
            self._ensure_column(conn, "reminders", "next_delivery_at", "TEXT", "NULL")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS reminders_owner_idx ON reminders (owner_id)"
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS reminders_status_due_idx
                ON reminders (status, due_at)
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS reminders_owner_updated_idx
                ON reminders (owner_id, updated_at)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reminder_tombstones (
                    reminder_id TEXT PRIMARY KEY,
                    owner_id INTEGER NOT NULL,
                    deleted_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id INTEGER NOT NULL,
                    reminder_id TEXT,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    is_read INTEGER NOT NULL DEFAULT 0,
                    read_at TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS notifications_owner_idx
                ON notifications (owner_id, is_read)
                """
            )

    def _ensure_column(
        self, conn: sqlite3.Connection, table: str, column: str, column_def: str, default_sql: str
    ) -> None:
        columns = {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
        if column in columns:
            return
        conn.execute(
            f"ALTER TABLE {table} ADD COLUMN {column} {column_def} DEFAULT {default_sql}"
        )

    def create_reminder(self, reminder: ReminderState) -> None:
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO reminders ({_REMINDER_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    reminder.id,
                    reminder.owner_id,
                    reminder.note,
                    reminder.description,
                    reminder.due_at,
                    reminder.status,
                    reminder.snoozed_until,
                    reminder.link_type,
                    reminder.link_id,
                    reminder.priority,
                    reminder.type,
                    reminder.version,
                    reminder.notified_at,
                    reminder.dispatched_at,
                    reminder.delivery_attempts,
                    reminder.next_delivery_at,
                    reminder.created_at,
                    reminder.updated_at,
                ),
            )

    def update_reminder(self, reminder: ReminderState, expected_version: int) -> bool:
        with self._connect() as conn:
            result = conn.execute(
                """
                UPDATE reminders
                SET note = ?, description = ?, due_at = ?, status = ?,
                    snoozed_until = ?, link_type = ?, link_id = ?, priority = ?,
                    type = ?, version = ?, notified_at = ?, dispatched_at = ?,
                    delivery_attempts = ?, next_delivery_at = ?, updated_at = ?
                WHERE id = ? AND version = ?
                """,
                (
                    reminder.note,
                    reminder.description,
                    reminder.due_at,
                    reminder.status,
                    reminder.snoozed_until,
                    reminder.link_type,
                    reminder.link_id,
                    reminder.priority,
                    reminder.type,
                    reminder.version,
                    reminder.notified_at,
                    reminder.dispatched_at,
                    reminder.delivery_attempts,
                    reminder.next_delivery_at,
                    reminder.updated_at,
                    reminder.id,
                    expected_version,
                ),
            )
            return result.rowcount > 0

    def get_reminder(self, reminder_id: str) -> Optional[ReminderState]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_REMINDER_COLUMNS} FROM reminders WHERE id = ?",
                (reminder_id,),
            ).fetchone()
            if row is None:
                return None
            return _row_to_reminder(row)

    def list_reminders(self, query: ReminderQuery) -> Tuple[List[ReminderState], int]:
        clauses = ["owner_id = ?"]
        params: list = [query.owner_id]
        if query.status:
            clauses.append("status = ?")
            params.append(query.status)
        if query.search:
            clauses.append("note LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(query.search)}%")
        if query.due_from:
            clauses.append("due_at >= ?")
            params.append(query.due_from)
        if query.due_to:
            clauses.append("due_at <= ?")
            params.append(query.due_to)
        where = " AND ".join(clauses)
        with self._connect() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM reminders WHERE {where}", tuple(params)
            ).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT {_REMINDER_COLUMNS}
                FROM reminders
                WHERE {where}
                ORDER BY due_at ASC, created_at ASC
                LIMIT ? OFFSET ?
                """,
                tuple(params) + (query.limit, query.offset),
            ).fetchall()
            return [_row_to_reminder(row) for row in rows], total

    def delete_reminder(self, reminder_id: str, deleted_at: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT owner_id FROM reminders WHERE id = ?", (reminder_id,)
            ).fetchone()
            if row is None:
                return False
            conn.execute("DELETE FROM reminders WHERE id = ?", (reminder_id,))
            conn.execute(
                """
                INSERT INTO reminder_tombstones (reminder_id, owner_id, deleted_at)
                VALUES (?, ?, ?)
                ON CONFLICT(reminder_id) DO UPDATE SET deleted_at = excluded.deleted_at
                """,
                (reminder_id, row[0], deleted_at),
            )
            return True

    def list_due_reminders(
        self, now_iso: str, owner_id: Optional[int] = None
    ) -> List[ReminderState]:
        owner_clause = "AND owner_id = ?" if owner_id is not None else ""
        params: tuple = (now_iso,) if owner_id is None else (now_iso, owner_id)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_REMINDER_COLUMNS}
                FROM reminders
                WHERE status IN {_OPEN_STATUSES}
                  AND {_EFFECTIVE_DUE} <= ?
                  {owner_clause}
                ORDER BY {_PRIORITY_RANK} ASC, {_EFFECTIVE_DUE} ASC
                """,
                params,
            ).fetchall()
            return [_row_to_reminder(row) for row in rows]

    def claim_delivery(self, reminder_id: str, now_iso: str) -> bool:
        with self._connect() as conn:
            result = conn.execute(
                f"""
                UPDATE reminders
                SET notified_at = ?
                WHERE id = ?
                  AND notified_at IS NULL
                  AND status IN {_OPEN_STATUSES}
                  AND {_EFFECTIVE_DUE} <= ?
                """,
                (now_iso, reminder_id, now_iso),
            )
            return result.rowcount > 0

    def claim_dispatch(self, reminder_id: str, now_iso: str) -> bool:
        with self._connect() as conn:
            result = conn.execute(
                f"""
                UPDATE reminders
                SET dispatched_at = ?
                WHERE id = ?
                  AND dispatched_at IS NULL
                  AND status IN {_OPEN_STATUSES}
                  AND {_EFFECTIVE_DUE} <= ?
                  AND (next_delivery_at IS NULL OR next_delivery_at <= ?)
                """,
                (now_iso, reminder_id, now_iso, now_iso),
            )
            return result.rowcount > 0

    def record_delivery_failure(
        self, reminder_id: str, attempts: int, retry_at: Optional[str]
    ) -> None:
        with self._connect() as conn:
            if retry_at is None:
                conn.execute(
                    "UPDATE reminders SET delivery_attempts = ? WHERE id = ?",
                    (attempts, reminder_id),
                )
                return
            conn.execute(
                """
                UPDATE reminders
                SET dispatched_at = NULL, delivery_attempts = ?, next_delivery_at = ?
                WHERE id = ?
                """,
                (attempts, retry_at, reminder_id),
            )

    def reminder_counts(
        self, owner_id: Optional[int], now_iso: str, day_start_iso: str
    ) -> Dict[str, int]:
        owner_clause = "WHERE owner_id = ?" if owner_id is not None else ""
        params: tuple = (now_iso, now_iso, day_start_iso)
        if owner_id is not None:
            params = params + (owner_id,)
        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT
                    COUNT(*),
                    SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'snoozed' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'done' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'dismissed' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status IN {_OPEN_STATUSES}
                             AND {_EFFECTIVE_DUE} < ? THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status IN {_OPEN_STATUSES}
                             AND {_EFFECTIVE_DUE} >= ? THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'done' AND updated_at >= ? THEN 1 ELSE 0 END)
                FROM reminders
                {owner_clause}
                """,
                params,
            ).fetchone()
        keys = ["total", "pending", "snoozed", "done", "dismissed", "overdue", "upcoming", "done_today"]
        return {key: int(value or 0) for key, value in zip(keys, row)}

    def list_changed_reminders(self, owner_id: int, since: str) -> List[ReminderState]:
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_REMINDER_COLUMNS}
                FROM reminders
                WHERE owner_id = ? AND updated_at > ?
                ORDER BY updated_at ASC
                """,
                (owner_id, since),
            ).fetchall()
            return [_row_to_reminder(row) for row in rows]

    def list_deleted_since(self, owner_id: int, since: str) -> List[Tuple[str, str]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT reminder_id, deleted_at
                FROM reminder_tombstones
                WHERE owner_id = ? AND deleted_at > ?
                ORDER BY deleted_at ASC
                """,
                (owner_id, since),
            ).fetchall()
            return [(row[0], row[1]) for row in rows]

    def list_stale_done(self, before_iso: str) -> List[ReminderState]:
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_REMINDER_COLUMNS}
                FROM reminders
                WHERE status = 'done' AND updated_at < ?
                """,
                (before_iso,),
            ).fetchall()
            return [_row_to_reminder(row) for row in rows]

    def prune_tombstones(self, before_iso: str) -> int:
        with self._connect() as conn:
            result = conn.execute(
                "DELETE FROM reminder_tombstones WHERE deleted_at < ?", (before_iso,)
            )
            return result.rowcount

    def create_notification(self, notification: NotificationState) -> NotificationState:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO notifications (
                    owner_id, reminder_id, title, message, priority, is_read,
                    read_at, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    notification.owner_id,
                    notification.reminder_id,
                    notification.title,
                    notification.message,
                    notification.priority,
                    1 if notification.is_read else 0,
                    notification.read_at,
                    notification.created_at,
                ),
            )
            notification_id = cur.lastrowid
        return NotificationState(**{**notification.__dict__, "id": notification_id})

    def list_notifications(
        self, owner_id: int, unread_only: bool = False, limit: int = 20, offset: int = 0
    ) -> Tuple[List[NotificationState], int]:
        where = "owner_id = ? AND is_read = 0" if unread_only else "owner_id = ?"
        with self._connect() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM notifications WHERE {where}", (owner_id,)
            ).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT id, owner_id, reminder_id, title, message, priority, is_read,
                       read_at, created_at
                FROM notifications
                WHERE {where}
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (owner_id, limit, offset),
            ).fetchall()
            return [_row_to_notification(row) for row in rows], total

    def mark_notifications_read(self, owner_id: int, ids: List[int], read_at: str) -> int:
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        with self._connect() as conn:
            result = conn.execute(
                f"""
                UPDATE notifications
                SET is_read = 1, read_at = ?
                WHERE owner_id = ? AND is_read = 0 AND id IN ({placeholders})
                """,
                (read_at, owner_id, *ids),
            )
            return result.rowcount

    def count_unread_notifications(self, owner_id: int) -> int:
        with self._connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM notifications WHERE owner_id = ? AND is_read = 0",
                (owner_id,),
            ).fetchone()[0]

    def delete_notifications(self, before_iso: str, read_only: bool = False) -> int:
        read_clause = "AND is_read = 1" if read_only else ""
        with self._connect() as conn:
            result = conn.execute(
                f"DELETE FROM notifications WHERE created_at < ? {read_clause}",
                (before_iso,),
            )
            return result.rowcount

    def trim_notifications(self, max_rows: int) -> int:
        with self._connect() as conn:
            total = conn.execute("SELECT COUNT(*) FROM notifications").fetchone()[0]
            excess = total - max_rows
            if excess <= 0:
                return 0
            result = conn.execute(
                """
                DELETE FROM notifications
                WHERE id IN (
                    SELECT id FROM notifications
                    ORDER BY created_at ASC, id ASC
                    LIMIT ?
                )
                """,
                (excess,),
            )
            return result.rowcount

    def clear_notifications(self, owner_id: int) -> int:
        with self._connect() as conn:
            result = conn.execute(
                "DELETE FROM notifications WHERE owner_id = ?", (owner_id,)
            )
            return result.rowcount
