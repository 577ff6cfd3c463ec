import sqlite3
from dataclasses import replace

import pytest

from packages.core.storage.base import NotificationState, ReminderQuery, ReminderState
from packages.core.storage.sqlite import SQLiteReminderStore


def _reminder(reminder_id="r1", owner_id=1, due_at="2026-01-01T10:00:00.000000+00:00", **overrides):
    values = dict(
        id=reminder_id,
        owner_id=owner_id,
        note="Call the client",
        description=None,
        due_at=due_at,
        status="pending",
        snoozed_until=None,
        link_type=None,
        link_id=None,
        priority="medium",
        type="general",
        version=1,
        notified_at=None,
        dispatched_at=None,
        delivery_attempts=0,
        next_delivery_at=None,
        created_at="2026-01-01T09:00:00.000000+00:00",
        updated_at="2026-01-01T09:00:00.000000+00:00",
    )
    values.update(overrides)
    return ReminderState(**values)


def test_sqlite_store_create_get(tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    store.create_reminder(_reminder(link_type="lead", link_id=7))

    loaded = store.get_reminder("r1")
    assert loaded is not None
    assert loaded.note == "Call the client"
    assert loaded.link_type == "lead"
    assert loaded.link_id == 7
    assert store.get_reminder("missing") is None


def test_sqlite_store_check_constraints(tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    with pytest.raises(sqlite3.IntegrityError):
        store.create_reminder(_reminder(link_type="vendor", link_id=3))
    with pytest.raises(sqlite3.IntegrityError):
        store.create_reminder(_reminder(status="snoozed", snoozed_until=None))


def test_sqlite_store_update_checks_version(tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    original = _reminder()
    store.create_reminder(original)

    first = replace(original, note="first", version=2)
    second = replace(original, note="second", version=2)
    assert store.update_reminder(first, expected_version=1) is True
    assert store.update_reminder(second, expected_version=1) is False
    assert store.get_reminder("r1").note == "first"


def test_sqlite_store_claim_delivery_once(tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    store.create_reminder(_reminder())
    now = "2026-01-01T10:00:30.000000+00:00"
    too_early = "2026-01-01T09:59:00.000000+00:00"

    assert store.claim_delivery("r1", too_early) is False
    assert store.claim_delivery("r1", now) is True
    assert store.claim_delivery("r1", now) is False


def test_sqlite_store_dispatch_claim_is_separate(tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    store.create_reminder(_reminder())
    now = "2026-01-01T10:00:30.000000+00:00"

    assert store.claim_delivery("r1", now) is True
    assert store.claim_dispatch("r1", now) is True
    assert store.claim_dispatch("r1", now) is False

    store.record_delivery_failure("r1", attempts=1, retry_at="2026-01-01T10:01:30.000000+00:00")
    assert store.claim_dispatch("r1", now) is False
    assert store.claim_dispatch("r1", "2026-01-01T10:02:00.000000+00:00") is True
    stored = store.get_reminder("r1")
    assert stored.delivery_attempts == 1
    assert stored.notified_at == now


def test_sqlite_store_due_order_by_priority_then_time(tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    store.create_reminder(_reminder("low", priority="low", due_at="2026-01-01T08:00:00.000000+00:00"))
    store.create_reminder(_reminder("high-late", priority="high", due_at="2026-01-01T09:30:00.000000+00:00"))
    store.create_reminder(_reminder("high-early", priority="high", due_at="2026-01-01T09:00:00.000000+00:00"))
    store.create_reminder(_reminder("future", priority="high", due_at="2026-01-02T09:00:00.000000+00:00"))
    store.create_reminder(_reminder("done", status="done"))

    due = store.list_due_reminders("2026-01-01T12:00:00.000000+00:00")
    assert [r.id for r in due] == ["high-early", "high-late", "low"]


def test_sqlite_store_list_filters_and_pages(tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    for index in range(5):
        store.create_reminder(
            _reminder(
                f"r{index}",
                note=f"Visit site {index}",
                due_at=f"2026-01-0{index + 1}T10:00:00.000000+00:00",
            )
        )
    store.create_reminder(_reminder("other", owner_id=2, note="Visit site other"))
    store.create_reminder(_reminder("percent", note="100% sure"))

    items, total = store.list_reminders(ReminderQuery(owner_id=1, search="visit", limit=2, offset=2))
    assert total == 5
    assert [r.id for r in items] == ["r2", "r3"]

    items, total = store.list_reminders(ReminderQuery(owner_id=1, search="%"))
    assert [r.id for r in items] == ["percent"]

    items, total = store.list_reminders(
        ReminderQuery(
            owner_id=1,
            due_from="2026-01-02T00:00:00.000000+00:00",
            due_to="2026-01-03T23:00:00.000000+00:00",
        )
    )
    assert [r.id for r in items] == ["r1", "r2"]


def test_sqlite_store_delete_writes_tombstone(tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    store.create_reminder(_reminder())

    assert store.delete_reminder("r1", "2026-01-01T11:00:00.000000+00:00") is True
    assert store.delete_reminder("r1", "2026-01-01T11:00:00.000000+00:00") is False
    assert store.get_reminder("r1") is None
    assert store.list_deleted_since(1, "") == [("r1", "2026-01-01T11:00:00.000000+00:00")]
    assert store.list_deleted_since(2, "") == []


def test_sqlite_store_notifications(tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    created = [
        store.create_notification(
            NotificationState(
                id=None,
                owner_id=1,
                reminder_id="r1",
                title="Reminder",
                message=f"note {index}",
                priority="high",
                is_read=False,
                read_at=None,
                created_at=f"2026-01-01T10:0{index}:00.000000+00:00",
            )
        )
        for index in range(3)
    ]
    assert all(item.id for item in created)

    items, total = store.list_notifications(1)
    assert total == 3
    assert items[0].message == "note 2"

    assert store.mark_notifications_read(2, [created[0].id], "2026-01-01T11:00:00.000000+00:00") == 0
    assert store.mark_notifications_read(1, [created[0].id], "2026-01-01T11:00:00.000000+00:00") == 1
    assert store.count_unread_notifications(1) == 2
    unread, unread_total = store.list_notifications(1, unread_only=True)
    assert unread_total == 2
    assert created[0].id not in [item.id for item in unread]


def test_sqlite_store_prunes_tombstones(tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    store.create_reminder(_reminder("old"))
    store.create_reminder(_reminder("new"))
    store.delete_reminder("old", "2026-01-01T11:00:00.000000+00:00")
    store.delete_reminder("new", "2026-02-01T11:00:00.000000+00:00")

    assert store.prune_tombstones("2026-01-15T00:00:00.000000+00:00") == 1
    assert store.list_deleted_since(1, "") == [("new", "2026-02-01T11:00:00.000000+00:00")]


def _notification(owner_id, created_at, is_read=False):
    return NotificationState(
        id=None,
        owner_id=owner_id,
        reminder_id=None,
        title="Reminder",
        message=created_at,
        priority="medium",
        is_read=is_read,
        read_at=created_at if is_read else None,
        created_at=created_at,
    )


def test_sqlite_store_notification_retention(tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    store.create_notification(_notification(1, "2026-01-01T10:00:00.000000+00:00"))
    store.create_notification(_notification(1, "2026-01-02T10:00:00.000000+00:00", is_read=True))
    store.create_notification(_notification(1, "2026-01-03T10:00:00.000000+00:00"))
    store.create_notification(_notification(2, "2026-01-04T10:00:00.000000+00:00"))

    assert store.delete_notifications("2026-01-05T00:00:00.000000+00:00", read_only=True) == 1
    assert store.trim_notifications(2) == 1
    assert [n.message for n in store.list_notifications(1)[0]] == [
        "2026-01-03T10:00:00.000000+00:00"
    ]
    assert store.trim_notifications(10) == 0

    assert store.clear_notifications(1) == 1
    assert store.list_notifications(1)[1] == 0
    assert store.list_notifications(2)[1] == 1
