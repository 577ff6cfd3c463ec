import datetime as dt

from fastapi.testclient import TestClient

from apps.api.main import app
from apps.api.routes import reminders as reminders_module
from packages.core.reminders.service import create_reminder
from packages.core.storage.sqlite import SQLiteReminderStore


def _client(monkeypatch, tmp_path):
    store = SQLiteReminderStore(db_path=str(tmp_path / "reminders.db"))
    monkeypatch.setattr(reminders_module, "_store", lambda: store)
    return TestClient(app), store


def _in(minutes):
    return (dt.datetime.now(dt.timezone.utc) + dt.timedelta(minutes=minutes)).isoformat()


def _overdue(store, owner_id=1, note="Overdue call"):
    # Created an hour ago, due ten minutes ago.
    now = dt.datetime.now(dt.timezone.utc)
    return create_reminder(
        store,
        owner_id=owner_id,
        note=note,
        remind_at=now - dt.timedelta(minutes=10),
        now=now - dt.timedelta(hours=1),
    )


def test_reminders_crud(monkeypatch, tmp_path, auth_headers):
    client, _ = _client(monkeypatch, tmp_path)
    headers = auth_headers(1)

    create_resp = client.post(
        "/reminders",
        json={"note": "Call Ahmed", "remind_at": _in(60), "client_id": 42, "priority": "high"},
        headers=headers,
    )
    assert create_resp.status_code == 201
    body = create_resp.json()
    assert body["success"] is True
    reminder = body["data"]
    assert reminder["id"]
    assert reminder["status"] == "pending"
    assert reminder["client_id"] == 42
    assert reminder["lead_id"] is None
    assert reminder["linked_entity"] == {"type": "client", "id": 42}
    assert reminder["version"] == 1

    list_resp = client.get("/reminders", headers=headers)
    assert list_resp.status_code == 200
    assert list_resp.json()["pagination"] == {"total": 1, "page": 1, "limit": 10, "pages": 1}
    assert [r["id"] for r in list_resp.json()["data"]] == [reminder["id"]]

    get_resp = client.get(f"/reminders/{reminder['id']}", headers=headers)
    assert get_resp.status_code == 200
    assert get_resp.json()["data"]["note"] == "Call Ahmed"

    update_resp = client.put(
        f"/reminders/{reminder['id']}",
        json={"note": "Call Ahmed about the villa", "version": 1},
        headers=headers,
    )
    assert update_resp.status_code == 200
    assert update_resp.json()["data"]["note"] == "Call Ahmed about the villa"
    assert update_resp.json()["data"]["version"] == 2

    stale_resp = client.put(
        f"/reminders/{reminder['id']}", json={"note": "stale", "version": 1}, headers=headers
    )
    assert stale_resp.status_code == 409
    assert stale_resp.json()["code"] == "version_conflict"

    delete_resp = client.delete(f"/reminders/{reminder['id']}", headers=headers)
    assert delete_resp.status_code == 200
    assert delete_resp.json()["data"] == {"status": "deleted", "id": reminder["id"]}

    missing_resp = client.get(f"/reminders/{reminder['id']}", headers=headers)
    assert missing_resp.status_code == 404
    assert missing_resp.json()["success"] is False
    assert missing_resp.json()["code"] == "not_found"


def test_reminders_require_auth(monkeypatch, tmp_path, auth_headers):
    client, _ = _client(monkeypatch, tmp_path)
    auth_headers(1)

    resp = client.get("/reminders")
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthorized"

    bad = client.get("/reminders", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401

    assert client.get("/health").status_code == 200


def test_reminders_are_scoped_to_owner(monkeypatch, tmp_path, auth_headers):
    client, store = _client(monkeypatch, tmp_path)
    reminder = _overdue(store, owner_id=1)

    other = auth_headers(2)
    assert client.get(f"/reminders/{reminder.id}", headers=other).status_code == 404
    assert client.patch(f"/reminders/{reminder.id}/done", headers=other).status_code == 404
    assert client.get("/reminders", headers=other).json()["data"] == []


def test_reminder_validation_errors(monkeypatch, tmp_path, auth_headers):
    client, _ = _client(monkeypatch, tmp_path)
    headers = auth_headers(1)

    past = client.post("/reminders", json={"note": "Late", "remind_at": _in(-5)}, headers=headers)
    assert past.status_code == 400
    assert past.json() == {
        "success": False,
        "data": None,
        "message": "remind_at must be in the future",
        "code": "validation_error",
    }

    both = client.post(
        "/reminders",
        json={"note": "Both", "remind_at": _in(5), "client_id": 1, "lead_id": 2},
        headers=headers,
    )
    assert both.status_code == 400

    missing = client.post("/reminders", json={"remind_at": _in(5)}, headers=headers)
    assert missing.status_code == 400
    assert missing.json()["code"] == "validation_error"
    assert missing.json()["message"].startswith("note")

    bad_priority = client.post(
        "/reminders", json={"note": "x", "remind_at": _in(5), "priority": "urgent"}, headers=headers
    )
    assert bad_priority.status_code == 400

    bad_limit = client.get("/reminders", params={"limit": 500}, headers=headers)
    assert bad_limit.status_code == 400


def test_mark_done_is_idempotent(monkeypatch, tmp_path, auth_headers):
    client, store = _client(monkeypatch, tmp_path)
    headers = auth_headers(1)
    reminder = _overdue(store)

    first = client.patch(f"/reminders/{reminder.id}/done", headers=headers)
    second = client.patch(f"/reminders/{reminder.id}/done", headers=headers)

    assert first.status_code == 200
    assert first.json()["already_done"] is False
    assert first.json()["data"]["status"] == "done"
    assert second.status_code == 200
    assert second.json()["already_done"] is True
    assert second.json()["message"] == "Reminder is already marked as done"

    snooze = client.post(f"/reminders/{reminder.id}/snooze", json={"minutes": 10}, headers=headers)
    assert snooze.status_code == 409
    assert snooze.json()["code"] == "invalid_transition"


def test_snooze_and_dismiss(monkeypatch, tmp_path, auth_headers):
    client, store = _client(monkeypatch, tmp_path)
    headers = auth_headers(1)
    reminder = _overdue(store)

    neither = client.post(f"/reminders/{reminder.id}/snooze", json={}, headers=headers)
    assert neither.status_code == 400

    snoozed = client.post(f"/reminders/{reminder.id}/snooze", json={"minutes": 30}, headers=headers)
    assert snoozed.status_code == 200
    assert snoozed.json()["data"]["status"] == "snoozed"
    assert snoozed.json()["data"]["snoozed_until"]

    dismissed = client.post(f"/reminders/{reminder.id}/dismiss", headers=headers)
    assert dismissed.status_code == 200
    assert dismissed.json()["data"]["status"] == "dismissed"
    assert dismissed.json()["data"]["snoozed_until"] is None

    listed = client.get("/reminders", params={"status": "dismissed"}, headers=headers)
    assert [r["id"] for r in listed.json()["data"]] == [reminder.id]


def test_due_and_stats(monkeypatch, tmp_path, auth_headers):
    client, store = _client(monkeypatch, tmp_path)
    headers = auth_headers(1)
    overdue = _overdue(store)
    client.post("/reminders", json={"note": "Later", "remind_at": _in(120)}, headers=headers)

    first = client.get("/reminders/due", headers=headers)
    second = client.get("/reminders/due", headers=headers)
    assert first.status_code == 200
    assert [r["id"] for r in first.json()["data"]["due"]] == [overdue.id]
    assert first.json()["data"]["newly_due_ids"] == [overdue.id]
    assert second.json()["data"]["newly_due_ids"] == []
    assert [r["id"] for r in second.json()["data"]["due"]] == [overdue.id]

    stats = client.get("/reminders/stats", headers=headers)
    assert stats.status_code == 200
    data = stats.json()["data"]
    assert data["total"] == 2
    assert data["pending"] == 2
    assert data["overdue"] == 1
    assert data["upcoming"] == 1
    assert data["done"] == data["completed"] == 0


def test_changes_feed(monkeypatch, tmp_path, auth_headers):
    client, store = _client(monkeypatch, tmp_path)
    headers = auth_headers(1)
    reminder = _overdue(store)

    initial = client.get("/reminders/changes", headers=headers).json()["data"]
    assert [r["id"] for r in initial["reminders"]] == [reminder.id]
    assert initial["deleted_ids"] == []

    client.delete(f"/reminders/{reminder.id}", headers=headers)
    delta = client.get(
        "/reminders/changes", params={"since": initial["cursor"]}, headers=headers
    ).json()["data"]
    assert delta["reminders"] == []
    assert delta["deleted_ids"] == [reminder.id]


def test_changes_feed_validates_cursor(monkeypatch, tmp_path, auth_headers):
    client, store = _client(monkeypatch, tmp_path)
    headers = auth_headers(1)
    reminder = _overdue(store)

    bad = client.get("/reminders/changes", params={"since": "zzz"}, headers=headers)
    assert bad.status_code == 400
    assert bad.json()["code"] == "validation_error"

    created = dt.datetime.fromisoformat(reminder.updated_at)
    since = (created - dt.timedelta(seconds=1)).strftime("%Y-%m-%dT%H:%M:%SZ")
    resp = client.get("/reminders/changes", params={"since": since}, headers=headers)
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()["data"]["reminders"]] == [reminder.id]
