from datetime import datetime, timedelta

from conftest import make_user

import notifications
from notifications import notify, run_missing_log_sweep, run_stale_draft_sweep
from schemas import NotificationType, Role

NOW = datetime(2024, 5, 2, 9, 0)


def insert_log(db, leader_id, date, status="draft", created_at=None, project="Site A"):
    return db["daily_log"].insert_one({
        "date": date,
        "project": project,
        "employees": [],
        "start_time": date.replace(hour=8),
        "end_time": date.replace(hour=16),
        "work_description": "Work",
        "work_photos": [],
        "documents": [],
        "status": status,
        "team_leader": leader_id,
        "created_at": created_at or NOW,
        "updated_at": created_at or NOW,
    }).inserted_id


def test_missing_log_sweep(db, leader, other_leader, manager):
    inactive = make_user(Role.TEAM_LEADER, "away@worksite.io", is_active=False)
    insert_log(db, leader.id, datetime(2024, 5, 1))
    # a log for today does not count for yesterday
    insert_log(db, other_leader.id, datetime(2024, 5, 2))

    assert run_missing_log_sweep(NOW) == 1

    missing = list(db["notification"].find({"type": "missing_log"}))
    assert [n["recipient"] for n in missing] == [other_leader.id]
    assert "01/05/2024" in missing[0]["message"]
    assert db["notification"].count_documents({"recipient": {"$in": [manager.id, inactive.id, leader.id]}}) == 0


def test_missing_log_sweep_is_idempotent_per_day(db, leader):
    assert run_missing_log_sweep(NOW) == 1
    assert run_missing_log_sweep(NOW + timedelta(hours=3)) == 0
    assert db["notification"].count_documents({"type": "missing_log"}) == 1

    # next day is a new day
    assert run_missing_log_sweep(NOW + timedelta(days=1)) == 1
    assert db["notification"].count_documents({"type": "missing_log"}) == 2


def test_stale_draft_sweep(db, leader):
    stale = insert_log(db, leader.id, datetime(2024, 4, 30), created_at=NOW - timedelta(hours=25))
    insert_log(db, leader.id, datetime(2024, 5, 1), created_at=NOW - timedelta(hours=2), project="Site B")
    insert_log(db, leader.id, datetime(2024, 4, 29), status="submitted", created_at=NOW - timedelta(days=3))

    assert run_stale_draft_sweep(NOW) == 1
    assert run_stale_draft_sweep(NOW) == 0

    incomplete = list(db["notification"].find({"type": "incomplete_log"}))
    assert len(incomplete) == 1
    assert incomplete[0]["recipient"] == leader.id
    assert incomplete[0]["related_log"] == str(stale)


def test_notify_swallows_store_errors(monkeypatch):
    def broken(name):
        raise RuntimeError("down")

    monkeypatch.setattr(notifications, "collection", broken)
    assert notify("someone", NotificationType.SYSTEM, "hello") is False


def test_event_notifications_have_no_dedupe_key(db, leader):
    assert notify(leader.id, NotificationType.SYSTEM, "one")
    assert notify(leader.id, NotificationType.SYSTEM, "two")
    docs = list(db["notification"].find({"recipient": leader.id}))
    assert len(docs) == 2
    assert all("dedupe_key" not in d for d in docs)
    assert all(d["is_read"] is False for d in docs)


def test_mark_read_and_read_all(client, db, leader, other_leader):
    notify(leader.id, NotificationType.SYSTEM, "first")
    notify(leader.id, NotificationType.SYSTEM, "second")
    notify(other_leader.id, NotificationType.SYSTEM, "theirs")

    listed = client.get("/api/notifications", headers=leader.headers).json()
    assert len(listed) == 2
    assert client.get("/api/notifications/unread-count", headers=leader.headers).json() == {"count": 2}

    theirs = db["notification"].find_one({"recipient": other_leader.id})
    res = client.put(f"/api/notifications/{theirs['_id']}/read", headers=leader.headers)
    assert res.status_code == 403
    assert db["notification"].find_one({"_id": theirs["_id"]})["is_read"] is False

    assert client.put("/api/notifications/000000000000000000000000/read", headers=leader.headers).status_code == 404

    res = client.put(f"/api/notifications/{listed[0]['id']}/read", headers=leader.headers)
    assert res.status_code == 200
    assert client.get("/api/notifications/unread-count", headers=leader.headers).json() == {"count": 1}

    res = client.put("/api/notifications/read-all", headers=leader.headers)
    assert res.status_code == 200
    assert db["notification"].count_documents({"recipient": leader.id, "is_read": False}) == 0
    assert db["notification"].count_documents({"recipient": other_leader.id, "is_read": False}) == 1
