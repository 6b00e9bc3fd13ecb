"""Inbox endpoints: ownership, counts, preferences."""
from __future__ import annotations

import pytest

from conftest import auth
from orgscope.models.notification import Notification


@pytest.fixture
def inbox(client, session_factory):
    """Three notifications for alpha-lead, one for beta-lead."""
    ids = client.ids
    with session_factory() as db:
        rows = [
            Notification(user_id="alpha-lead", message="first", small_group_id=ids.alpha),
            Notification(user_id="alpha-lead", message="second", small_group_id=ids.alpha),
            Notification(user_id="alpha-lead", message="direct"),
            Notification(user_id="beta-lead", message="for beta", small_group_id=ids.beta),
        ]
        db.add_all(rows)
        db.commit()
        return [r.id for r in rows]


def test_list_is_paginated(client, inbox):
    page = client.get("/notifications?limit=2&page=2", headers=auth("alpha-lead")).json()

    assert page["total"] == 3
    assert page["total_pages"] == 2
    assert page["page"] == 2
    assert len(page["items"]) == 1


def test_unread_count(client, inbox):
    headers = auth("alpha-lead")
    client.patch(f"/notifications/{inbox[0]}", json={"read": True}, headers=headers)

    assert client.get("/notifications/unread-count", headers=headers).json() == {"count": 2}
    assert client.get("/notifications?unread_only=true", headers=headers).json()["total"] == 2


def test_other_inbox_is_403_except_for_superadmin(client, inbox):
    assert client.get("/notifications?user_id=beta-lead", headers=auth("alpha-lead")).status_code == 403

    page = client.get("/notifications?user_id=beta-lead", headers=auth("admin")).json()
    assert [n["message"] for n in page["items"]] == ["for beta"]


def test_someone_elses_notification_is_404(client, inbox):
    beta_id = inbox[3]

    assert client.get(f"/notifications/{beta_id}", headers=auth("alpha-lead")).status_code == 404
    assert client.patch(f"/notifications/{beta_id}", json={"read": True}, headers=auth("alpha-lead")).status_code == 404
    assert client.delete(f"/notifications/{beta_id}", headers=auth("alpha-lead")).status_code == 404


def test_delete_own_notification(client, inbox):
    headers = auth("alpha-lead")

    assert client.delete(f"/notifications/{inbox[2]}", headers=headers).status_code == 204
    assert client.get(f"/notifications/{inbox[2]}", headers=headers).status_code == 404


def test_status_update(client, inbox):
    response = client.patch(f"/notifications/{inbox[0]}", json={"status": "failed"}, headers=auth("alpha-lead"))

    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert response.json()["read_at"] is None


def test_preferences_default_then_update(client):
    headers = auth("beta-lead")

    assert client.get("/notifications/preferences", headers=headers).json() == {
        "user_id": "beta-lead",
        "attendance_alerts": True,
        "event_reminders": True,
        "in_app_enabled": True,
    }

    client.put("/notifications/preferences", json={"attendance_alerts": False}, headers=headers)

    assert client.get("/notifications/preferences", headers=headers).json()["attendance_alerts"] is False
