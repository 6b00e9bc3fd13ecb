"""SqlRepository against a file-backed SQLite database."""
from __future__ import annotations

import logging
import threading
from datetime import datetime

from sqlalchemy import select

import orgscope.repository as repository_module
from orgscope.contracts import ATTENDANCE_MISS, UNIVERSITY_ACKNOWLEDGMENT, NewNotification, OrgIds
from orgscope.models.notification import Notification, NotificationPreference
from orgscope.models.security import User, UserRole


def _new(recipient="alpha-lead", key="k-1", **metadata) -> NewNotification:
    return NewNotification(
        recipient_id=recipient,
        subject="Attendance Alert: Kigali Worship Night",
        message="2 member(s) from Alpha missed the university event",
        event_type=ATTENDANCE_MISS,
        event_id=1,
        metadata=metadata or {"totalAbsent": 2},
        dedupe_key=key,
        org=OrgIds(region_id=1, university_id=1, small_group_id=1),
    )


def test_tree_lookups(seeded, repository):
    group = repository.get_small_group(seeded.alpha)

    assert group.name == "Alpha"
    assert (group.university_id, group.region_id) == (seeded.uok, seeded.kigali)
    assert repository.get_university(seeded.ur).region_id == seeded.huye
    assert repository.get_graduate_group(seeded.grads).region_id == seeded.kigali
    assert repository.get_region(999) is None
    assert [g.name for g in repository.list_small_groups(seeded.uok)] == ["Alpha", "Beta"]


def test_list_absent_members_only_returns_absentees_of_the_group(seeded, repository):
    alpha = repository.list_absent_members(seeded.alpha, seeded.event)
    beta = repository.list_absent_members(seeded.beta, seeded.event)

    assert [m.firstname for m in alpha] == ["Jean", "Grace"]
    assert alpha[1].phone is None
    assert beta == []


def test_list_leaders_dedupes_and_skips_inactive(seeded, session_factory, repository):
    with session_factory() as db:
        # a second role for the same leader, and an inactive leader
        db.add(UserRole(user_id="alpha-lead", scope="smallgroup", small_group_id=seeded.alpha))
        db.add(User(id="gone", name="Gone", is_active=False))
        db.flush()
        db.add(UserRole(user_id="gone", scope="smallgroup", small_group_id=seeded.alpha))
        db.commit()

    leaders = repository.list_leaders("smallgroup", small_group_id=seeded.alpha)

    assert [leader.principal_id for leader in leaders] == ["alpha-lead"]
    assert leaders[0].name == "Aline Alpha"
    assert [leader.principal_id for leader in repository.list_leaders("university", university_id=seeded.uok)] == [
        "uok-lead"
    ]


def test_get_event_maps_the_date_column(seeded, repository):
    event = repository.get_event(seeded.event)

    assert event.name == "Kigali Worship Night"
    assert event.event_date.isoformat() == "2026-03-14"
    assert event.university_id == seeded.uok


def test_upsert_without_changes_is_idempotent_per_key(seeded, repository):
    first, outcome = repository.upsert_notification(_new(), lambda existing: None)
    second, outcome_again = repository.upsert_notification(_new(), lambda existing: None)

    assert (outcome, outcome_again) == ("created", "unchanged")
    assert first.id == second.id
    assert repository.get_notification(first.id).metadata == {"totalAbsent": 2}
    assert first.small_group_id == 1


def test_upsert_notification_creates_then_merges(seeded, repository):
    new = NewNotification(
        recipient_id="uok-lead",
        subject="Event Acknowledgment: Kigali Worship Night",
        message="first",
        event_type=UNIVERSITY_ACKNOWLEDGMENT,
        event_id=seeded.event,
        metadata={"groups": [1]},
        dedupe_key="ack-1",
    )

    def merge(existing):
        if 2 in existing["groups"]:
            return None
        return {"groups": existing["groups"] + [2]}, "second"

    created, outcome = repository.upsert_notification(new, merge)
    updated, outcome2 = repository.upsert_notification(new, merge)
    unchanged, outcome3 = repository.upsert_notification(new, merge)

    assert (outcome, outcome2, outcome3) == ("created", "updated", "unchanged")
    assert created.id == updated.id == unchanged.id
    assert updated.metadata == {"groups": [1, 2]}
    assert updated.message == "second"


def test_preferences_default_to_none(seeded, session_factory, repository):
    assert repository.get_preference("alpha-lead") is None

    with session_factory() as db:
        db.add(NotificationPreference(user_id="alpha-lead", attendance_alerts=False))
        db.commit()

    assert repository.get_preference("alpha-lead").attendance_alerts is False


def test_upsert_reopen_resets_read_state(seeded, session_factory, repository):
    created, _ = repository.upsert_notification(_new(), lambda existing: None)
    with session_factory() as db:
        row = db.get(Notification, created.id)
        row.status = "marked"
        row.read_at = datetime(2026, 3, 14, 20, 0)
        db.commit()

    untouched, outcome = repository.upsert_notification(_new(), lambda existing: None, reopen=True)
    assert outcome == "unchanged"
    assert untouched.read_at is not None

    updated, outcome = repository.upsert_notification(
        _new(), lambda existing: ({"totalAbsent": 3}, "3 member(s) from Alpha missed the university event"), reopen=True
    )

    assert outcome == "updated"
    assert updated.metadata == {"totalAbsent": 3}
    assert (updated.status, updated.read_at) == ("sent", None)


def test_concurrent_create_of_one_key_falls_back_to_merge(seeded, repository, monkeypatch, caplog):
    # both writers see no row, then both insert; the loser must merge
    barrier = threading.Barrier(2, timeout=5)
    original = repository_module._find_by_key

    def find_then_meet(db, key, for_update=False):
        row = original(db, key, for_update=for_update)
        if row is None:
            barrier.wait()
        return row

    monkeypatch.setattr(repository_module, "_find_by_key", find_then_meet)

    def merge_entry(group_id):
        def merge(existing):
            groups = existing.get("groups", [])
            if group_id in groups:
                return None
            return {"groups": sorted(groups + [group_id])}, f"{len(groups) + 1} groups"

        return merge

    outcomes: dict[int, str] = {}
    errors: list[Exception] = []

    def write(group_id):
        try:
            _, outcomes[group_id] = repository.upsert_notification(
                _new(recipient="uok-lead", key="ack-race", groups=[group_id]), merge_entry(group_id)
            )
        except Exception as exc:
            errors.append(exc)

    caplog.set_level(logging.INFO, logger="orgscope.repository")
    threads = [threading.Thread(target=write, args=(gid,)) for gid in (1, 2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert errors == []
    assert sorted(outcomes.values()) == ["created", "updated"]
    with repository._session_factory() as db:
        (row,) = db.scalars(select(Notification).where(Notification.dedupe_key == "ack-race")).all()
    assert row.payload == {"groups": [1, 2]}
    assert row.message == "2 groups"
    assert "merging instead" in caplog.text
