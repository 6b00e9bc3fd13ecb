"""Attendance fan-out against the in-memory repository."""
from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime

import pytest

from orgscope.contracts import ATTENDANCE_MISS, AbsentMember
from orgscope.services.cascade import NotificationCascade


def _cascade(repo, **kwargs) -> NotificationCascade:
    kwargs.setdefault("retry_base_delay", 0)
    kwargs.setdefault("fanout_timeout_seconds", 10)
    return NotificationCascade(repo, **kwargs)


@pytest.fixture
def university(fake_repo):
    fake_repo.add_region(1, "Kigali")
    fake_repo.add_university(10, "UoK", region_id=1)
    fake_repo.add_event(7, "Worship Night", university_id=10)
    return fake_repo


def _member(id: int, firstname: str | None = "Member", phone: str | None = "0788") -> AbsentMember:
    return AbsentMember(id=id, firstname=firstname, secondname=str(id), phone=phone)


def test_k_groups_with_absentees_times_l_leaders(university):
    repo = university
    # 5 groups, 3 with absentees, 2 leaders each
    for gid in range(100, 105):
        repo.add_small_group(gid, f"Group {gid}", university_id=10)
        for n in range(2):
            repo.add_principal(f"lead-{gid}-{n}", scope="smallgroup", small_group_id=gid)
    for gid in (100, 102, 104):
        repo.mark_absent(7, gid, _member(gid * 10), _member(gid * 10 + 1))

    report = _cascade(repo).send_attendance_notifications(repo.events[7])

    alerts = repo.by_type(ATTENDANCE_MISS)
    assert report.ok
    assert len(alerts) == 3 * 2
    assert len(report.created) == 6
    for alert in alerts:
        gid = alert.small_group_id
        assert alert.recipient_id.startswith(f"lead-{gid}-")
        assert {m["id"] for m in alert.metadata["absentMembers"]} == {gid * 10, gid * 10 + 1}
    assert report.skipped_groups == {101: "no absentees", 103: "no absentees"}


def test_notification_content(university):
    repo = university
    repo.add_small_group(100, "Alpha", university_id=10)
    repo.add_principal("alpha-lead", scope="smallgroup", small_group_id=100)
    repo.mark_absent(7, 100, _member(1, "Jean"), _member(2, firstname=None, phone=None))

    _cascade(repo).send_attendance_notifications(repo.events[7])

    (alert,) = repo.by_type(ATTENDANCE_MISS)
    assert alert.subject == "Attendance Alert: Worship Night"
    assert alert.message == "2 member(s) from Alpha missed the university event"
    assert (alert.region_id, alert.university_id, alert.small_group_id) == (1, 10, 100)
    assert alert.metadata == {
        "eventId": 7,
        "eventType": "permanent",
        "eventName": "Worship Night",
        "eventDate": "2026-03-14",
        "smallGroupId": 100,
        "smallGroupName": "Alpha",
        "absentMembers": [
            {"id": 1, "name": "Jean 1", "phone": "0788"},
            {"id": 2, "name": "Unknown 2", "phone": "N/A"},
        ],
        "totalAbsent": 2,
    }


def test_opt_out_skips_only_that_leader(university):
    repo = university
    repo.add_small_group(100, "Alpha", university_id=10)
    repo.add_principal("lead-a", scope="smallgroup", small_group_id=100)
    repo.add_principal("lead-b", scope="smallgroup", small_group_id=100)
    repo.opt_out("lead-b")
    repo.mark_absent(7, 100, _member(1))

    report = _cascade(repo).send_attendance_notifications(repo.events[7])

    assert [n.recipient_id for n in repo.by_type(ATTENDANCE_MISS)] == ["lead-a"]
    assert report.opted_out == ["lead-b"]


def test_group_without_leaders_is_skipped(university):
    repo = university
    repo.add_small_group(100, "Alpha", university_id=10)
    repo.mark_absent(7, 100, _member(1))

    report = _cascade(repo).send_attendance_notifications(repo.events[7])

    assert report.ok
    assert repo.by_type(ATTENDANCE_MISS) == []
    assert report.skipped_groups == {100: "no leaders"}


def test_inactive_leaders_are_not_notified(university):
    repo = university
    repo.add_small_group(100, "Alpha", university_id=10)
    repo.add_principal("gone", scope="smallgroup", small_group_id=100, active=False)
    repo.mark_absent(7, 100, _member(1))

    _cascade(repo).send_attendance_notifications(repo.events[7])

    assert repo.by_type(ATTENDANCE_MISS) == []


def test_transient_failure_is_retried(university):
    repo = university
    repo.add_small_group(100, "Alpha", university_id=10)
    repo.add_principal("flaky", scope="smallgroup", small_group_id=100)
    repo.mark_absent(7, 100, _member(1))
    repo.write_failures["flaky"] = 2

    report = _cascade(repo, max_attempts=3).send_attendance_notifications(repo.events[7])

    assert repo.write_attempts["flaky"] == 3
    assert len(repo.by_type(ATTENDANCE_MISS, "flaky")) == 1
    assert report.failures == []


def test_permanent_failure_does_not_abort_siblings(university):
    repo = university
    repo.add_small_group(100, "Alpha", university_id=10)
    repo.add_small_group(101, "Beta", university_id=10)
    repo.add_principal("broken", scope="smallgroup", small_group_id=100)
    repo.add_principal("alpha-ok", scope="smallgroup", small_group_id=100)
    repo.add_principal("beta-ok", scope="smallgroup", small_group_id=101)
    repo.mark_absent(7, 100, _member(1))
    repo.mark_absent(7, 101, _member(2))
    repo.write_failures["broken"] = -1

    report = _cascade(repo, max_attempts=2).send_attendance_notifications(repo.events[7])

    assert report.ok
    assert sorted(n.recipient_id for n in repo.by_type(ATTENDANCE_MISS)) == ["alpha-ok", "beta-ok"]
    assert [(f.recipient_id, f.small_group_id) for f in report.failures] == [("broken", 100)]
    assert repo.write_attempts["broken"] == 2


def test_rerun_does_not_duplicate(university):
    repo = university
    repo.add_small_group(100, "Alpha", university_id=10)
    repo.add_principal("alpha-lead", scope="smallgroup", small_group_id=100)
    repo.mark_absent(7, 100, _member(1))
    cascade = _cascade(repo)

    first = cascade.send_attendance_notifications(repo.events[7])
    second = cascade.send_attendance_notifications(repo.events[7])

    assert len(first.created) == 1
    assert second.created == []
    assert second.duplicates == 1
    assert len(repo.by_type(ATTENDANCE_MISS)) == 1


def test_rerun_with_new_absentees_refreshes_the_alert(university):
    repo = university
    repo.add_small_group(100, "Alpha", university_id=10)
    repo.add_principal("alpha-lead", scope="smallgroup", small_group_id=100)
    repo.mark_absent(7, 100, _member(1))
    cascade = _cascade(repo)
    first = cascade.send_attendance_notifications(repo.events[7])
    (alert,) = repo.by_type(ATTENDANCE_MISS)
    repo.notifications[alert.id] = replace(alert, status="marked", read_at=datetime(2026, 3, 14, 20, 0))

    repo.mark_absent(7, 100, _member(2))
    second = cascade.send_attendance_notifications(repo.events[7])

    assert second.created == []
    assert second.updated == first.created
    (refreshed,) = repo.by_type(ATTENDANCE_MISS)
    assert refreshed.id == alert.id
    assert [m["id"] for m in refreshed.metadata["absentMembers"]] == [1, 2]
    assert refreshed.metadata["totalAbsent"] == 2
    assert refreshed.message == "2 member(s) from Alpha missed the university event"
    assert (refreshed.status, refreshed.read_at) == ("sent", None)


def test_university_lookup_failure_reports_not_ok(university):
    university.fail_small_group_listing = True

    report = _cascade(university).send_attendance_notifications(university.events[7])

    assert report.ok is False


def test_event_without_university_reports_not_ok(university):
    event = university.add_event(8, "Regional retreat", university_id=None)

    assert _cascade(university).send_attendance_notifications(event).ok is False


def test_deadline_cancels_pending_work(university):
    repo = university
    repo.add_small_group(100, "Alpha", university_id=10)
    for n in range(4):
        repo.add_principal(f"lead-{n}", scope="smallgroup", small_group_id=100)
    repo.mark_absent(7, 100, _member(1))
    repo.upsert_delay = 0.5

    report = _cascade(repo, max_workers=1, fanout_timeout_seconds=0.2).send_attendance_notifications(repo.events[7])

    assert report.timed_out
    assert not report.cancelled
    assert len(report.created) < 4


def test_cancel_before_start_sends_nothing(university):
    repo = university
    repo.add_small_group(100, "Alpha", university_id=10)
    repo.add_principal("alpha-lead", scope="smallgroup", small_group_id=100)
    repo.mark_absent(7, 100, _member(1))
    cancel = threading.Event()
    cancel.set()

    report = _cascade(repo).send_attendance_notifications(repo.events[7], cancel=cancel)

    assert report.cancelled
    assert repo.by_type(ATTENDANCE_MISS) == []
