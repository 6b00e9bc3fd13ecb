"""
Pytest fixtures for the test suite.

Data-layer tests use a file-backed SQLite engine under ``tmp_path`` (cascade
worker threads open their own connections, so ``:memory:`` would not be
shared). ``db_session`` rolls back after each test. ``fake_repo`` is an
in-memory repository used to inject failures and race acknowledgments.
"""
from __future__ import annotations

import itertools
import threading
import time
from dataclasses import replace
from datetime import date, datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from orgscope.contracts import (
    AbsentMember,
    AttendanceEventRecord,
    GraduateGroupRecord,
    Leader,
    NewNotification,
    NotificationRecord,
    PreferenceRecord,
    Principal,
    RegionRecord,
    RoleAssignment,
    SmallGroupRecord,
    UniversityRecord,
)


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite database file per test."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'orgscope-test.db'}",
        connect_args={"check_same_thread": False},
        echo=False,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from orgscope.db.init_db import init_db

    init_db(engine, seed=False)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.

    The transaction is rolled back so the next test gets a clean state.
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def session_factory(tables):
    from orgscope.db.session import make_session_factory

    return make_session_factory(tables)


@pytest.fixture
def seeded(session_factory):
    """Seed the demo Kigali tree (committed) and return its ids by name."""
    from orgscope.db.init_db import seed_demo_data

    with session_factory() as db:
        seed_demo_data(db)
        return demo_ids(db)


@pytest.fixture
def repository(session_factory):
    from orgscope.repository import SqlRepository

    return SqlRepository(session_factory)


@pytest.fixture
def client(tables, seeded):
    """
    TestClient over an app bound to the seeded test engine.

    The app's dispatcher is swapped for one that remembers its tasks, so tests
    can wait for queued cascade work with ``client.wait_for_cascade()``.
    """
    from orgscope.main import create_app
    from orgscope.services.cascade import NotificationCascade

    app = create_app(engine=tables, seed=False)
    with TestClient(app) as test_client:
        app.state.dispatcher.shutdown(wait=True)
        cascade = NotificationCascade(app.state.repository, fanout_timeout_seconds=10, retry_base_delay=0)
        recording = RecordingDispatcher(cascade)
        app.state.dispatcher = recording
        test_client.wait_for_cascade = recording.wait_all
        test_client.ids = seeded
        yield test_client


@pytest.fixture
def fake_repo():
    return FakeRepository()


def auth(principal_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {principal_id}"}


def demo_ids(db: Session) -> SimpleNamespace:
    from orgscope.models.attendance import AttendanceEvent
    from orgscope.models.organization import GraduateSmallGroup, Property, Region, SmallGroup, University
    from orgscope.models.people import Member

    def by_name(model, name):
        return db.scalars(select(model.id).where(model.name == name)).one()

    def member(firstname):
        return db.scalars(select(Member.id).where(Member.firstname == firstname)).one()

    return SimpleNamespace(
        kigali=by_name(Region, "Kigali"),
        huye=by_name(Region, "Huye"),
        uok=by_name(University, "UoK"),
        ur=by_name(University, "UR Huye"),
        alpha=by_name(SmallGroup, "Alpha"),
        beta=by_name(SmallGroup, "Beta"),
        gamma=by_name(SmallGroup, "Gamma"),
        grads=by_name(GraduateSmallGroup, "Kigali Graduates"),
        kigali_office=by_name(Property, "Kigali Office"),
        event=by_name(AttendanceEvent, "Kigali Worship Night"),
        m1=member("Jean"),
        m2=member("Grace"),
        m3=member("Eric"),
        m4=member("Alice"),
        m5=member("Paul"),
    )


class RecordingDispatcher:
    """CascadeDispatcher that keeps every task so tests can wait on them."""

    def __init__(self, cascade):
        from orgscope.services.dispatcher import CascadeDispatcher

        self._inner = CascadeDispatcher(cascade, max_workers=2)
        self.tasks = []

    def on_attendance_recorded(self, event):
        task = self._inner.on_attendance_recorded(event)
        self.tasks.append(task)
        return task

    def on_notification_marked_read(self, notification_id, principal_id):
        task = self._inner.on_notification_marked_read(notification_id, principal_id)
        self.tasks.append(task)
        return task

    def wait_all(self, timeout: float = 10.0):
        return [task.result(timeout=timeout) for task in self.tasks]

    def shutdown(self, wait: bool = True):
        self._inner.shutdown(wait=wait)


class FakeRepository:
    """
    In-memory ``OrgRepository``.

    Thread-safe for single calls. ``upsert_notification`` deliberately reads
    and writes in two steps (with ``upsert_delay`` in between) so only the
    cascade's own locking keeps concurrent rollups consistent.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self.principals: dict[str, Principal] = {}
        self.roles: list[RoleAssignment] = []
        self.regions: dict[int, RegionRecord] = {}
        self.universities: dict[int, UniversityRecord] = {}
        self.small_groups: dict[int, SmallGroupRecord] = {}
        self.graduate_groups: dict[int, GraduateGroupRecord] = {}
        self.events: dict[int, AttendanceEventRecord] = {}
        self.absent: dict[tuple[int, int], list[AbsentMember]] = {}
        self.preferences: dict[str, PreferenceRecord] = {}
        self.notifications: dict[int, NotificationRecord] = {}
        self.keys: dict[str, int] = {}

        # failure injection
        self.write_failures: dict[str, int] = {}  # recipient -> failures left (-1 = always)
        self.write_attempts: dict[str, int] = {}
        self.upsert_delay = 0.0
        self.fail_small_group_listing = False

    # ---- builders -------------------------------------------------------------------

    def add_region(self, id: int, name: str) -> RegionRecord:
        self.regions[id] = RegionRecord(id=id, name=name)
        return self.regions[id]

    def add_university(self, id: int, name: str, region_id: int) -> UniversityRecord:
        self.universities[id] = UniversityRecord(id=id, name=name, region_id=region_id)
        return self.universities[id]

    def add_small_group(self, id: int, name: str, university_id: int) -> SmallGroupRecord:
        region_id = self.universities[university_id].region_id
        self.small_groups[id] = SmallGroupRecord(id=id, name=name, university_id=university_id, region_id=region_id)
        return self.small_groups[id]

    def add_graduate_group(self, id: int, name: str, region_id: int | None) -> GraduateGroupRecord:
        self.graduate_groups[id] = GraduateGroupRecord(id=id, name=name, region_id=region_id)
        return self.graduate_groups[id]

    def add_principal(self, id: str, name: str | None = None, scope: str | None = None, active: bool = True, **ids):
        self.principals[id] = Principal(id=id, name=name or id, email=None, is_active=active)
        if scope is not None:
            self.add_role(id, scope, **ids)
        return self.principals[id]

    def add_role(self, principal_id: str, scope: str, **ids) -> RoleAssignment:
        role = RoleAssignment(id=len(self.roles) + 1, principal_id=principal_id, scope=scope, **ids)
        self.roles.append(role)
        return role

    def add_event(self, id: int, name: str, university_id: int | None, kind: str = "permanent"):
        region_id = self.universities[university_id].region_id if university_id else None
        self.events[id] = AttendanceEventRecord(
            id=id,
            kind=kind,
            name=name,
            event_date=date(2026, 3, 14),
            university_id=university_id,
            region_id=region_id,
        )
        return self.events[id]

    def mark_absent(self, event_id: int, small_group_id: int, *members: AbsentMember) -> None:
        self.absent.setdefault((small_group_id, event_id), []).extend(members)

    def opt_out(self, principal_id: str) -> None:
        self.preferences[principal_id] = PreferenceRecord(principal_id=principal_id, attendance_alerts=False)

    def by_type(self, event_type: str, recipient_id: str | None = None) -> list[NotificationRecord]:
        with self._lock:
            return [
                n
                for n in self.notifications.values()
                if n.event_type == event_type and (recipient_id is None or n.recipient_id == recipient_id)
            ]

    # ---- OrgRepository --------------------------------------------------------------

    def get_principal(self, principal_id):
        return self.principals.get(principal_id)

    def get_role_assignments(self, principal_id):
        return sorted((r for r in self.roles if r.principal_id == principal_id), key=lambda r: r.id)

    def get_region(self, region_id):
        return self.regions.get(region_id)

    def get_university(self, university_id):
        return self.universities.get(university_id)

    def get_small_group(self, small_group_id):
        return self.small_groups.get(small_group_id)

    def get_graduate_group(self, graduate_group_id):
        return self.graduate_groups.get(graduate_group_id)

    def list_small_groups(self, university_id):
        if self.fail_small_group_listing:
            raise RuntimeError("store unavailable")
        return sorted((g for g in self.small_groups.values() if g.university_id == university_id), key=lambda g: g.id)

    def list_leaders(self, scope, *, small_group_id=None, university_id=None):
        leaders: dict[str, Leader] = {}
        for role in sorted(self.roles, key=lambda r: r.id):
            if role.scope != scope:
                continue
            if small_group_id is not None and role.small_group_id != small_group_id:
                continue
            if university_id is not None and role.university_id != university_id:
                continue
            principal = self.principals.get(role.principal_id)
            if principal is None or not principal.is_active:
                continue
            leaders.setdefault(principal.id, Leader(principal_id=principal.id, name=principal.name))
        return list(leaders.values())

    def list_absent_members(self, small_group_id, event_id):
        return list(self.absent.get((small_group_id, event_id), []))

    def get_event(self, event_id):
        return self.events.get(event_id)

    def get_preference(self, principal_id):
        return self.preferences.get(principal_id)

    def get_notification(self, notification_id):
        with self._lock:
            return self.notifications.get(notification_id)

    def upsert_notification(self, new: NewNotification, merge, *, reopen=False):
        with self._lock:
            self.write_attempts[new.recipient_id] = self.write_attempts.get(new.recipient_id, 0) + 1
            left = self.write_failures.get(new.recipient_id, 0)
            if left:
                if left > 0:
                    self.write_failures[new.recipient_id] = left - 1
                raise RuntimeError(f"write failed for {new.recipient_id}")
            existing_id = self.keys.get(new.dedupe_key)
            existing = self.notifications.get(existing_id) if existing_id else None
        if self.upsert_delay:
            time.sleep(self.upsert_delay)
        with self._lock:
            if existing is None:
                record = self._record(new)
                return record, "created"
            merged = merge(dict(existing.metadata))
            if merged is None:
                return existing, "unchanged"
            metadata, message = merged
            updated = replace(existing, metadata=metadata, message=message)
            if reopen:
                updated = replace(updated, status=new.status, read_at=None)
            self.notifications[existing.id] = updated
            return updated, "updated"

    def _record(self, new: NewNotification) -> NotificationRecord:
        record = NotificationRecord(
            id=next(self._ids),
            recipient_id=new.recipient_id,
            type=new.type,
            subject=new.subject,
            message=new.message,
            event_type=new.event_type,
            event_id=new.event_id,
            metadata=dict(new.metadata),
            status=new.status,
            created_at=datetime.utcnow(),
            region_id=new.org.region_id,
            university_id=new.org.university_id,
            small_group_id=new.org.small_group_id,
            graduate_group_id=new.org.graduate_group_id,
        )
        self.notifications[record.id] = record
        self.keys[new.dedupe_key] = record.id
        return record
