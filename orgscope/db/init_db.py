from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from orgscope.db.base import Base
from orgscope.models.attendance import Attendance, AttendanceEvent
from orgscope.models.notification import Notification, NotificationPreference  # noqa: F401  (register tables)
from orgscope.models.organization import GraduateSmallGroup, Property, Region, SmallGroup, University
from orgscope.models.people import Member
from orgscope.models.reporting import ReportSubmission
from orgscope.models.security import User, UserRole


def init_db(bind: Engine | None = None, seed: bool = True) -> None:
    """
    Create tables and, unless disabled, seed demo data.

    The seed is a small Kigali tree (one university, two small groups, one
    graduate group) with a principal for every scope tag, so the scoping and
    the notification cascade can be tried with ``Authorization: Bearer <id>``.
    """

    if bind is None:
        from orgscope.db.session import engine as bind

    Base.metadata.create_all(bind=bind)

    if not seed:
        return

    with Session(bind=bind) as db:
        if _has_seed_data(db):
            return
        seed_demo_data(db)


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Region.id).limit(1)).first() is not None


def seed_demo_data(db: Session) -> None:
    # Organization tree
    kigali = Region(name="Kigali")
    huye = Region(name="Huye")
    db.add_all([kigali, huye])
    db.flush()

    uok = University(name="UoK", region_id=kigali.id)
    ur = University(name="UR Huye", region_id=huye.id)
    db.add_all([uok, ur])
    db.flush()

    alpha = SmallGroup(name="Alpha", university_id=uok.id, region_id=kigali.id)
    beta = SmallGroup(name="Beta", university_id=uok.id, region_id=kigali.id)
    gamma = SmallGroup(name="Gamma", university_id=ur.id, region_id=huye.id)
    grads = GraduateSmallGroup(name="Kigali Graduates", region_id=kigali.id)
    db.add_all([alpha, beta, gamma, grads])
    db.flush()

    db.add_all(
        [
            Property(name="Kigali Office", description="Regional office", region_id=kigali.id),
            Property(name="Huye Hall", description=None, region_id=huye.id),
        ]
    )

    # Principals, one per scope tag
    users = [
        User(id="admin", name="Ada Admin", email="admin@example.org"),
        User(id="national", name="Nia National", email="national@example.org"),
        User(id="kigali-lead", name="Rita Region", email="kigali@example.org"),
        User(id="uok-lead", name="Uwase University", email="uok@example.org"),
        User(id="alpha-lead", name="Aline Alpha", email="alpha@example.org"),
        User(id="beta-lead", name="Bosco Beta", email="beta@example.org"),
        User(id="grad-lead", name="Gael Graduate", email="grads@example.org"),
    ]
    db.add_all(users)
    db.flush()

    db.add_all(
        [
            UserRole(user_id="admin", scope="superadmin"),
            UserRole(user_id="national", scope="national"),
            UserRole(user_id="kigali-lead", scope="region", region_id=kigali.id),
            UserRole(user_id="uok-lead", scope="university", region_id=kigali.id, university_id=uok.id),
            UserRole(
                user_id="alpha-lead",
                scope="smallgroup",
                region_id=kigali.id,
                university_id=uok.id,
                small_group_id=alpha.id,
            ),
            UserRole(
                user_id="beta-lead",
                scope="smallgroup",
                region_id=kigali.id,
                university_id=uok.id,
                small_group_id=beta.id,
            ),
            UserRole(
                user_id="grad-lead",
                scope="graduatesmallgroup",
                region_id=kigali.id,
                graduate_group_id=grads.id,
            ),
        ]
    )

    # Members
    m1 = Member(firstname="Jean", secondname="Mugisha", phone="0788000001", **_in_group(alpha))
    m2 = Member(firstname="Grace", secondname="Uwimana", phone=None, **_in_group(alpha))
    m3 = Member(firstname="Eric", secondname="Habimana", phone="0788000003", **_in_group(beta))
    m4 = Member(firstname="Alice", secondname="Ingabire", region_id=kigali.id, graduate_group_id=grads.id)
    m5 = Member(firstname="Paul", secondname="Nkurunziza", **_in_group(gamma))
    db.add_all([m1, m2, m3, m4, m5])
    db.flush()

    event = AttendanceEvent(
        name="Kigali Worship Night",
        kind="permanent",
        event_date=date(2026, 3, 14),
        region_id=kigali.id,
        university_id=uok.id,
    )
    db.add(event)
    db.flush()

    db.add_all(
        [
            Attendance(event_id=event.id, member_id=m1.id, status="absent"),
            Attendance(event_id=event.id, member_id=m2.id, status="absent"),
            Attendance(event_id=event.id, member_id=m3.id, status="present"),
        ]
    )

    db.add_all(
        [
            ReportSubmission(user_id="kigali-lead", region_id=kigali.id, title="Kigali Q1 report"),
            ReportSubmission(user_id="alpha-lead", region_id=kigali.id, title="Alpha monthly report"),
        ]
    )

    db.commit()


def _in_group(group: SmallGroup) -> dict[str, int]:
    return {"region_id": group.region_id, "university_id": group.university_id, "small_group_id": group.id}
