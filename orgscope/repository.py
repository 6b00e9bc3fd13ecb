"""
Data access interface consumed by the scope resolver, the hierarchy check and
the notification cascade.

``SqlRepository`` opens one short-lived session per call, so a single
instance can be shared by request handlers and cascade worker threads.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
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
from orgscope.models.attendance import Attendance, AttendanceEvent
from orgscope.models.notification import Notification, NotificationPreference
from orgscope.models.organization import GraduateSmallGroup, Region, SmallGroup, University
from orgscope.models.people import Member
from orgscope.models.security import User, UserRole

logger = logging.getLogger(__name__)

# merge(existing_metadata) -> (new_metadata, new_message), or None to leave the row untouched.
MergeFn = Callable[[dict[str, Any]], tuple[dict[str, Any], str] | None]


class OrgRepository(Protocol):
    def get_principal(self, principal_id: str) -> Principal | None: ...

    def get_role_assignments(self, principal_id: str) -> list[RoleAssignment]: ...

    def get_region(self, region_id: int) -> RegionRecord | None: ...

    def get_university(self, university_id: int) -> UniversityRecord | None: ...

    def get_small_group(self, small_group_id: int) -> SmallGroupRecord | None: ...

    def get_graduate_group(self, graduate_group_id: int) -> GraduateGroupRecord | None: ...

    def list_small_groups(self, university_id: int) -> list[SmallGroupRecord]: ...

    def list_leaders(
        self,
        scope: str,
        *,
        small_group_id: int | None = None,
        university_id: int | None = None,
    ) -> list[Leader]: ...

    def list_absent_members(self, small_group_id: int, event_id: int) -> list[AbsentMember]: ...

    def get_event(self, event_id: int) -> AttendanceEventRecord | None: ...

    def get_preference(self, principal_id: str) -> PreferenceRecord | None: ...

    def get_notification(self, notification_id: int) -> NotificationRecord | None: ...

    def upsert_notification(
        self,
        new: NewNotification,
        merge: MergeFn,
        *,
        reopen: bool = False,
    ) -> tuple[NotificationRecord, str]: ...


class SqlRepository:
    """SQLAlchemy implementation of ``OrgRepository``."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # ---- Principals and roles -------------------------------------------------------

    def get_principal(self, principal_id: str) -> Principal | None:
        with self._session_factory() as db:
            user = db.get(User, principal_id)
            if user is None:
                return None
            return Principal(id=user.id, name=user.name, email=user.email, is_active=user.is_active)

    def get_role_assignments(self, principal_id: str) -> list[RoleAssignment]:
        with self._session_factory() as db:
            roles = db.scalars(select(UserRole).where(UserRole.user_id == principal_id).order_by(UserRole.id)).all()
            return [_role_record(r) for r in roles]

    # ---- Organization tree ----------------------------------------------------------

    def get_region(self, region_id: int) -> RegionRecord | None:
        with self._session_factory() as db:
            region = db.get(Region, region_id)
            return RegionRecord(id=region.id, name=region.name) if region else None

    def get_university(self, university_id: int) -> UniversityRecord | None:
        with self._session_factory() as db:
            uni = db.get(University, university_id)
            return UniversityRecord(id=uni.id, name=uni.name, region_id=uni.region_id) if uni else None

    def get_small_group(self, small_group_id: int) -> SmallGroupRecord | None:
        with self._session_factory() as db:
            group = db.get(SmallGroup, small_group_id)
            return _group_record(group) if group else None

    def get_graduate_group(self, graduate_group_id: int) -> GraduateGroupRecord | None:
        with self._session_factory() as db:
            group = db.get(GraduateSmallGroup, graduate_group_id)
            if group is None:
                return None
            return GraduateGroupRecord(id=group.id, name=group.name, region_id=group.region_id)

    def list_small_groups(self, university_id: int) -> list[SmallGroupRecord]:
        with self._session_factory() as db:
            groups = db.scalars(
                select(SmallGroup).where(SmallGroup.university_id == university_id).order_by(SmallGroup.id)
            ).all()
            return [_group_record(g) for g in groups]

    def list_leaders(
        self,
        scope: str,
        *,
        small_group_id: int | None = None,
        university_id: int | None = None,
    ) -> list[Leader]:
        stmt = select(UserRole.user_id, User.name).join(User, User.id == UserRole.user_id).where(UserRole.scope == scope)
        if small_group_id is not None:
            stmt = stmt.where(UserRole.small_group_id == small_group_id)
        if university_id is not None:
            stmt = stmt.where(UserRole.university_id == university_id)
        stmt = stmt.where(User.is_active.is_(True)).order_by(UserRole.id)

        with self._session_factory() as db:
            seen: dict[str, Leader] = {}
            for user_id, name in db.execute(stmt).all():
                seen.setdefault(user_id, Leader(principal_id=user_id, name=name))
            return list(seen.values())

    def list_absent_members(self, small_group_id: int, event_id: int) -> list[AbsentMember]:
        stmt = (
            select(Member)
            .join(Attendance, Attendance.member_id == Member.id)
            .where(
                Attendance.event_id == event_id,
                Attendance.status == "absent",
                Member.small_group_id == small_group_id,
            )
            .order_by(Member.id)
        )
        with self._session_factory() as db:
            return [
                AbsentMember(
                    id=m.id,
                    firstname=m.firstname,
                    secondname=m.secondname,
                    phone=m.phone,
                    email=m.email,
                )
                for m in db.scalars(stmt).all()
            ]

    def get_event(self, event_id: int) -> AttendanceEventRecord | None:
        with self._session_factory() as db:
            event = db.get(AttendanceEvent, event_id)
            return event_record(event) if event else None

    # ---- Notifications --------------------------------------------------------------

    def get_preference(self, principal_id: str) -> PreferenceRecord | None:
        with self._session_factory() as db:
            pref = db.get(NotificationPreference, principal_id)
            if pref is None:
                return None
            return PreferenceRecord(
                principal_id=pref.user_id,
                attendance_alerts=pref.attendance_alerts,
                event_reminders=pref.event_reminders,
                in_app_enabled=pref.in_app_enabled,
            )

    def get_notification(self, notification_id: int) -> NotificationRecord | None:
        with self._session_factory() as db:
            row = db.get(Notification, notification_id)
            return notification_record(row) if row else None

    def upsert_notification(
        self,
        new: NewNotification,
        merge: MergeFn,
        *,
        reopen: bool = False,
    ) -> tuple[NotificationRecord, str]:
        """
        Atomic create-or-merge keyed by ``dedupe_key``.

        The existing row is read with ``FOR UPDATE`` (where the database
        supports it) and rewritten in the same transaction. A concurrent
        insert of the same key surfaces as an IntegrityError and is retried
        as a merge. Returns ``(record, "created" | "updated" | "unchanged")``.
        With ``reopen`` an applied merge also resets ``status`` and clears
        ``read_at``, so the recipient sees the changed row as new.
        """

        for _attempt in range(2):
            with self._session_factory() as db:
                row = _find_by_key(db, new.dedupe_key, for_update=True)
                if row is not None:
                    merged = merge(dict(row.payload or {}))
                    if merged is None:
                        return notification_record(row), "unchanged"
                    row.payload, row.message = merged
                    if reopen:
                        row.status = new.status
                        row.read_at = None
                    db.commit()
                    db.refresh(row)
                    return notification_record(row), "updated"

                row = _new_row(new)
                db.add(row)
                try:
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    logger.info("Concurrent insert for key=%s; merging instead", new.dedupe_key)
                    continue
                db.refresh(row)
                return notification_record(row), "created"

        raise RuntimeError(f"could not upsert notification key={new.dedupe_key}")


def _find_by_key(db: Session, key: str, for_update: bool = False) -> Notification | None:
    stmt = select(Notification).where(Notification.dedupe_key == key)
    if for_update:
        stmt = stmt.with_for_update()
    return db.scalars(stmt).first()


def _new_row(new: NewNotification) -> Notification:
    return Notification(
        user_id=new.recipient_id,
        type=new.type,
        subject=new.subject,
        message=new.message,
        event_type=new.event_type,
        event_id=new.event_id,
        payload=new.metadata,
        status=new.status,
        dedupe_key=new.dedupe_key,
        region_id=new.org.region_id,
        university_id=new.org.university_id,
        small_group_id=new.org.small_group_id,
        graduate_group_id=new.org.graduate_group_id,
    )


def _role_record(role: UserRole) -> RoleAssignment:
    return RoleAssignment(
        id=role.id,
        principal_id=role.user_id,
        scope=role.scope,
        region_id=role.region_id,
        university_id=role.university_id,
        small_group_id=role.small_group_id,
        graduate_group_id=role.graduate_group_id,
    )


def _group_record(group: SmallGroup) -> SmallGroupRecord:
    return SmallGroupRecord(id=group.id, name=group.name, university_id=group.university_id, region_id=group.region_id)


def event_record(event: AttendanceEvent) -> AttendanceEventRecord:
    return AttendanceEventRecord(
        id=event.id,
        kind=event.kind,
        name=event.name,
        event_date=event.event_date,
        university_id=event.university_id,
        region_id=event.region_id,
    )


def notification_record(row: Notification) -> NotificationRecord:
    return NotificationRecord(
        id=row.id,
        recipient_id=row.user_id,
        type=row.type,
        subject=row.subject,
        message=row.message,
        event_type=row.event_type,
        event_id=row.event_id,
        metadata=dict(row.payload or {}),
        status=row.status,
        created_at=row.created_at,
        read_at=row.read_at,
        region_id=row.region_id,
        university_id=row.university_id,
        small_group_id=row.small_group_id,
        graduate_group_id=row.graduate_group_id,
    )
