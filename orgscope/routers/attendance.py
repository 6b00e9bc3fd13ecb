from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgscope.contracts import OrgIds
from orgscope.db.session import get_db
from orgscope.errors import NotFound
from orgscope.models.attendance import Attendance, AttendanceEvent
from orgscope.models.people import Member
from orgscope.repository import event_record
from orgscope.schemas.attendance import AttendanceRecorded, AttendanceRecordRequest
from orgscope.scope.predicates import ensure_can_act
from orgscope.scope.types import EntityType
from orgscope.security.context import AuthzContext
from orgscope.security.dependencies import get_authz, get_dispatcher
from orgscope.services.dispatcher import CascadeDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["attendance"])


@router.post("/{id}/attendance", response_model=AttendanceRecorded)
def record_attendance(
    id: int,
    payload: AttendanceRecordRequest,
    authz: AuthzContext = Depends(get_authz),
    dispatcher: CascadeDispatcher = Depends(get_dispatcher),
    db: Session = Depends(get_db),
) -> AttendanceRecorded:
    """
    Record attendance statuses for an event, then hand the absentee fan-out
    to the cascade dispatcher. The response does not wait for notifications.
    """

    event = db.scalars(select(AttendanceEvent).where(AttendanceEvent.id == id)).first()
    if event is None:
        raise NotFound("Event")

    member_ids = {mark.member_id for mark in payload.records}
    members = {m.id: m for m in db.scalars(select(Member).where(Member.id.in_(member_ids))).all()}
    missing = member_ids - members.keys()
    if missing:
        raise NotFound("Member")

    # Every mark is checked before the first write.
    for member in members.values():
        ensure_can_act(
            authz.scope,
            EntityType.ATTENDANCE,
            OrgIds(
                region_id=member.region_id,
                university_id=member.university_id,
                small_group_id=member.small_group_id,
                graduate_group_id=member.graduate_group_id,
            ),
        )

    existing = {
        a.member_id: a
        for a in db.scalars(
            select(Attendance).where(Attendance.event_id == event.id, Attendance.member_id.in_(member_ids))
        ).all()
    }
    for mark in payload.records:
        row = existing.get(mark.member_id)
        if row is None:
            row = Attendance(event_id=event.id, member_id=mark.member_id, status=mark.status)
            db.add(row)
            existing[mark.member_id] = row
        else:
            row.status = mark.status
    db.commit()

    absent = sum(1 for row in existing.values() if row.status == "absent")
    queued = False
    if event.university_id is not None:
        dispatcher.on_attendance_recorded(event_record(event))
        queued = True
    else:
        logger.info("Event id=%s is not tied to a university; no absentee alerts", event.id)

    logger.info(
        "Attendance recorded event=%s marks=%d absent=%d by=%s", event.id, len(payload.records), absent, authz.principal_id
    )
    return AttendanceRecorded(event_id=event.id, recorded=len(payload.records), absent=absent, notifications_queued=queued)
