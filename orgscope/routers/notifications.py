from __future__ import annotations

import logging
import math
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from orgscope.contracts import ATTENDANCE_MISS
from orgscope.db.session import get_db
from orgscope.errors import AccessDenied, NotFound
from orgscope.models.notification import Notification, NotificationPreference
from orgscope.schemas.notification import (
    NotificationOut,
    NotificationPage,
    NotificationStatus,
    NotificationUpdate,
    PreferenceOut,
    PreferenceUpdate,
    UnreadCount,
)
from orgscope.security.context import AuthzContext
from orgscope.security.dependencies import get_authz, get_dispatcher
from orgscope.services.dispatcher import CascadeDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _inbox_owner(authz: AuthzContext, user_id: str | None) -> str:
    """The inbox is the caller's own; only superadmin may read someone else's."""

    if user_id is None or user_id == authz.principal_id:
        return authz.principal_id
    if not authz.is_superadmin:
        raise AccessDenied(f"principal {authz.principal_id} may not read inbox of {user_id}")
    return user_id


def _get_own(db: Session, authz: AuthzContext, id: int) -> Notification:
    notification = db.scalars(
        select(Notification).where(Notification.id == id, Notification.user_id == authz.principal_id)
    ).first()
    if notification is None:
        raise NotFound("Notification")
    return notification


@router.get("", response_model=NotificationPage)
def list_notifications(
    unread_only: bool = False,
    status_filter: NotificationStatus | None = Query(default=None, alias="status"),
    event_type: str | None = None,
    user_id: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    authz: AuthzContext = Depends(get_authz),
    db: Session = Depends(get_db),
) -> NotificationPage:
    owner = _inbox_owner(authz, user_id)

    stmt = select(Notification).where(Notification.user_id == owner)
    if unread_only:
        stmt = stmt.where(Notification.read_at.is_(None))
    if status_filter is not None:
        stmt = stmt.where(Notification.status == status_filter)
    if event_type is not None:
        stmt = stmt.where(Notification.event_type == event_type)

    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(
        stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).offset((page - 1) * limit).limit(limit)
    ).all()

    return NotificationPage(
        items=[NotificationOut.model_validate(r) for r in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/unread-count", response_model=UnreadCount)
def unread_count(authz: AuthzContext = Depends(get_authz), db: Session = Depends(get_db)) -> UnreadCount:
    count = db.scalar(
        select(func.count(Notification.id)).where(
            Notification.user_id == authz.principal_id,
            Notification.read_at.is_(None),
        )
    )
    return UnreadCount(count=count or 0)


@router.get("/preferences", response_model=PreferenceOut)
def get_preferences(authz: AuthzContext = Depends(get_authz), db: Session = Depends(get_db)) -> PreferenceOut:
    pref = db.get(NotificationPreference, authz.principal_id)
    if pref is None:
        # No row means everything enabled.
        return PreferenceOut(
            user_id=authz.principal_id,
            attendance_alerts=True,
            event_reminders=True,
            in_app_enabled=True,
        )
    return PreferenceOut.model_validate(pref)


@router.put("/preferences", response_model=PreferenceOut)
def update_preferences(
    payload: PreferenceUpdate,
    authz: AuthzContext = Depends(get_authz),
    db: Session = Depends(get_db),
) -> NotificationPreference:
    pref = db.get(NotificationPreference, authz.principal_id)
    if pref is None:
        pref = NotificationPreference(user_id=authz.principal_id)
        db.add(pref)
    pref.attendance_alerts = payload.attendance_alerts
    pref.event_reminders = payload.event_reminders
    pref.in_app_enabled = payload.in_app_enabled
    db.commit()
    logger.info("Notification preferences updated principal=%s", authz.principal_id)
    return pref


@router.get("/{id}", response_model=NotificationOut)
def get_notification(id: int, authz: AuthzContext = Depends(get_authz), db: Session = Depends(get_db)) -> Notification:
    stmt = select(Notification).where(Notification.id == id)
    if not authz.is_superadmin:
        stmt = stmt.where(Notification.user_id == authz.principal_id)
    notification = db.scalars(stmt).first()
    if notification is None:
        raise NotFound("Notification")
    return notification


@router.patch("/{id}", response_model=NotificationOut)
def update_notification(
    id: int,
    payload: NotificationUpdate,
    authz: AuthzContext = Depends(get_authz),
    dispatcher: CascadeDispatcher = Depends(get_dispatcher),
    db: Session = Depends(get_db),
) -> Notification:
    """
    Mark read/unread or set a status.

    The first read of an attendance alert marks it and queues the
    acknowledgment rollup to the university leaders.
    """

    notification = _get_own(db, authz, id)

    first_read = False
    if payload.status is not None:
        notification.status = payload.status
    if payload.read is True and notification.read_at is None:
        notification.read_at = datetime.utcnow()
        first_read = True
        if notification.event_type == ATTENDANCE_MISS:
            notification.status = "marked"
    elif payload.read is False:
        notification.read_at = None

    db.commit()

    if first_read and notification.event_type == ATTENDANCE_MISS:
        dispatcher.on_notification_marked_read(notification.id, authz.principal_id)
    return notification


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(id: int, authz: AuthzContext = Depends(get_authz), db: Session = Depends(get_db)) -> Response:
    notification = _get_own(db, authz, id)
    db.delete(notification)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
