from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orgscope.contracts import OrgIds
from orgscope.db.session import get_db
from orgscope.errors import Conflict, NotFound
from orgscope.models.organization import SmallGroup
from orgscope.models.people import Member
from orgscope.repository import OrgRepository
from orgscope.schemas.organization import SmallGroupCreate, SmallGroupOut, SmallGroupUpdate
from orgscope.scope.predicates import ensure_can_act
from orgscope.scope.types import EntityType
from orgscope.security.context import AuthzContext
from orgscope.security.dependencies import get_authz, get_repository
from orgscope.security.guards import authorize_write, check_filter_ids

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/small-groups", tags=["small-groups"])


def _position(group: SmallGroup) -> OrgIds:
    return OrgIds(region_id=group.region_id, university_id=group.university_id, small_group_id=group.id)


def _parent_position(group: SmallGroup) -> OrgIds:
    # Deleting a group needs the same rights as creating one.
    return OrgIds(region_id=group.region_id, university_id=group.university_id)


def _get_visible(db: Session, id: int) -> SmallGroup:
    group = db.scalars(select(SmallGroup).where(SmallGroup.id == id)).first()
    if group is None:
        raise NotFound("Small group")
    return group


@router.get("", response_model=list[SmallGroupOut])
def list_small_groups(
    region_id: int | None = None,
    university_id: int | None = None,
    authz: AuthzContext = Depends(get_authz),
    db: Session = Depends(get_db),
) -> list[SmallGroup]:
    check_filter_ids(authz, region_id=region_id, university_id=university_id)

    stmt = select(SmallGroup).order_by(SmallGroup.name)
    if region_id is not None:
        stmt = stmt.where(SmallGroup.region_id == region_id)
    if university_id is not None:
        stmt = stmt.where(SmallGroup.university_id == university_id)
    return list(db.scalars(stmt).all())


@router.get("/{id}", response_model=SmallGroupOut)
def get_small_group(id: int, db: Session = Depends(get_db)) -> SmallGroup:
    return _get_visible(db, id)


@router.post("", response_model=SmallGroupOut, status_code=status.HTTP_201_CREATED)
def create_small_group(
    payload: SmallGroupCreate,
    authz: AuthzContext = Depends(get_authz),
    repository: OrgRepository = Depends(get_repository),
    db: Session = Depends(get_db),
) -> SmallGroup:
    requested = OrgIds(region_id=payload.region_id, university_id=payload.university_id)
    chain = authorize_write(authz, repository, EntityType.SMALL_GROUP, requested)

    group = SmallGroup(name=payload.name.strip(), university_id=chain.university_id, region_id=chain.region_id)
    db.add(group)
    _commit(db, "Small group with this name already exists in the university")
    logger.info("Small group created id=%s university=%s by=%s", group.id, group.university_id, authz.principal_id)
    return group


@router.put("/{id}", response_model=SmallGroupOut)
def update_small_group(
    id: int,
    payload: SmallGroupUpdate,
    authz: AuthzContext = Depends(get_authz),
    repository: OrgRepository = Depends(get_repository),
    db: Session = Depends(get_db),
) -> SmallGroup:
    group = _get_visible(db, id)
    ensure_can_act(authz.scope, EntityType.SMALL_GROUP, _position(group))

    if payload.university_id is not None and payload.university_id != group.university_id:
        # Moving to another university: the target must be writable too.
        target = authorize_write(
            authz,
            repository,
            EntityType.SMALL_GROUP,
            OrgIds(university_id=payload.university_id),
        )
        group.university_id = target.university_id
        group.region_id = target.region_id
        _move_members(db, group)

    if payload.name is not None:
        group.name = payload.name.strip()

    _commit(db, "Small group with this name already exists in the university")
    return group


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_small_group(
    id: int,
    authz: AuthzContext = Depends(get_authz),
    db: Session = Depends(get_db),
) -> Response:
    group = _get_visible(db, id)
    ensure_can_act(authz.scope, EntityType.SMALL_GROUP, _parent_position(group))

    # Count with the unscoped column filter only; members outside the caller's
    # view still block deletion.
    members = db.execute(
        select(func.count()).select_from(Member.__table__).where(Member.__table__.c.small_group_id == group.id)
    ).scalar_one()
    if members:
        raise Conflict(f"Small group still has {members} member(s)")

    db.delete(group)
    db.commit()
    logger.info("Small group deleted id=%s by=%s", id, authz.principal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _move_members(db: Session, group: SmallGroup) -> None:
    # Members carry denormalized ancestors; keep them equal to the group's.
    db.execute(
        Member.__table__.update()
        .where(Member.__table__.c.small_group_id == group.id)
        .values(university_id=group.university_id, region_id=group.region_id)
    )


def _commit(db: Session, conflict_message: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict(conflict_message) from exc
