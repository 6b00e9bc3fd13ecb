from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgscope.contracts import OrgIds
from orgscope.db.session import get_db
from orgscope.errors import ValidationFailure
from orgscope.models.people import Member
from orgscope.repository import OrgRepository
from orgscope.schemas.people import MemberCreate, MemberOut
from orgscope.scope.types import EntityType
from orgscope.security.context import AuthzContext
from orgscope.security.dependencies import get_authz, get_repository
from orgscope.security.guards import authorize_write, check_filter_ids

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/members", tags=["members"])


@router.get("", response_model=list[MemberOut])
def list_members(
    region_id: int | None = None,
    university_id: int | None = None,
    small_group_id: int | None = None,
    authz: AuthzContext = Depends(get_authz),
    db: Session = Depends(get_db),
) -> list[Member]:
    requested = check_filter_ids(
        authz,
        region_id=region_id,
        university_id=university_id,
        small_group_id=small_group_id,
    )

    stmt = select(Member).order_by(Member.id)
    for dimension, value in requested.supplied().items():
        stmt = stmt.where(getattr(Member, dimension) == value)
    return list(db.scalars(stmt).all())


@router.post("", response_model=MemberOut, status_code=status.HTTP_201_CREATED)
def create_member(
    payload: MemberCreate,
    authz: AuthzContext = Depends(get_authz),
    repository: OrgRepository = Depends(get_repository),
    db: Session = Depends(get_db),
) -> Member:
    requested = OrgIds(
        region_id=payload.region_id,
        university_id=payload.university_id,
        small_group_id=payload.small_group_id,
        graduate_group_id=payload.graduate_group_id,
    )
    if not requested.supplied():
        raise ValidationFailure("A member must be placed in the organization")

    chain = authorize_write(authz, repository, EntityType.MEMBER, requested)

    member = Member(
        firstname=payload.firstname.strip(),
        secondname=payload.secondname,
        phone=payload.phone,
        email=payload.email,
        **chain.supplied(),
    )
    db.add(member)
    db.commit()
    logger.info("Member created id=%s by=%s", member.id, authz.principal_id)
    return member
