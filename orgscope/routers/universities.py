from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orgscope.contracts import OrgIds
from orgscope.db.session import get_db
from orgscope.errors import Conflict, NotFound
from orgscope.models.organization import University
from orgscope.repository import OrgRepository
from orgscope.schemas.organization import UniversityCreate, UniversityOut
from orgscope.scope.types import EntityType
from orgscope.security.context import AuthzContext
from orgscope.security.dependencies import get_authz, get_repository
from orgscope.security.guards import authorize_write, check_filter_ids

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/universities", tags=["universities"])


@router.get("", response_model=list[UniversityOut])
def list_universities(
    region_id: int | None = None,
    authz: AuthzContext = Depends(get_authz),
    db: Session = Depends(get_db),
) -> list[University]:
    check_filter_ids(authz, region_id=region_id)

    stmt = select(University).order_by(University.name)
    if region_id is not None:
        stmt = stmt.where(University.region_id == region_id)
    return list(db.scalars(stmt).all())


@router.get("/{id}", response_model=UniversityOut)
def get_university(id: int, db: Session = Depends(get_db)) -> University:
    university = db.scalars(select(University).where(University.id == id)).first()
    if university is None:
        raise NotFound("University")
    return university


@router.post("", response_model=UniversityOut, status_code=status.HTTP_201_CREATED)
def create_university(
    payload: UniversityCreate,
    authz: AuthzContext = Depends(get_authz),
    repository: OrgRepository = Depends(get_repository),
    db: Session = Depends(get_db),
) -> University:
    chain = authorize_write(authz, repository, EntityType.UNIVERSITY, OrgIds(region_id=payload.region_id))

    university = University(name=payload.name.strip(), region_id=chain.region_id)
    db.add(university)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("University with this name already exists in the region") from exc
    logger.info("University created id=%s region=%s by=%s", university.id, university.region_id, authz.principal_id)
    return university
