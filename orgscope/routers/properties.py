from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgscope.contracts import OrgIds
from orgscope.db.session import get_db
from orgscope.models.organization import Property
from orgscope.repository import OrgRepository
from orgscope.schemas.organization import PropertyCreate, PropertyOut
from orgscope.scope.types import EntityType
from orgscope.security.context import AuthzContext
from orgscope.security.dependencies import get_authz, get_repository
from orgscope.security.guards import authorize_write, check_filter_ids

router = APIRouter(prefix="/properties", tags=["properties"])


@router.get("", response_model=list[PropertyOut])
def list_properties(
    region_id: int | None = None,
    authz: AuthzContext = Depends(get_authz),
    db: Session = Depends(get_db),
) -> list[Property]:
    check_filter_ids(authz, region_id=region_id)

    stmt = select(Property).order_by(Property.id)
    if region_id is not None:
        stmt = stmt.where(Property.region_id == region_id)
    return list(db.scalars(stmt).all())


@router.post("", response_model=PropertyOut, status_code=status.HTTP_201_CREATED)
def create_property(
    payload: PropertyCreate,
    authz: AuthzContext = Depends(get_authz),
    repository: OrgRepository = Depends(get_repository),
    db: Session = Depends(get_db),
) -> Property:
    chain = authorize_write(authz, repository, EntityType.PROPERTY, OrgIds(region_id=payload.region_id))

    prop = Property(name=payload.name.strip(), description=payload.description, region_id=chain.region_id)
    db.add(prop)
    db.commit()
    return prop
