from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgscope.db.session import get_db
from orgscope.models.organization import GraduateSmallGroup
from orgscope.schemas.organization import GraduateSmallGroupOut
from orgscope.security.context import AuthzContext
from orgscope.security.dependencies import get_authz
from orgscope.security.guards import check_filter_ids

router = APIRouter(prefix="/graduate-small-groups", tags=["graduate-small-groups"])


@router.get("", response_model=list[GraduateSmallGroupOut])
def list_graduate_small_groups(
    region_id: int | None = None,
    authz: AuthzContext = Depends(get_authz),
    db: Session = Depends(get_db),
) -> list[GraduateSmallGroup]:
    check_filter_ids(authz, region_id=region_id)

    stmt = select(GraduateSmallGroup).order_by(GraduateSmallGroup.name)
    if region_id is not None:
        stmt = stmt.where(GraduateSmallGroup.region_id == region_id)
    return list(db.scalars(stmt).all())
