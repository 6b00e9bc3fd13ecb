from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgscope.db.session import get_db
from orgscope.errors import NotFound
from orgscope.models.organization import Region
from orgscope.schemas.organization import RegionOut

router = APIRouter(prefix="/regions", tags=["regions"])


@router.get("", response_model=list[RegionOut])
def list_regions(db: Session = Depends(get_db)) -> list[Region]:
    # Scoped transparently by orgscope/db/filters.py.
    return list(db.scalars(select(Region).order_by(Region.name)).all())


@router.get("/{id}", response_model=RegionOut)
def get_region(id: int, db: Session = Depends(get_db)) -> Region:
    region = db.scalars(select(Region).where(Region.id == id)).first()
    if region is None:
        raise NotFound("Region")
    return region
