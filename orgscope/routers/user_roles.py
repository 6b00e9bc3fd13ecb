from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgscope.db.session import get_db
from orgscope.models.security import UserRole
from orgscope.schemas.security import UserRoleOut

router = APIRouter(prefix="/user-roles", tags=["user-roles"])


@router.get("", response_model=list[UserRoleOut])
def list_user_roles(db: Session = Depends(get_db)) -> list[UserRole]:
    return list(db.scalars(select(UserRole).order_by(UserRole.id)).all())
