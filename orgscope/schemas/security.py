from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class UserRoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    scope: str
    region_id: int | None
    university_id: int | None
    small_group_id: int | None
    graduate_group_id: int | None
    created_at: datetime


class ScopeOut(BaseModel):
    principal_id: str
    scope: str
    region_id: int | None = None
    university_id: int | None = None
    small_group_id: int | None = None
    graduate_group_id: int | None = None


class MeOut(BaseModel):
    id: str
    name: str | None
    email: str | None
    scope: ScopeOut
