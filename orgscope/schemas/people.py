from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    firstname: str | None
    secondname: str | None
    phone: str | None
    email: str | None
    status: str
    region_id: int | None
    university_id: int | None
    small_group_id: int | None
    graduate_group_id: int | None
    created_at: datetime


class MemberCreate(BaseModel):
    firstname: str = Field(min_length=1, max_length=100)
    secondname: str | None = Field(default=None, max_length=100)
    phone: str | None = Field(default=None, max_length=30)
    email: str | None = Field(default=None, max_length=100)

    region_id: int | None = None
    university_id: int | None = None
    small_group_id: int | None = None
    graduate_group_id: int | None = None
