from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RegionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class UniversityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    region_id: int


class UniversityCreate(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    region_id: int


class SmallGroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    university_id: int
    region_id: int


class SmallGroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    university_id: int
    # Optional; derived from the university when omitted, rejected when it disagrees.
    region_id: int | None = None


class SmallGroupUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    university_id: int | None = None


class GraduateSmallGroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    region_id: int | None


class PropertyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None
    region_id: int


class PropertyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    description: str | None = None
    region_id: int
