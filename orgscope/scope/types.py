"""
Scope tagged union.

One frozen dataclass per scope tag, each carrying exactly the ids that tag
needs. ``bound`` is the single (dimension, id) pair the scope restricts rows
by; the other ids are the owning ancestors, used for explicit-filter checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union

from orgscope.contracts import OrgIds


class ScopeTag(str, Enum):
    SUPERADMIN = "superadmin"
    NATIONAL = "national"
    REGION = "region"
    UNIVERSITY = "university"
    SMALL_GROUP = "smallgroup"
    GRADUATE_SMALL_GROUP = "graduatesmallgroup"


class EntityType(str, Enum):
    REGION = "region"
    UNIVERSITY = "university"
    SMALL_GROUP = "small_group"
    GRADUATE_SMALL_GROUP = "graduate_small_group"
    PROPERTY = "property"
    MEMBER = "member"
    USER_ROLE = "user_role"
    NOTIFICATION = "notification"
    ATTENDANCE_EVENT = "attendance_event"
    ATTENDANCE = "attendance"
    REPORT = "report"


@dataclass(frozen=True)
class _ScopeBase:
    principal_id: str

    tag: ClassVar[ScopeTag]
    unbounded: ClassVar[bool] = False

    @property
    def bound(self) -> tuple[str, int] | None:
        return None

    def org_ids(self) -> OrgIds:
        return OrgIds()

    def to_dict(self) -> dict[str, object]:
        ids = self.org_ids()
        return {
            "principal_id": self.principal_id,
            "scope": self.tag.value,
            "region_id": ids.region_id,
            "university_id": ids.university_id,
            "small_group_id": ids.small_group_id,
            "graduate_group_id": ids.graduate_group_id,
        }


@dataclass(frozen=True)
class SuperadminScope(_ScopeBase):
    tag: ClassVar[ScopeTag] = ScopeTag.SUPERADMIN
    unbounded: ClassVar[bool] = True


@dataclass(frozen=True)
class NationalScope(_ScopeBase):
    tag: ClassVar[ScopeTag] = ScopeTag.NATIONAL
    unbounded: ClassVar[bool] = True


@dataclass(frozen=True)
class RegionScope(_ScopeBase):
    region_id: int

    tag: ClassVar[ScopeTag] = ScopeTag.REGION

    @property
    def bound(self) -> tuple[str, int]:
        return ("region_id", self.region_id)

    def org_ids(self) -> OrgIds:
        return OrgIds(region_id=self.region_id)


@dataclass(frozen=True)
class UniversityScope(_ScopeBase):
    university_id: int
    region_id: int | None = None

    tag: ClassVar[ScopeTag] = ScopeTag.UNIVERSITY

    @property
    def bound(self) -> tuple[str, int]:
        return ("university_id", self.university_id)

    def org_ids(self) -> OrgIds:
        return OrgIds(region_id=self.region_id, university_id=self.university_id)


@dataclass(frozen=True)
class SmallGroupScope(_ScopeBase):
    small_group_id: int
    university_id: int | None = None
    region_id: int | None = None

    tag: ClassVar[ScopeTag] = ScopeTag.SMALL_GROUP

    @property
    def bound(self) -> tuple[str, int]:
        return ("small_group_id", self.small_group_id)

    def org_ids(self) -> OrgIds:
        return OrgIds(
            region_id=self.region_id,
            university_id=self.university_id,
            small_group_id=self.small_group_id,
        )


@dataclass(frozen=True)
class GraduateGroupScope(_ScopeBase):
    graduate_group_id: int
    region_id: int | None = None

    tag: ClassVar[ScopeTag] = ScopeTag.GRADUATE_SMALL_GROUP

    @property
    def bound(self) -> tuple[str, int]:
        return ("graduate_group_id", self.graduate_group_id)

    def org_ids(self) -> OrgIds:
        return OrgIds(region_id=self.region_id, graduate_group_id=self.graduate_group_id)


Scope = Union[
    SuperadminScope,
    NationalScope,
    RegionScope,
    UniversityScope,
    SmallGroupScope,
    GraduateGroupScope,
]
