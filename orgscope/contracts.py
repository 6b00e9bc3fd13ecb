"""
Plain data shapes passed between the repository, the scope engine and the
notification cascade.

Records are frozen dataclasses detached from any SQLAlchemy session, so they
can cross thread boundaries inside the cascade freely.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from typing import Any

# Notification.event_type discriminators produced by the cascade.
ATTENDANCE_MISS = "attendance_miss"
UNIVERSITY_ACKNOWLEDGMENT = "university_acknowledgment"

ORG_DIMENSIONS = ("region_id", "university_id", "small_group_id", "graduate_group_id")


@dataclass(frozen=True)
class OrgIds:
    """Position of a row (or a request) in the organizational tree."""

    region_id: int | None = None
    university_id: int | None = None
    small_group_id: int | None = None
    graduate_group_id: int | None = None

    def get(self, dimension: str) -> int | None:
        return getattr(self, dimension)

    def supplied(self) -> dict[str, int]:
        """Only the dimensions that carry a value."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def merged(self, **ids: int | None) -> OrgIds:
        """Copy with the given dimensions filled in where they are still empty."""
        updates = {k: v for k, v in ids.items() if v is not None and getattr(self, k) is None}
        return replace(self, **updates) if updates else self


@dataclass(frozen=True)
class Principal:
    id: str
    name: str | None
    email: str | None
    is_active: bool = True


@dataclass(frozen=True)
class RoleAssignment:
    id: int
    principal_id: str
    scope: str
    region_id: int | None = None
    university_id: int | None = None
    small_group_id: int | None = None
    graduate_group_id: int | None = None


@dataclass(frozen=True)
class RegionRecord:
    id: int
    name: str


@dataclass(frozen=True)
class UniversityRecord:
    id: int
    name: str
    region_id: int


@dataclass(frozen=True)
class SmallGroupRecord:
    id: int
    name: str
    university_id: int
    region_id: int


@dataclass(frozen=True)
class GraduateGroupRecord:
    id: int
    name: str
    region_id: int | None


@dataclass(frozen=True)
class Leader:
    principal_id: str
    name: str | None


@dataclass(frozen=True)
class AbsentMember:
    id: int
    firstname: str | None
    secondname: str | None
    phone: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.firstname or 'Unknown'} {self.secondname or ''}".strip()


@dataclass(frozen=True)
class AttendanceEventRecord:
    id: int
    kind: str
    name: str
    event_date: date
    university_id: int | None
    region_id: int | None


@dataclass(frozen=True)
class PreferenceRecord:
    principal_id: str
    attendance_alerts: bool = True
    event_reminders: bool = True
    in_app_enabled: bool = True


@dataclass(frozen=True)
class NotificationRecord:
    id: int
    recipient_id: str
    type: str
    subject: str | None
    message: str
    event_type: str | None
    event_id: int | None
    metadata: dict[str, Any]
    status: str
    created_at: datetime
    read_at: datetime | None = None
    region_id: int | None = None
    university_id: int | None = None
    small_group_id: int | None = None
    graduate_group_id: int | None = None


@dataclass(frozen=True)
class NewNotification:
    """Insert request for the notification store. ``dedupe_key`` makes it idempotent."""

    recipient_id: str
    subject: str
    message: str
    event_type: str
    event_id: int
    metadata: dict[str, Any]
    dedupe_key: str
    org: OrgIds = field(default_factory=OrgIds)
    type: str = "in_app"
    status: str = "sent"
