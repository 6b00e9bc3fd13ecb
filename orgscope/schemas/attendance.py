from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class AttendanceMark(BaseModel):
    member_id: int
    status: Literal["present", "absent", "excuse"]


class AttendanceRecordRequest(BaseModel):
    records: list[AttendanceMark] = Field(min_length=1)


class AttendanceRecorded(BaseModel):
    event_id: int
    recorded: int
    absent: int
    notifications_queued: bool
