from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

NotificationStatus = Literal["sent", "pending", "failed", "marked"]


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    type: str
    subject: str | None
    message: str
    event_type: str | None
    event_id: int | None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="payload")
    status: str
    region_id: int | None
    university_id: int | None
    small_group_id: int | None
    created_at: datetime
    read_at: datetime | None


class NotificationPage(BaseModel):
    items: list[NotificationOut]
    total: int
    page: int
    limit: int
    total_pages: int


class NotificationUpdate(BaseModel):
    read: bool | None = None
    status: NotificationStatus | None = None


class UnreadCount(BaseModel):
    count: int


class PreferenceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    attendance_alerts: bool
    event_reminders: bool
    in_app_enabled: bool


class PreferenceUpdate(BaseModel):
    attendance_alerts: bool = True
    event_reminders: bool = True
    in_app_enabled: bool = True
