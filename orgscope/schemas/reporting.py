from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    region_id: int | None
    title: str
    created_at: datetime
