from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from orgscope.db.base import Base


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    type: Mapped[str] = mapped_column(String(20), default="in_app", nullable=False)
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    event_type: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    event_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    payload: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    # Denormalized hierarchy ids so notification lists filter like every other entity.
    region_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    university_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    small_group_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    graduate_group_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    status: Mapped[str] = mapped_column(String(20), default="sent", nullable=False)

    # Set for cascade-generated rows; makes their inserts idempotent. NULLs never collide.
    dedupe_key: Mapped[str | None] = mapped_column(String(200), unique=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), primary_key=True)
    attendance_alerts: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    event_reminders: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    in_app_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
