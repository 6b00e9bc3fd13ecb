from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from orgscope.db.base import Base


class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    firstname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    secondname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)

    # When small_group_id is set, region_id and university_id match the group's.
    region_id: Mapped[int | None] = mapped_column(ForeignKey("regions.id"), nullable=True, index=True)
    university_id: Mapped[int | None] = mapped_column(ForeignKey("universities.id"), nullable=True, index=True)
    small_group_id: Mapped[int | None] = mapped_column(ForeignKey("small_groups.id"), nullable=True, index=True)
    graduate_group_id: Mapped[int | None] = mapped_column(
        ForeignKey("graduate_small_groups.id"), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
