from __future__ import annotations

from datetime import date

from sqlalchemy import Date, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgscope.db.base import Base
from orgscope.models.people import Member


class AttendanceEvent(Base):
    """A permanent ministry event or a training, held at one university."""

    __tablename__ = "attendance_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # permanent | training
    event_date: Mapped[date] = mapped_column("date", Date, nullable=False)

    region_id: Mapped[int | None] = mapped_column(ForeignKey("regions.id"), nullable=True, index=True)
    university_id: Mapped[int | None] = mapped_column(ForeignKey("universities.id"), nullable=True, index=True)

    records: Mapped[list["Attendance"]] = relationship(back_populates="event")


class Attendance(Base):
    __tablename__ = "attendance"
    __table_args__ = (UniqueConstraint("event_id", "member_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("attendance_events.id"), nullable=False, index=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # present | absent | excuse

    event: Mapped[AttendanceEvent] = relationship(back_populates="records")
    member: Mapped[Member] = relationship()
