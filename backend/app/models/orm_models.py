"""ORM Models for PraxisFlow HR — SQLAlchemy 2.0"""
import uuid
from datetime import datetime, date
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, Numeric, DateTime, Date,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from app.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# ── AUTH ──────────────────────────────────────────────────────────────────────
class User(Base):
    __tablename__ = "users"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    practices: Mapped[list["Practice"]] = relationship("Practice", back_populates="owner")


# ── PRACTICES ─────────────────────────────────────────────────────────────────
class Practice(Base):
    __tablename__ = "practices"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    owner_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Planned staffing level; NULL → max(current FTE × 0.9, 3)
    target_fte: Mapped[Optional[float]] = mapped_column(Numeric(6, 2))
    monthly_revenue_eur: Mapped[Optional[float]] = mapped_column(Numeric(12, 2))
    operating_hours_per_day: Mapped[Optional[float]] = mapped_column(Numeric(4, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    owner: Mapped["User"] = relationship("User", back_populates="practices")
    staff: Mapped[list["StaffMember"]] = relationship("StaffMember", back_populates="practice")
    rooms: Mapped[list["Room"]] = relationship("Room", back_populates="practice")


# ── STAFF ─────────────────────────────────────────────────────────────────────
class StaffMember(Base):
    __tablename__ = "staff"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    practice_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("practices.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(100), nullable=False)   # free text, normalized at read
    fte: Mapped[Optional[float]] = mapped_column(Numeric(4, 2))           # NULL → 1.0
    weekly_hours: Mapped[Optional[float]] = mapped_column(Numeric(5, 2))  # NULL → 40
    hourly_cost_eur: Mapped[Optional[float]] = mapped_column(Numeric(8, 2))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    practice: Mapped["Practice"] = relationship("Practice", back_populates="staff")


class StaffAbsence(Base):
    __tablename__ = "staff_absences"
    __table_args__ = (Index("ix_staff_absences_practice_dates", "practice_id", "start_date", "end_date"),)
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    practice_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("practices.id", ondelete="CASCADE"), nullable=False
    )
    staff_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("staff.id", ondelete="CASCADE"), nullable=False
    )
    absence_type: Mapped[str] = mapped_column(String(50), nullable=False)  # sick | vacation | training | other
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)


class StaffOvertime(Base):
    __tablename__ = "staff_overtime"
    __table_args__ = (Index("ix_staff_overtime_practice_date", "practice_id", "work_date"),)
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    practice_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("practices.id", ondelete="CASCADE"), nullable=False
    )
    staff_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("staff.id", ondelete="CASCADE"), nullable=False
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False)


# ── LAYOUT ────────────────────────────────────────────────────────────────────
class Room(Base):
    __tablename__ = "rooms"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    practice_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("practices.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    x: Mapped[int] = mapped_column(Integer, default=0)
    y: Mapped[int] = mapped_column(Integer, default=0)
    width: Mapped[int] = mapped_column(Integer, default=0)   # layout px
    height: Mapped[int] = mapped_column(Integer, default=0)
    practice: Mapped["Practice"] = relationship("Practice", back_populates="rooms")


# ── OPERATIONS ────────────────────────────────────────────────────────────────
class PatientVisitDay(Base):
    __tablename__ = "patient_visit_days"
    __table_args__ = (UniqueConstraint("practice_id", "visit_date", name="uq_visit_day"),)
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    practice_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("practices.id", ondelete="CASCADE"), nullable=False
    )
    visit_date: Mapped[date] = mapped_column(Date, nullable=False)
    patient_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
