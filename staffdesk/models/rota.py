"""Rota batches and their per-day, per-employee schedule entries."""
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from staffdesk.database import Base


class Rota(Base):
    __tablename__ = "rotas"
    __table_args__ = (CheckConstraint("start_date <= end_date", name="ck_rotas_date_range"),)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    hotel_name = Column(String(255), nullable=False)
    department = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    uploaded_by_name = Column(String(100), nullable=False)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    # Raw source dump and parser report (warnings, unresolved names) for extraction details
    extracted_text = Column(Text, nullable=True)
    parse_report = Column(JSON, nullable=True)

    schedules = relationship(
        "RotaSchedule",
        back_populates="rota",
        cascade="all, delete-orphan",
        order_by="RotaSchedule.schedule_date",
    )


class RotaSchedule(Base):
    __tablename__ = "rota_schedules"
    __table_args__ = (
        UniqueConstraint("rota_id", "employee_id", "schedule_date", name="uq_rota_schedules_rota_employee_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    rota_id = Column(Integer, ForeignKey("rotas.id", ondelete="CASCADE"), nullable=False, index=True)

    employee_id = Column(Integer, nullable=False, index=True)
    employee_name = Column(String(255), nullable=False)  # denormalized at creation time

    schedule_date = Column(Date, nullable=False, index=True)
    day_of_week = Column(String(10), nullable=False)  # MONDAY .. SUNDAY

    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)  # earlier than start_time for overnight shifts

    duty = Column(String(255), nullable=False)  # e.g. "08:00-18:00", "Set-Ups", "OFF"
    is_off_day = Column(Boolean, nullable=False, default=False)

    rota = relationship("Rota", back_populates="schedules")
