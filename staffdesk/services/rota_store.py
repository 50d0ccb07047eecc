"""Rota persistence: rota batches with their schedule entries, and the read paths over them."""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, time

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session

from staffdesk.database import transaction
from staffdesk.errors import NotFoundError, RotaValidationError
from staffdesk.models.rota import Rota, RotaSchedule

log = logging.getLogger("uvicorn.error")

_WEEKDAYS = ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]


def day_of_week(d: date) -> str:
    return _WEEKDAYS[d.weekday()]


@dataclass
class RotaMetadata:
    organization_id: int
    hotel_name: str
    department: str
    file_name: str
    start_date: date
    end_date: date
    uploaded_by: int
    uploaded_by_name: str
    extracted_text: str | None = None
    parse_report: dict | None = None


@dataclass
class ScheduleEntryData:
    employee_id: int
    employee_name: str
    schedule_date: date
    duty: str
    start_time: time | None = None
    end_time: time | None = None
    is_off_day: bool = False


def validate_rota(metadata: RotaMetadata, entries: list[ScheduleEntryData]) -> None:
    """Structural checks for a whole batch; raises RotaValidationError on the first violation."""
    if metadata.start_date > metadata.end_date:
        raise RotaValidationError(
            f"Start date {metadata.start_date.isoformat()} is after end date {metadata.end_date.isoformat()}."
        )
    pairs = Counter((e.employee_id, e.schedule_date) for e in entries)
    duplicates = [p for p, n in pairs.items() if n > 1]
    if duplicates:
        emp_id, d = duplicates[0]
        name = next(e.employee_name for e in entries if e.employee_id == emp_id)
        raise RotaValidationError(f"Duplicate schedule for {name} on {d.isoformat()} in the same rota.")
    for e in entries:
        if not metadata.start_date <= e.schedule_date <= metadata.end_date:
            raise RotaValidationError(
                f"Schedule date {e.schedule_date.isoformat()} for {e.employee_name} is outside the rota range."
            )
        if e.is_off_day and (e.start_time is not None or e.end_time is not None):
            raise RotaValidationError(f"Off-day for {e.employee_name} on {e.schedule_date.isoformat()} cannot have times.")


def insert_rota(db: Session, metadata: RotaMetadata, entries: list[ScheduleEntryData]) -> Rota:
    """Validate and add a rota with its entries to the session. The caller owns the transaction."""
    validate_rota(metadata, entries)
    rota = Rota(
        organization_id=metadata.organization_id,
        hotel_name=metadata.hotel_name[:255],
        department=metadata.department[:255],
        file_name=metadata.file_name[:255],
        start_date=metadata.start_date,
        end_date=metadata.end_date,
        uploaded_by=metadata.uploaded_by,
        uploaded_by_name=metadata.uploaded_by_name[:100],
        extracted_text=metadata.extracted_text,
        parse_report=metadata.parse_report,
    )
    db.add(rota)
    db.flush()
    # File order is the insert order
    for e in entries:
        db.add(
            RotaSchedule(
                rota_id=rota.id,
                employee_id=e.employee_id,
                employee_name=e.employee_name[:255],
                schedule_date=e.schedule_date,
                day_of_week=day_of_week(e.schedule_date),
                start_time=e.start_time,
                end_time=e.end_time,
                duty=(e.duty or "")[:255],
                is_off_day=e.is_off_day,
            )
        )
    db.flush()
    return rota


def create_rota(db: Session, metadata: RotaMetadata, entries: list[ScheduleEntryData]) -> Rota:
    with transaction(db):
        rota = insert_rota(db, metadata, entries)
    log.info(
        "Rota created: id=%s org=%s entries=%s range=%s..%s",
        rota.id,
        rota.organization_id,
        len(entries),
        rota.start_date,
        rota.end_date,
    )
    return rota


def get_rota(db: Session, rota_id: int) -> Rota:
    rota = db.query(Rota).filter(Rota.id == rota_id).first()
    if not rota:
        raise NotFoundError(f"Rota not found with ID: {rota_id}")
    return rota


def delete_rota(db: Session, rota_id: int) -> None:
    """Remove a rota and its entries. Change logs are kept."""
    with transaction(db):
        remove_rota(db, get_rota(db, rota_id))
    log.info("Rota deleted: id=%s", rota_id)


def remove_rota(db: Session, rota: Rota) -> None:
    db.delete(rota)
    db.flush()


def get_rota_schedules(db: Session, rota_id: int) -> list[RotaSchedule]:
    return (
        db.query(RotaSchedule)
        .filter(RotaSchedule.rota_id == rota_id)
        .order_by(RotaSchedule.schedule_date.asc(), RotaSchedule.employee_name.asc(), RotaSchedule.id.asc())
        .all()
    )


def get_schedule(db: Session, schedule_id: int, *, for_update: bool = False) -> RotaSchedule:
    q = db.query(RotaSchedule).filter(RotaSchedule.id == schedule_id)
    if for_update:
        q = q.with_for_update()
    entry = q.first()
    if not entry:
        raise NotFoundError(f"Schedule not found with ID: {schedule_id}")
    return entry


def get_schedules_for_employee(
    db: Session,
    employee_id: int,
    start_date: date,
    end_date: date,
    organization_id: int | None = None,
) -> list[RotaSchedule]:
    q = (
        db.query(RotaSchedule)
        .join(Rota, Rota.id == RotaSchedule.rota_id)
        .filter(
            RotaSchedule.employee_id == employee_id,
            RotaSchedule.schedule_date >= start_date,
            RotaSchedule.schedule_date <= end_date,
        )
    )
    if organization_id is not None:
        q = q.filter(Rota.organization_id == organization_id)
    return q.order_by(RotaSchedule.schedule_date.asc(), RotaSchedule.id.asc()).all()


def list_rotas(db: Session, organization_id: int | None = None) -> list[tuple[Rota, int]]:
    """Rotas newest upload first, each with its distinct employee count."""
    q = (
        db.query(Rota, func.count(distinct(RotaSchedule.employee_id)))
        .outerjoin(RotaSchedule, RotaSchedule.rota_id == Rota.id)
        .group_by(Rota.id)
    )
    if organization_id is not None:
        q = q.filter(Rota.organization_id == organization_id)
    return [(rota, count) for rota, count in q.order_by(Rota.uploaded_at.desc(), Rota.id.desc()).all()]
