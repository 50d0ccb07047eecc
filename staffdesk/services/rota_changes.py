"""Schedule mutations with change-log capture.

Every edit, delete, replace and manual add writes exactly one RotaChangeLog row
per affected schedule in the same transaction as the mutation. Validation runs
before anything is written, so a rejected request leaves neither a change nor a
log behind. The log itself is append-only.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from staffdesk.database import transaction
from staffdesk.errors import ConflictError, NotFoundError, RotaValidationError
from staffdesk.models.employee import Employee
from staffdesk.models.rota import Rota, RotaSchedule
from staffdesk.models.rota_change_log import (
    CHANGE_CREATED,
    CHANGE_DELETED,
    CHANGE_REPLACED,
    CHANGE_UPDATED,
    RotaChangeLog,
)
from staffdesk.services.authorization import (
    ROTA_AUDITORS,
    ROTA_MANAGERS,
    ActorContext,
    ensure_in_scope,
    organization_scope,
    require_role,
)
from staffdesk.services.rota_parser import (
    DUTY_BLANK,
    DUTY_REST,
    DUTY_TIME_RANGE,
    OFF_DUTY,
    classify_duty,
    format_time_range,
)
from staffdesk.services.rota_store import (
    RotaMetadata,
    ScheduleEntryData,
    day_of_week,
    get_rota,
    get_rota_schedules,
    get_schedule,
    insert_rota,
    remove_rota,
)

log = logging.getLogger("uvicorn.error")

_DESCRIPTION_LEN = 10_000
_TICK = timedelta(microseconds=1)
LATEST_LIMIT = 10


@dataclass
class ScheduleChanges:
    """Requested field values; None means 'leave as is'."""

    schedule_date: date | None = None
    duty: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    is_off_day: bool | None = None
    reason: str | None = None


# ---------------------------------------------------------------------------
# Snapshots and descriptions
# ---------------------------------------------------------------------------

def _fmt_time(t: time | None) -> str | None:
    return t.strftime("%H:%M") if t is not None else None


def snapshot(entry: RotaSchedule) -> dict:
    return {
        "schedule_date": entry.schedule_date.isoformat(),
        "day_of_week": entry.day_of_week,
        "start_time": _fmt_time(entry.start_time),
        "end_time": _fmt_time(entry.end_time),
        "duty": entry.duty,
        "is_off_day": bool(entry.is_off_day),
    }


def describe_changes(reason: str | None, old: dict, new: dict) -> str:
    """'shift swap. Changes: duty: '09:00-17:00' → '10:00-18:00', ...'"""
    base = (reason or "").strip() or "Schedule updated"
    parts = [f"{key}: '{old.get(key)}' → '{new.get(key)}'" for key in new if old.get(key) != new.get(key)]
    if not parts:
        return base
    return f"{base}. Changes: {', '.join(parts)}"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def next_change_timestamp(db: Session, schedule_id: int) -> datetime:
    """Now, or 1 µs after the schedule's latest log entry if the clock has not moved past it."""
    now = datetime.now(timezone.utc)
    latest = (
        db.query(func.max(RotaChangeLog.changed_at))
        .filter(RotaChangeLog.schedule_id == schedule_id)
        .scalar()
    )
    if latest is not None:
        latest = _as_utc(latest)
        if now <= latest:
            now = latest + _TICK
    return now


def record_change(
    db: Session,
    actor: ActorContext,
    *,
    organization_id: int | None,
    rota_id: int,
    schedule_id: int,
    employee_id: int,
    employee_name: str,
    change_type: str,
    old_value: dict | None,
    new_value: dict | None,
    description: str,
) -> RotaChangeLog:
    entry = RotaChangeLog(
        organization_id=organization_id,
        rota_id=rota_id,
        schedule_id=schedule_id,
        employee_id=employee_id,
        employee_name=(employee_name or "")[:255],
        change_type=change_type,
        old_value=json.dumps(old_value) if old_value is not None else None,
        new_value=json.dumps(new_value) if new_value is not None else None,
        change_description=(description or "")[:_DESCRIPTION_LEN],
        changed_at=next_change_timestamp(db, schedule_id),
        changed_by=actor.user_id,
        changed_by_name=actor.username[:100],
        changed_by_role=actor.role.value,
        ip_address=actor.ip_address,
        user_agent=actor.user_agent,
    )
    db.add(entry)
    db.flush()
    return entry


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

def check_entry_fields(duty: str, start: time | None, end: time | None, off: bool) -> None:
    """Duty text, times and off-day flag must tell the same story."""
    if off and (start is not None or end is not None):
        raise RotaValidationError("An off-day schedule cannot have a start or end time.")
    if (start is None) != (end is None):
        raise RotaValidationError("Start and end time must be given together.")
    parsed = classify_duty(duty)
    if parsed.kind == DUTY_TIME_RANGE:
        if off:
            raise RotaValidationError(f"Duty '{duty}' is a working shift and cannot be an off day.")
        if (start, end) != (parsed.start_time, parsed.end_time):
            raise RotaValidationError(f"Duty '{duty}' does not match the given start and end time.")
    elif parsed.kind in (DUTY_REST, DUTY_BLANK) and not off:
        raise RotaValidationError(f"Duty '{duty}' marks an off day; give a working duty or times.")


def _resolve_changes(entry: RotaSchedule, changes: ScheduleChanges) -> dict:
    """Target field values for an edit; raises RotaValidationError on contradictory input."""
    times_given = changes.start_time is not None or changes.end_time is not None
    if changes.is_off_day is True and times_given:
        raise RotaValidationError("An off-day schedule cannot have a start or end time.")

    duty = entry.duty
    start, end = entry.start_time, entry.end_time
    off = bool(entry.is_off_day)

    if changes.duty is not None:
        duty = changes.duty.strip()
        if not duty:
            raise RotaValidationError("Duty cannot be empty.")
        parsed = classify_duty(duty)
        if parsed.kind == DUTY_TIME_RANGE:
            duty = parsed.duty
        start, end, off = parsed.start_time, parsed.end_time, parsed.is_off_day

    if times_given:
        start = changes.start_time if changes.start_time is not None else start
        end = changes.end_time if changes.end_time is not None else end
        if changes.duty is None and start is not None and end is not None:
            current = classify_duty(entry.duty)
            if current.kind in (DUTY_TIME_RANGE, DUTY_REST, DUTY_BLANK):
                duty = format_time_range(start, end)
        if changes.is_off_day is None:
            off = False

    if changes.is_off_day is not None:
        off = changes.is_off_day
        if off:
            start = end = None
            if changes.duty is None:
                duty = OFF_DUTY

    check_entry_fields(duty, start, end, off)

    new_date = changes.schedule_date or entry.schedule_date
    return {
        "schedule_date": new_date,
        "duty": duty[:255],
        "start_time": start,
        "end_time": end,
        "is_off_day": off,
    }


def update_schedule(db: Session, schedule_id: int, changes: ScheduleChanges, actor: ActorContext) -> RotaSchedule:
    require_role(actor.user, ROTA_MANAGERS, "update schedules")
    with transaction(db):
        entry = get_schedule(db, schedule_id, for_update=True)
        rota = db.get(Rota, entry.rota_id)
        ensure_in_scope(actor.user, rota.organization_id, "Schedule", schedule_id)

        target = _resolve_changes(entry, changes)
        new_date = target["schedule_date"]
        if new_date != entry.schedule_date:
            if not rota.start_date <= new_date <= rota.end_date:
                raise ConflictError(
                    f"Date {new_date.isoformat()} is outside the rota range "
                    f"{rota.start_date.isoformat()}..{rota.end_date.isoformat()}."
                )
            taken = (
                db.query(RotaSchedule.id)
                .filter(
                    RotaSchedule.rota_id == entry.rota_id,
                    RotaSchedule.employee_id == entry.employee_id,
                    RotaSchedule.schedule_date == new_date,
                    RotaSchedule.id != entry.id,
                )
                .first()
            )
            if taken:
                raise ConflictError(f"{entry.employee_name} already has a schedule on {new_date.isoformat()}.")

        old = snapshot(entry)
        entry.schedule_date = new_date
        entry.day_of_week = day_of_week(new_date)
        entry.duty = target["duty"]
        entry.start_time = target["start_time"]
        entry.end_time = target["end_time"]
        entry.is_off_day = target["is_off_day"]
        new = snapshot(entry)
        if new == old:
            return entry

        db.flush()
        record_change(
            db,
            actor,
            organization_id=rota.organization_id,
            rota_id=entry.rota_id,
            schedule_id=entry.id,
            employee_id=entry.employee_id,
            employee_name=entry.employee_name,
            change_type=CHANGE_UPDATED,
            old_value=old,
            new_value=new,
            description=describe_changes(changes.reason, old, new),
        )
    log.info("Schedule updated: id=%s rota=%s by=%s", entry.id, entry.rota_id, actor.username)
    return entry


def delete_schedule(db: Session, schedule_id: int, actor: ActorContext, reason: str | None = None) -> None:
    require_role(actor.user, ROTA_MANAGERS, "delete schedules")
    with transaction(db):
        entry = get_schedule(db, schedule_id, for_update=True)
        rota = db.get(Rota, entry.rota_id)
        ensure_in_scope(actor.user, rota.organization_id, "Schedule", schedule_id)
        old = snapshot(entry)
        record_change(
            db,
            actor,
            organization_id=rota.organization_id,
            rota_id=entry.rota_id,
            schedule_id=entry.id,
            employee_id=entry.employee_id,
            employee_name=entry.employee_name,
            change_type=CHANGE_DELETED,
            old_value=old,
            new_value=None,
            description=f"{(reason or '').strip() or 'Schedule deleted'}. Removed {entry.duty} on {old['schedule_date']}",
        )
        db.delete(entry)
    log.info("Schedule deleted: id=%s by=%s", schedule_id, actor.username)


def delete_rota_with_audit(db: Session, rota_id: int, actor: ActorContext, reason: str | None = None) -> int:
    """Log every entry as DELETED, then drop the rota. Returns the number of entries removed."""
    require_role(actor.user, ROTA_MANAGERS, "delete rotas")
    with transaction(db):
        rota = get_rota(db, rota_id)
        ensure_in_scope(actor.user, rota.organization_id, "Rota", rota_id)
        entries = get_rota_schedules(db, rota_id)
        text = (reason or "").strip() or "Rota deleted"
        for entry in entries:
            record_change(
                db,
                actor,
                organization_id=rota.organization_id,
                rota_id=rota.id,
                schedule_id=entry.id,
                employee_id=entry.employee_id,
                employee_name=entry.employee_name,
                change_type=CHANGE_DELETED,
                old_value=snapshot(entry),
                new_value=None,
                description=f"{text}. Rota {rota.file_name} removed",
            )
        remove_rota(db, rota)
    log.info("Rota deleted: id=%s entries=%s by=%s", rota_id, len(entries), actor.username)
    return len(entries)


def replace_rota(
    db: Session,
    rota_id: int,
    metadata: RotaMetadata,
    entries: list[ScheduleEntryData],
    actor: ActorContext,
) -> Rota:
    """Swap an existing rota for a freshly ingested one; old entries are logged as REPLACED."""
    require_role(actor.user, ROTA_MANAGERS, "replace rotas")
    with transaction(db):
        old_rota = get_rota(db, rota_id)
        ensure_in_scope(actor.user, old_rota.organization_id, "Rota", rota_id)
        old_entries = get_rota_schedules(db, rota_id)
        new_rota = insert_rota(db, metadata, entries)
        for entry in old_entries:
            record_change(
                db,
                actor,
                organization_id=old_rota.organization_id,
                rota_id=old_rota.id,
                schedule_id=entry.id,
                employee_id=entry.employee_id,
                employee_name=entry.employee_name,
                change_type=CHANGE_REPLACED,
                old_value=snapshot(entry),
                new_value={"replacement_rota_id": new_rota.id},
                description=f"Rota replaced by upload of {new_rota.file_name}",
            )
        remove_rota(db, old_rota)
    log.info("Rota replaced: old=%s new=%s by=%s", rota_id, new_rota.id, actor.username)
    return new_rota


def new_entry_from_fields(
    employee_id: int,
    schedule_date: date,
    *,
    duty: str | None = None,
    start_time: time | None = None,
    end_time: time | None = None,
    is_off_day: bool | None = None,
) -> ScheduleEntryData:
    """Fill in a manual entry: duty text gives times, times alone give a range duty, nothing gives OFF."""
    if duty is not None and duty.strip():
        parsed = classify_duty(duty)
        text, start, end, off = parsed.duty, parsed.start_time, parsed.end_time, parsed.is_off_day
    elif start_time is not None and end_time is not None:
        text, start, end, off = format_time_range(start_time, end_time), start_time, end_time, False
    else:
        text, start, end, off = OFF_DUTY, None, None, True
    if start_time is not None or end_time is not None:
        start, end = start_time, end_time
        off = False
    if is_off_day is not None:
        off = is_off_day
    check_entry_fields(text, start, end, off)
    return ScheduleEntryData(
        employee_id=employee_id,
        employee_name="",
        schedule_date=schedule_date,
        duty=text,
        start_time=start,
        end_time=end,
        is_off_day=off,
    )


def add_schedule(
    db: Session,
    rota_id: int,
    data: ScheduleEntryData,
    actor: ActorContext,
    reason: str | None = None,
) -> RotaSchedule:
    require_role(actor.user, ROTA_MANAGERS, "add schedules")
    with transaction(db):
        rota = get_rota(db, rota_id)
        ensure_in_scope(actor.user, rota.organization_id, "Rota", rota_id)
        employee = db.get(Employee, data.employee_id)
        if not employee or employee.organization_id != rota.organization_id:
            raise NotFoundError(f"Employee not found with ID: {data.employee_id}")
        if not rota.start_date <= data.schedule_date <= rota.end_date:
            raise RotaValidationError(f"Date {data.schedule_date.isoformat()} is outside the rota range.")
        check_entry_fields(data.duty, data.start_time, data.end_time, data.is_off_day)
        exists = (
            db.query(RotaSchedule.id)
            .filter(
                RotaSchedule.rota_id == rota.id,
                RotaSchedule.employee_id == employee.id,
                RotaSchedule.schedule_date == data.schedule_date,
            )
            .first()
        )
        if exists:
            raise ConflictError(f"{employee.full_name} already has a schedule on {data.schedule_date.isoformat()}.")
        entry = RotaSchedule(
            rota_id=rota.id,
            employee_id=employee.id,
            employee_name=employee.full_name,
            schedule_date=data.schedule_date,
            day_of_week=day_of_week(data.schedule_date),
            start_time=data.start_time,
            end_time=data.end_time,
            duty=data.duty[:255],
            is_off_day=data.is_off_day,
        )
        db.add(entry)
        db.flush()
        record_change(
            db,
            actor,
            organization_id=rota.organization_id,
            rota_id=rota.id,
            schedule_id=entry.id,
            employee_id=entry.employee_id,
            employee_name=entry.employee_name,
            change_type=CHANGE_CREATED,
            old_value=None,
            new_value=snapshot(entry),
            description=(reason or "").strip() or "Schedule added manually",
        )
    log.info("Schedule added: id=%s rota=%s by=%s", entry.id, rota.id, actor.username)
    return entry


# ---------------------------------------------------------------------------
# Change-log queries
# ---------------------------------------------------------------------------

def _scoped_logs(db: Session, actor: ActorContext):
    require_role(actor.user, ROTA_AUDITORS, "view change logs")
    q = db.query(RotaChangeLog)
    scope = organization_scope(actor.user)
    if scope is not None:
        q = q.filter(RotaChangeLog.organization_id == scope)
    return q


def _newest_first(q):
    return q.order_by(RotaChangeLog.changed_at.desc(), RotaChangeLog.id.desc())


def get_change_logs_for_rota(db: Session, actor: ActorContext, rota_id: int) -> list[RotaChangeLog]:
    return _newest_first(_scoped_logs(db, actor).filter(RotaChangeLog.rota_id == rota_id)).all()


def get_change_logs_for_employee(db: Session, actor: ActorContext, employee_id: int) -> list[RotaChangeLog]:
    return _newest_first(_scoped_logs(db, actor).filter(RotaChangeLog.employee_id == employee_id)).all()


def get_change_logs_for_schedule(db: Session, actor: ActorContext, schedule_id: int) -> list[RotaChangeLog]:
    """Oldest first: the order the changes happened in."""
    return (
        _scoped_logs(db, actor)
        .filter(RotaChangeLog.schedule_id == schedule_id)
        .order_by(RotaChangeLog.changed_at.asc(), RotaChangeLog.id.asc())
        .all()
    )


def get_recent_change_logs(db: Session, actor: ActorContext, days: int = 7) -> list[RotaChangeLog]:
    if days < 1:
        raise RotaValidationError("days must be at least 1.")
    since = datetime.now(timezone.utc) - timedelta(days=days)
    return _newest_first(_scoped_logs(db, actor).filter(RotaChangeLog.changed_at >= since)).all()


def get_latest_change_logs(db: Session, actor: ActorContext, limit: int = LATEST_LIMIT) -> list[RotaChangeLog]:
    return _newest_first(_scoped_logs(db, actor)).limit(limit).all()
