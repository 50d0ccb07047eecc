"""Org-scoped read operations over rotas and schedules."""
from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy.orm import Session

from staffdesk.config import get_settings
from staffdesk.errors import NotFoundError, PermissionDeniedError
from staffdesk.models.employee import Employee
from staffdesk.models.rota import Rota, RotaSchedule
from staffdesk.models.user import UserRole
from staffdesk.schemas.rota import CurrentWeekSchedule, ExtractionDetails, RotaResponse, RotaScheduleResponse, RotaUploadPreview
from staffdesk.services.authorization import (
    ALL_ROLES,
    ROTA_AUDITORS,
    ActorContext,
    ensure_in_scope,
    organization_scope,
    require_role,
)
from staffdesk.services.rota_preview import build_rota_preview, group_by_employee
from staffdesk.services.rota_store import (
    get_rota,
    get_rota_schedules,
    get_schedule,
    get_schedules_for_employee,
    list_rotas,
)

TEXT_PREVIEW_CHARS = 500


def _rota_response(rota: Rota, employee_count: int) -> RotaResponse:
    out = RotaResponse.model_validate(rota)
    out.employee_count = employee_count
    return out


def _scoped_rota(db: Session, actor: ActorContext, rota_id: int) -> Rota:
    rota = get_rota(db, rota_id)
    ensure_in_scope(actor.user, rota.organization_id, "Rota", rota_id)
    return rota


def list_rotas_for(db: Session, actor: ActorContext) -> list[RotaResponse]:
    require_role(actor.user, ALL_ROLES, "list rotas")
    return [_rota_response(r, n) for r, n in list_rotas(db, organization_scope(actor.user))]


def rota_schedules_for(db: Session, actor: ActorContext, rota_id: int) -> list[RotaSchedule]:
    require_role(actor.user, ROTA_AUDITORS, "view rota schedules")
    _scoped_rota(db, actor, rota_id)
    return get_rota_schedules(db, rota_id)


def schedule_for(db: Session, actor: ActorContext, schedule_id: int) -> RotaSchedule:
    require_role(actor.user, ROTA_AUDITORS, "view schedules")
    entry = get_schedule(db, schedule_id)
    rota = db.get(Rota, entry.rota_id)
    ensure_in_scope(actor.user, rota.organization_id, "Schedule", schedule_id)
    return entry


def rota_preview_for(db: Session, actor: ActorContext, rota_id: int) -> RotaUploadPreview:
    require_role(actor.user, ROTA_AUDITORS, "view rota previews")
    rota = _scoped_rota(db, actor, rota_id)
    report = rota.parse_report or {}
    return build_rota_preview(
        rota,
        get_rota_schedules(db, rota_id),
        unresolved=report.get("unresolved_names", []),
        ambiguous={k: tuple(v) for k, v in (report.get("ambiguous_names") or {}).items()},
        warnings=report.get("warnings", []),
    )


def extraction_details_for(db: Session, actor: ActorContext, rota_id: int) -> ExtractionDetails:
    """Raw source dump and parse report of a stored rota, for debugging an upload."""
    require_role(actor.user, ROTA_AUDITORS, "view extraction details")
    rota = _scoped_rota(db, actor, rota_id)
    entries = get_rota_schedules(db, rota_id)
    employees = group_by_employee(entries)
    text = rota.extracted_text or ""
    off = sum(1 for e in entries if e.is_off_day)
    return ExtractionDetails(
        rota=_rota_response(rota, len(employees)),
        extracted_text=rota.extracted_text,
        text_preview=text[:TEXT_PREVIEW_CHARS] if text else None,
        text_length=len(text),
        total_employees=len(employees),
        total_schedules=len(entries),
        work_days=len(entries) - off,
        off_days=off,
        parse_report=rota.parse_report,
        employees=employees,
    )


def current_week_for(
    db: Session,
    actor: ActorContext,
    employee_id: int,
    today: date | None = None,
) -> CurrentWeekSchedule:
    """Schedules from a few days back to a week ahead. USER may only read its own employee record."""
    require_role(actor.user, ALL_ROLES, "view schedules")
    employee = db.get(Employee, employee_id)
    if not employee:
        raise NotFoundError(f"Employee not found with ID: {employee_id}")
    ensure_in_scope(actor.user, employee.organization_id, "Employee", employee_id)
    if actor.role == UserRole.user and employee.user_id != actor.user_id:
        raise PermissionDeniedError("Access denied. You can only view your own schedule.")

    settings = get_settings()
    today = today or date.today()
    start = today - timedelta(days=settings.rota_week_days_back)
    end = today + timedelta(days=settings.rota_week_days_ahead)
    entries = get_schedules_for_employee(db, employee_id, start, end, organization_id=employee.organization_id)
    return CurrentWeekSchedule(
        employee_id=employee_id,
        start_date=start,
        end_date=end,
        schedules=[RotaScheduleResponse.model_validate(e) for e in entries],
    )
