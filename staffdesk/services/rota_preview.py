"""Per-employee rota preview. Pure transform over entries; no database access."""
from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from staffdesk.schemas.rota import (
    AmbiguousName,
    DaySchedulePreview,
    EmployeeSchedulePreview,
    RotaUploadPreview,
)
from staffdesk.services.rota_store import day_of_week


def group_by_employee(entries: Iterable) -> list[EmployeeSchedulePreview]:
    """Entries are RotaSchedule rows or ScheduleEntryData; both carry the same fields."""
    grouped: dict[int, list] = {}
    names: dict[int, str] = {}
    for entry in entries:
        grouped.setdefault(entry.employee_id, []).append(entry)
        names.setdefault(entry.employee_id, entry.employee_name)

    employees = []
    for employee_id in sorted(grouped, key=lambda i: (names[i].lower(), i)):
        days = sorted(grouped[employee_id], key=lambda e: e.schedule_date)
        off = sum(1 for e in days if e.is_off_day)
        employees.append(
            EmployeeSchedulePreview(
                employee_id=employee_id,
                employee_name=names[employee_id],
                total_days=len(days),
                work_days=len(days) - off,
                off_days=off,
                schedules=[
                    DaySchedulePreview(
                        schedule_date=e.schedule_date,
                        day_of_week=day_of_week(e.schedule_date),
                        duty=e.duty,
                        start_time=e.start_time,
                        end_time=e.end_time,
                        is_off_day=bool(e.is_off_day),
                    )
                    for e in days
                ],
            )
        )
    return employees


def build_preview(
    *,
    rota_id: int | None,
    hotel_name: str,
    department: str,
    file_name: str,
    start_date: date,
    end_date: date,
    entries: Iterable,
    committed: bool = True,
    unresolved: Iterable[str] = (),
    ambiguous: dict[str, tuple[str, ...]] | None = None,
    warnings: Iterable[str] = (),
) -> RotaUploadPreview:
    entries = list(entries)
    employees = group_by_employee(entries)
    return RotaUploadPreview(
        rota_id=rota_id,
        hotel_name=hotel_name,
        department=department,
        file_name=file_name,
        start_date=start_date,
        end_date=end_date,
        committed=committed,
        committed_count=len(entries) if committed else 0,
        total_employees=len(employees),
        total_schedules=len(entries),
        employees=employees,
        unresolved_names=sorted(set(unresolved)),
        ambiguous_names=[
            AmbiguousName(raw_name=name, candidates=list(cands))
            for name, cands in sorted((ambiguous or {}).items())
        ],
        warnings=list(warnings),
    )


def build_rota_preview(rota, entries: Iterable, **extra) -> RotaUploadPreview:
    """Preview of a stored rota."""
    return build_preview(
        rota_id=rota.id,
        hotel_name=rota.hotel_name,
        department=rota.department,
        file_name=rota.file_name,
        start_date=rota.start_date,
        end_date=rota.end_date,
        entries=entries,
        **extra,
    )
