"""Rota ingestion: parse -> match -> store -> preview, for file, text and manual input."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path

from sqlalchemy.orm import Session

from staffdesk.config import get_settings
from staffdesk.errors import NotFoundError, RotaFileError, RotaValidationError
from staffdesk.models.rota import Rota
from staffdesk.schemas.rota import ManualRotaCreate, RotaUploadPreview
from staffdesk.services import rota_changes
from staffdesk.services.authorization import (
    ROTA_MANAGERS,
    ActorContext,
    require_organization,
    require_role,
)
from staffdesk.services.employee_matcher import MATCH_AMBIGUOUS, MATCH_UNRESOLVED, EmployeeMatcher
from staffdesk.services.employees import fetch_employees_by_ids, fetch_org_employees
from staffdesk.services.rota_parser import (
    ParsedRota,
    classify_duty,
    parse_extracted_text,
    parse_rota_workbook,
    validate_upload,
)
from staffdesk.services.rota_preview import build_preview
from staffdesk.services.rota_store import RotaMetadata, ScheduleEntryData, create_rota, validate_rota

log = logging.getLogger("uvicorn.error")


@dataclass
class _Prepared:
    """Matched entries plus everything the preview reports about the batch."""

    metadata: RotaMetadata
    entries: list[ScheduleEntryData] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    ambiguous: dict[str, tuple[str, ...]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def _prepare(db: Session, actor: ActorContext, parsed: ParsedRota, file_name: str, source: str) -> _Prepared:
    org_id = require_organization(actor.user)
    settings = get_settings()
    matcher = EmployeeMatcher(
        fetch_org_employees(db, org_id),
        similarity_threshold=settings.matcher_similarity_threshold,
    )
    results = matcher.match_all(parsed.raw_names)

    entries: list[ScheduleEntryData] = []
    for row in parsed.rows:
        result = results[row.raw_name]
        if not result.resolved:
            continue
        entries.append(
            ScheduleEntryData(
                employee_id=result.employee_id,
                employee_name=result.employee_name,
                schedule_date=row.schedule_date,
                duty=row.duty,
                start_time=row.start_time,
                end_time=row.end_time,
                is_off_day=row.is_off_day,
            )
        )

    unresolved = sorted(r.raw_name for r in results.values() if r.status == MATCH_UNRESOLVED)
    ambiguous = {r.raw_name: r.candidates for r in results.values() if r.status == MATCH_AMBIGUOUS}
    if unresolved or ambiguous:
        log.warning(
            "Rota upload %s: %s unresolved and %s ambiguous employee names",
            file_name,
            len(unresolved),
            len(ambiguous),
        )

    metadata = RotaMetadata(
        organization_id=org_id,
        hotel_name=parsed.hotel_name,
        department=parsed.department,
        file_name=file_name,
        start_date=parsed.start_date,
        end_date=parsed.end_date,
        uploaded_by=actor.user_id,
        uploaded_by_name=actor.username,
        extracted_text=parsed.extracted_text,
        parse_report={
            "source": source,
            "parsed_rows": len(parsed.rows),
            "warnings": parsed.warnings,
            "unresolved_names": unresolved,
            "ambiguous_names": {k: list(v) for k, v in ambiguous.items()},
        },
    )
    return _Prepared(metadata, entries, unresolved, ambiguous, parsed.warnings)


def _commit_and_preview(db: Session, prepared: _Prepared, dry_run: bool) -> RotaUploadPreview:
    md = prepared.metadata
    rota_id = None
    if dry_run:
        validate_rota(md, prepared.entries)
    else:
        rota_id = create_rota(db, md, prepared.entries).id
    return build_preview(
        rota_id=rota_id,
        hotel_name=md.hotel_name,
        department=md.department,
        file_name=md.file_name,
        start_date=md.start_date,
        end_date=md.end_date,
        entries=prepared.entries,
        committed=not dry_run,
        unresolved=prepared.unresolved,
        ambiguous=prepared.ambiguous,
        warnings=prepared.warnings,
    )


def upload_rota_file(
    db: Session,
    actor: ActorContext,
    filename: str | None,
    content: bytes,
    *,
    dry_run: bool = False,
    today: date | None = None,
) -> RotaUploadPreview:
    """Parse an uploaded .xlsx/.csv rota and commit it (unless dry_run), returning the preview."""
    require_role(actor.user, ROTA_MANAGERS, "upload rota files")
    require_organization(actor.user)
    settings = get_settings()
    ext = validate_upload(
        filename,
        content,
        max_bytes=settings.rota_max_upload_bytes,
        allowed_extensions=settings.rota_allowed_extensions,
    )
    parsed = parse_rota_workbook(content, filename, today=today)
    prepared = _prepare(db, actor, parsed, Path(filename).name, ext.lstrip("."))
    preview = _commit_and_preview(db, prepared, dry_run)
    log.info(
        "Rota upload %s by %s: rota=%s schedules=%s dry_run=%s",
        filename,
        actor.username,
        preview.rota_id,
        preview.total_schedules,
        dry_run,
    )
    return preview


def upload_rota_text(
    db: Session,
    actor: ActorContext,
    text: str,
    file_name: str = "extracted-text.txt",
    *,
    dry_run: bool = False,
    today: date | None = None,
) -> RotaUploadPreview:
    """Ingest text already extracted from a rota image by an OCR step."""
    require_role(actor.user, ROTA_MANAGERS, "upload rota files")
    require_organization(actor.user)
    max_bytes = get_settings().rota_max_upload_bytes
    if len(text.encode("utf-8")) > max_bytes:
        raise RotaFileError(f"Text must be less than {max_bytes // (1024 * 1024)}MB")
    parsed = parse_extracted_text(text, today=today)
    prepared = _prepare(db, actor, parsed, file_name, "text")
    preview = _commit_and_preview(db, prepared, dry_run)
    log.info("Rota text upload by %s: rota=%s schedules=%s", actor.username, preview.rota_id, preview.total_schedules)
    return preview


def replace_rota_file(
    db: Session,
    actor: ActorContext,
    rota_id: int,
    filename: str | None,
    content: bytes,
    *,
    today: date | None = None,
) -> RotaUploadPreview:
    require_role(actor.user, ROTA_MANAGERS, "replace rotas")
    require_organization(actor.user)
    settings = get_settings()
    ext = validate_upload(
        filename,
        content,
        max_bytes=settings.rota_max_upload_bytes,
        allowed_extensions=settings.rota_allowed_extensions,
    )
    parsed = parse_rota_workbook(content, filename, today=today)
    prepared = _prepare(db, actor, parsed, Path(filename).name, ext.lstrip("."))
    rota = rota_changes.replace_rota(db, rota_id, prepared.metadata, prepared.entries, actor)
    return build_preview(
        rota_id=rota.id,
        hotel_name=rota.hotel_name,
        department=rota.department,
        file_name=rota.file_name,
        start_date=rota.start_date,
        end_date=rota.end_date,
        entries=prepared.entries,
        unresolved=prepared.unresolved,
        ambiguous=prepared.ambiguous,
        warnings=prepared.warnings,
    )


def create_manual_rota(db: Session, actor: ActorContext, payload: ManualRotaCreate) -> Rota:
    """Rota from structured rows; row.shifts[i] is the duty for start_date + i days."""
    require_role(actor.user, ROTA_MANAGERS, "create rotas")
    org_id = require_organization(actor.user)
    employees = fetch_employees_by_ids(db, org_id, [r.employee_id for r in payload.rows])
    missing = [r.employee_id for r in payload.rows if r.employee_id not in employees]
    if missing:
        raise NotFoundError(f"Employee not found with ID: {missing[0]}")

    days = (payload.end_date - payload.start_date).days + 1
    entries: list[ScheduleEntryData] = []
    for row in payload.rows:
        if len(row.shifts) > days:
            raise RotaValidationError(
                f"{len(row.shifts)} shifts given for employee {row.employee_id} but the rota spans {days} days."
            )
        employee = employees[row.employee_id]
        for offset, shift in enumerate(row.shifts):
            if shift is None or not shift.strip():
                continue
            duty = classify_duty(shift)
            entries.append(
                ScheduleEntryData(
                    employee_id=employee.id,
                    employee_name=employee.full_name,
                    schedule_date=payload.start_date + timedelta(days=offset),
                    duty=duty.duty,
                    start_time=duty.start_time,
                    end_time=duty.end_time,
                    is_off_day=duty.is_off_day,
                )
            )

    metadata = RotaMetadata(
        organization_id=org_id,
        hotel_name=payload.hotel_name.strip(),
        department=payload.department.strip(),
        file_name=payload.file_name.strip() or "Manual entry",
        start_date=payload.start_date,
        end_date=payload.end_date,
        uploaded_by=actor.user_id,
        uploaded_by_name=actor.username,
        parse_report={"source": "manual", "parsed_rows": len(entries), "warnings": []},
    )
    return create_rota(db, metadata, entries)
