"""Rota upload, review, editing and change-log endpoints."""
from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from staffdesk.config import get_settings
from staffdesk.database import get_db
from staffdesk.dependencies import get_actor_context
from staffdesk.schemas.rota import (
    ChangeLogResponse,
    CurrentWeekSchedule,
    ExtractionDetails,
    ManualRotaCreate,
    RotaDeleteResult,
    RotaResponse,
    RotaScheduleCreate,
    RotaScheduleResponse,
    RotaScheduleUpdate,
    RotaUploadPreview,
    TextRotaUpload,
)
from staffdesk.services import rota_changes, rota_ingest, rota_queries
from staffdesk.services.authorization import ActorContext
from staffdesk.services.rota_changes import ScheduleChanges

router = APIRouter(prefix="/api/rota", tags=["rota"])


def _read_upload(file: UploadFile) -> bytes:
    # One byte past the limit is enough for the size check to reject it
    return file.file.read(get_settings().rota_max_upload_bytes + 1)


def _logs(rows) -> list[ChangeLogResponse]:
    return [ChangeLogResponse.model_validate(r) for r in rows]


# --- Ingestion ---


@router.post("/upload-excel", response_model=RotaUploadPreview)
def upload_excel(
    file: UploadFile = File(...),
    dry_run: bool = Query(False, description="Parse and match only; nothing is stored"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    """Upload a rota spreadsheet (.xlsx or .csv). Returns the per-employee preview of what was stored."""
    content = _read_upload(file)
    return rota_ingest.upload_rota_file(db, actor, file.filename, content, dry_run=dry_run)


@router.post("/upload-text", response_model=RotaUploadPreview)
def upload_text(
    data: TextRotaUpload,
    dry_run: bool = Query(False),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    """Ingest text extracted from a rota image."""
    return rota_ingest.upload_rota_text(db, actor, data.text, data.file_name, dry_run=dry_run)


@router.post("/manual", response_model=RotaResponse, status_code=201)
def create_manual(
    data: ManualRotaCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    rota = rota_ingest.create_manual_rota(db, actor, data)
    out = RotaResponse.model_validate(rota)
    out.employee_count = len({r.employee_id for r in data.rows})
    return out


# --- Change logs ---


@router.get("/change-logs/recent", response_model=list[ChangeLogResponse])
def recent_change_logs(
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    return _logs(rota_changes.get_recent_change_logs(db, actor, days))


@router.get("/change-logs/latest", response_model=list[ChangeLogResponse])
def latest_change_logs(db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    return _logs(rota_changes.get_latest_change_logs(db, actor))


@router.get("/employee/{employee_id}/change-logs", response_model=list[ChangeLogResponse])
def employee_change_logs(employee_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    return _logs(rota_changes.get_change_logs_for_employee(db, actor, employee_id))


@router.get("/employee/{employee_id}/current-week", response_model=CurrentWeekSchedule)
def employee_current_week(employee_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    return rota_queries.current_week_for(db, actor, employee_id)


# --- Single schedules ---


@router.get("/schedules/{schedule_id}", response_model=RotaScheduleResponse)
def get_schedule(schedule_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    return RotaScheduleResponse.model_validate(rota_queries.schedule_for(db, actor, schedule_id))


@router.put("/schedules/{schedule_id}", response_model=RotaScheduleResponse)
def update_schedule(
    schedule_id: int,
    data: RotaScheduleUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    """Edit one schedule. The change and its change-log entry are stored together."""
    changes = ScheduleChanges(
        schedule_date=data.schedule_date,
        duty=data.duty,
        start_time=data.start_time,
        end_time=data.end_time,
        is_off_day=data.is_off_day,
        reason=data.reason,
    )
    return RotaScheduleResponse.model_validate(rota_changes.update_schedule(db, schedule_id, changes, actor))


@router.delete("/schedules/{schedule_id}", status_code=204)
def delete_schedule(
    schedule_id: int,
    reason: str | None = Query(None, max_length=1000),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    rota_changes.delete_schedule(db, schedule_id, actor, reason)


@router.get("/schedules/{schedule_id}/change-logs", response_model=list[ChangeLogResponse])
def schedule_change_logs(schedule_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    return _logs(rota_changes.get_change_logs_for_schedule(db, actor, schedule_id))


# --- Rotas ---


@router.get("", response_model=list[RotaResponse])
def list_rotas(db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    """All rotas of the caller's organization (every organization for ROOT), newest first."""
    return rota_queries.list_rotas_for(db, actor)


@router.get("/{rota_id}/schedules", response_model=list[RotaScheduleResponse])
def rota_schedules(rota_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    return [RotaScheduleResponse.model_validate(e) for e in rota_queries.rota_schedules_for(db, actor, rota_id)]


@router.post("/{rota_id}/schedules", response_model=RotaScheduleResponse, status_code=201)
def add_schedule(
    rota_id: int,
    data: RotaScheduleCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    entry = rota_changes.new_entry_from_fields(
        data.employee_id,
        data.schedule_date,
        duty=data.duty,
        start_time=data.start_time,
        end_time=data.end_time,
        is_off_day=data.is_off_day,
    )
    return RotaScheduleResponse.model_validate(rota_changes.add_schedule(db, rota_id, entry, actor, data.reason))


@router.get("/{rota_id}/preview", response_model=RotaUploadPreview)
def rota_preview(rota_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    return rota_queries.rota_preview_for(db, actor, rota_id)


@router.get("/{rota_id}/extraction-details", response_model=ExtractionDetails)
def extraction_details(rota_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    return rota_queries.extraction_details_for(db, actor, rota_id)


@router.get("/{rota_id}/change-logs", response_model=list[ChangeLogResponse])
def rota_change_logs(rota_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    return _logs(rota_changes.get_change_logs_for_rota(db, actor, rota_id))


@router.post("/{rota_id}/replace", response_model=RotaUploadPreview)
def replace_rota(
    rota_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    """Replace a rota with a new upload. Old entries are logged as REPLACED."""
    content = _read_upload(file)
    return rota_ingest.replace_rota_file(db, actor, rota_id, file.filename, content)


@router.delete("/{rota_id}", response_model=RotaDeleteResult)
def delete_rota(
    rota_id: int,
    reason: str | None = Query(None, max_length=1000),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    removed = rota_changes.delete_rota_with_audit(db, rota_id, actor, reason)
    return RotaDeleteResult(rota_id=rota_id, deleted_schedules=removed)
