"""Rota schemas: uploads, previews, schedule edits and change logs."""
import json
from datetime import date, datetime, time
from pydantic import BaseModel, Field, field_validator, model_validator


class RotaResponse(BaseModel):
    id: int
    organization_id: int
    hotel_name: str
    department: str
    file_name: str
    start_date: date
    end_date: date
    uploaded_by: int
    uploaded_by_name: str
    uploaded_at: datetime | None = None
    employee_count: int = 0

    class Config:
        from_attributes = True


class RotaScheduleResponse(BaseModel):
    id: int
    rota_id: int
    employee_id: int
    employee_name: str
    schedule_date: date
    day_of_week: str
    start_time: time | None = None
    end_time: time | None = None  # earlier than start_time for overnight shifts
    duty: str
    is_off_day: bool

    class Config:
        from_attributes = True


class RotaScheduleUpdate(BaseModel):
    """Fields left out are not changed. reason goes into the change log description."""

    schedule_date: date | None = None
    duty: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    is_off_day: bool | None = None
    reason: str | None = Field(default=None, max_length=1000)


class RotaScheduleCreate(BaseModel):
    employee_id: int
    schedule_date: date
    duty: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    is_off_day: bool | None = None
    reason: str | None = Field(default=None, max_length=1000)


class DaySchedulePreview(BaseModel):
    schedule_date: date
    day_of_week: str
    duty: str
    start_time: time | None = None
    end_time: time | None = None
    is_off_day: bool


class EmployeeSchedulePreview(BaseModel):
    employee_id: int
    employee_name: str
    total_days: int
    work_days: int
    off_days: int
    schedules: list[DaySchedulePreview]


class AmbiguousName(BaseModel):
    raw_name: str
    candidates: list[str]


class RotaUploadPreview(BaseModel):
    rota_id: int | None = None  # None for dry runs
    hotel_name: str
    department: str
    file_name: str
    start_date: date
    end_date: date
    committed: bool = True
    committed_count: int = 0
    total_employees: int = 0
    total_schedules: int = 0
    employees: list[EmployeeSchedulePreview] = []
    unresolved_names: list[str] = []
    ambiguous_names: list[AmbiguousName] = []
    warnings: list[str] = []


class ManualRotaRow(BaseModel):
    employee_id: int
    shifts: list[str | None] = Field(default_factory=list)  # one per day from start_date; blank entries skipped


class ManualRotaCreate(BaseModel):
    hotel_name: str = Field(min_length=1, max_length=255)
    department: str = Field(min_length=1, max_length=255)
    start_date: date
    end_date: date
    file_name: str = "Manual entry"
    rows: list[ManualRotaRow] = Field(min_length=1)

    @model_validator(mode="after")
    def date_range_valid(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self


TEXT_UPLOAD_MAX_CHARS = 1_000_000


class TextRotaUpload(BaseModel):
    text: str = Field(min_length=1, max_length=TEXT_UPLOAD_MAX_CHARS)
    file_name: str = "extracted-text.txt"


class ChangeLogResponse(BaseModel):
    id: int
    rota_id: int
    schedule_id: int
    employee_id: int
    employee_name: str
    change_type: str
    old_value: dict | None = None
    new_value: dict | None = None
    change_description: str | None = None
    changed_at: datetime
    changed_by: int
    changed_by_name: str
    changed_by_role: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @field_validator("old_value", "new_value", mode="before")
    @classmethod
    def parse_snapshot(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v else None
        return v

    class Config:
        from_attributes = True


class RotaDeleteResult(BaseModel):
    rota_id: int
    deleted_schedules: int


class CurrentWeekSchedule(BaseModel):
    employee_id: int
    start_date: date
    end_date: date
    schedules: list[RotaScheduleResponse]


class ExtractionDetails(BaseModel):
    rota: RotaResponse
    extracted_text: str | None = None
    text_preview: str | None = None
    text_length: int = 0
    total_employees: int = 0
    total_schedules: int = 0
    work_days: int = 0
    off_days: int = 0
    parse_report: dict | None = None
    employees: list[EmployeeSchedulePreview] = []
