"""Employee directory schemas."""
from pydantic import BaseModel, EmailStr, Field, field_validator


class EmployeeCreate(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    work_email: EmailStr | None = None
    job_title: str | None = Field(default=None, max_length=255)
    department: str | None = Field(default=None, max_length=255)
    user_id: int | None = None  # login account to link; USER role then sees this employee's schedule

    @field_validator("full_name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Full name is required.")
        return v.strip()


class EmployeeResponse(BaseModel):
    id: int
    organization_id: int
    department_id: int | None = None
    full_name: str
    work_email: str | None = None
    job_title: str | None = None
    user_id: int | None = None

    class Config:
        from_attributes = True
