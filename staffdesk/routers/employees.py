"""Employee directory endpoints (org-scoped)."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from staffdesk.database import get_db
from staffdesk.dependencies import get_actor_context
from staffdesk.schemas.employee import EmployeeCreate, EmployeeResponse
from staffdesk.services.authorization import ActorContext
from staffdesk.services.employees import create_employee, list_employees

router = APIRouter(prefix="/api/employees", tags=["employees"])


@router.get("", response_model=list[EmployeeResponse])
def get_employees(db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    return [EmployeeResponse.model_validate(e) for e in list_employees(db, actor)]


@router.post("", response_model=EmployeeResponse, status_code=201)
def post_employee(data: EmployeeCreate, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor_context)):
    employee = create_employee(
        db,
        actor,
        full_name=data.full_name,
        work_email=str(data.work_email) if data.work_email else None,
        job_title=data.job_title,
        department=data.department,
        user_id=data.user_id,
    )
    return EmployeeResponse.model_validate(employee)
