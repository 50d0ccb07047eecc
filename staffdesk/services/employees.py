"""Employee directory: org-scoped listing, creation and batch lookups for rota matching."""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from staffdesk.database import transaction
from staffdesk.errors import ConflictError, NotFoundError
from staffdesk.models.employee import Department, Employee
from staffdesk.models.user import User
from staffdesk.services.authorization import (
    ALL_ROLES,
    EMPLOYEE_MANAGERS,
    ActorContext,
    organization_scope,
    require_organization,
    require_role,
)

log = logging.getLogger("uvicorn.error")


def fetch_org_employees(db: Session, organization_id: int) -> list[Employee]:
    """One query for the whole directory of an organization."""
    return (
        db.query(Employee)
        .filter(Employee.organization_id == organization_id)
        .order_by(Employee.full_name.asc(), Employee.id.asc())
        .all()
    )


def fetch_employees_by_ids(db: Session, organization_id: int, employee_ids: list[int]) -> dict[int, Employee]:
    """Batch lookup; ids outside the organization are absent from the result."""
    if not employee_ids:
        return {}
    rows = (
        db.query(Employee)
        .filter(Employee.organization_id == organization_id, Employee.id.in_(set(employee_ids)))
        .all()
    )
    return {e.id: e for e in rows}


def list_employees(db: Session, actor: ActorContext) -> list[Employee]:
    require_role(actor.user, ALL_ROLES, "list employees")
    q = db.query(Employee)
    scope = organization_scope(actor.user)
    if scope is not None:
        q = q.filter(Employee.organization_id == scope)
    return q.order_by(Employee.full_name.asc(), Employee.id.asc()).all()


def _get_or_create_department(db: Session, organization_id: int, name: str) -> Department:
    dept = (
        db.query(Department)
        .filter(Department.organization_id == organization_id, Department.name == name)
        .first()
    )
    if not dept:
        dept = Department(organization_id=organization_id, name=name)
        db.add(dept)
        db.flush()
    return dept


def create_employee(
    db: Session,
    actor: ActorContext,
    *,
    full_name: str,
    work_email: str | None = None,
    job_title: str | None = None,
    department: str | None = None,
    user_id: int | None = None,
) -> Employee:
    require_role(actor.user, EMPLOYEE_MANAGERS, "create employees")
    org_id = require_organization(actor.user)
    with transaction(db):
        if user_id is not None:
            linked = db.get(User, user_id)
            if not linked or linked.organization_id != org_id:
                raise NotFoundError(f"User not found with ID: {user_id}")
            if db.query(Employee.id).filter(Employee.user_id == user_id).first():
                raise ConflictError(f"User {user_id} is already linked to an employee.")
        dept = _get_or_create_department(db, org_id, department.strip()) if department and department.strip() else None
        employee = Employee(
            organization_id=org_id,
            department_id=dept.id if dept else None,
            full_name=full_name.strip(),
            work_email=work_email,
            job_title=job_title,
            user_id=user_id,
        )
        db.add(employee)
        db.flush()
    log.info("Employee created: id=%s org=%s by=%s", employee.id, org_id, actor.username)
    return employee
