"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table; no migration scripts needed for fresh installs.
"""
from staffdesk.models.user import Organization, User, UserRole
from staffdesk.models.employee import Department, Employee
from staffdesk.models.rota import Rota, RotaSchedule
from staffdesk.models.rota_change_log import RotaChangeLog

__all__ = [
    "Organization",
    "User",
    "UserRole",
    "Department",
    "Employee",
    "Rota",
    "RotaSchedule",
    "RotaChangeLog",
]
