"""Append-only change log for rota schedule entries.
No updates or deletes - every record is permanent."""
from sqlalchemy import Column, Integer, String, Text, DateTime
from staffdesk.database import Base

CHANGE_CREATED = "CREATED"
CHANGE_UPDATED = "UPDATED"
CHANGE_DELETED = "DELETED"
CHANGE_REPLACED = "REPLACED"


class RotaChangeLog(Base):
    __tablename__ = "rota_change_logs"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, nullable=True, index=True)

    # Plain ids, no foreign keys: the trail outlives the rota and schedule it describes
    rota_id = Column(Integer, nullable=False, index=True)
    schedule_id = Column(Integer, nullable=False, index=True)
    employee_id = Column(Integer, nullable=False, index=True)
    employee_name = Column(String(255), nullable=False)

    change_type = Column(String(16), nullable=False, index=True)
    old_value = Column(Text, nullable=True)  # JSON snapshot
    new_value = Column(Text, nullable=True)  # JSON snapshot
    change_description = Column(Text, nullable=True)

    changed_at = Column(DateTime(timezone=True), nullable=False, index=True)
    changed_by = Column(Integer, nullable=False)
    changed_by_name = Column(String(100), nullable=False)
    changed_by_role = Column(String(32), nullable=True)

    # Request context
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
