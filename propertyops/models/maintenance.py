"""
Preventive maintenance models.

A template describes recurring work (e.g. "HVAC filter change", every 3
months). A schedule binds a template to a property and tracks when it is
next due. Each due occurrence becomes a ScheduledMaintenanceTask, which is
where the assigned vendor is recorded.
"""

import uuid
from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import date, datetime

from propertyops.core.typing import utc_now


def _new_id() -> str:
    return str(uuid.uuid4())


class PreventiveMaintenanceTemplate(SQLModel, table=True):
    __tablename__ = "preventive_maintenance_templates"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    category: str = Field(index=True)  # Matches vendor specialty tags
    frequency_months: int = Field(default=12)
    requires_vacancy: bool = Field(default=False)  # Must not overlap a guest stay
    created_at: datetime = Field(default_factory=utc_now)


class PropertyMaintenanceSchedule(SQLModel, table=True):
    __tablename__ = "property_maintenance_schedules"

    id: str = Field(default_factory=_new_id, primary_key=True)
    property_id: str = Field(index=True)
    template_id: str = Field(foreign_key="preventive_maintenance_templates.id", index=True)
    is_enabled: bool = Field(default=True)
    preferred_vendor_id: Optional[str] = Field(default=None)
    next_due_at: Optional[date] = Field(default=None, index=True)
    custom_frequency_months: Optional[int] = Field(default=None)  # Overrides template frequency
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ScheduledMaintenanceTask(SQLModel, table=True):
    __tablename__ = "scheduled_maintenance_tasks"

    id: str = Field(default_factory=_new_id, primary_key=True)
    schedule_id: Optional[str] = Field(default=None, index=True)
    property_id: str = Field(index=True)
    template_id: Optional[str] = Field(default=None)
    assigned_vendor_id: Optional[str] = Field(default=None, index=True)
    scheduled_date: date
    due_date: Optional[date] = Field(default=None, index=True)  # Cycle due date; differs from scheduled_date when moved
    status: str = Field(default="scheduled")  # scheduled, in_progress, completed, canceled
    auto_assigned: bool = Field(default=False)
    assignment_reason: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Booking(SQLModel, table=True):
    """Guest stay synced from OwnerRez. Only the dates matter here."""

    __tablename__ = "ownerrez_bookings"

    id: str = Field(default_factory=_new_id, primary_key=True)
    property_id: str = Field(index=True)
    arrival_date: date
    departure_date: date
    status: str = Field(default="confirmed")  # confirmed, arrived, canceled, ...
