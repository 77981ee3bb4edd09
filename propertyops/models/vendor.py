"""
Vendor models.

Vendors are maintained by the vendor-management workflows (Bill.com import,
email extraction, manual entry). The assignment logic only reads them.
"""

import uuid
from enum import Enum
from typing import List, Optional
from sqlmodel import Field, SQLModel, Column, JSON
from datetime import datetime

from propertyops.core.typing import utc_now


def _new_id() -> str:
    return str(uuid.uuid4())


class VendorStatus(str, Enum):
    ACTIVE = "active"
    PREFERRED = "preferred"
    INACTIVE = "inactive"


# Statuses eligible for assignment
ASSIGNABLE_STATUSES = (VendorStatus.ACTIVE.value, VendorStatus.PREFERRED.value)


class Vendor(SQLModel, table=True):
    __tablename__ = "vendors"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    company_name: Optional[str] = Field(default=None)
    email: Optional[str] = Field(default=None)
    phone: Optional[str] = Field(default=None)

    specialty: List[str] = Field(default_factory=list, sa_column=Column(JSON, default=[]))  # e.g. ["plumbing", "general"]
    status: str = Field(default=VendorStatus.ACTIVE.value, index=True)  # active, preferred, inactive

    # Performance stats, refreshed by job completion workflows
    average_rating: float = Field(default=0.0)  # 0-5
    total_jobs_completed: int = Field(default=0)
    average_response_time_hours: Optional[float] = Field(default=None)
    insurance_verified: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def has_specialty(self, category: str) -> bool:
        return category.lower() in {s.lower() for s in (self.specialty or [])}


class PropertyVendorAssignment(SQLModel, table=True):
    """Vendor pinned to a property for one maintenance category."""

    __tablename__ = "property_vendor_assignments"

    id: str = Field(default_factory=_new_id, primary_key=True)
    property_id: str = Field(index=True)
    vendor_id: str = Field(foreign_key="vendors.id", index=True)
    specialty: str  # Maintenance category this assignment covers
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now)
