"""
Test fixtures for property-ops tests.

Provides database session fixtures and sample vendor/maintenance data.
"""

import pytest
from datetime import date, datetime, timezone
from typing import Generator, List
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool

import propertyops.models  # noqa: F401  (registers every table on SQLModel.metadata)
from propertyops.models.vendor import Vendor, PropertyVendorAssignment
from propertyops.models.maintenance import (
    PreventiveMaintenanceTemplate,
    PropertyMaintenanceSchedule,
)


# Use in-memory SQLite for unit tests (fast, isolated)
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_session(test_engine) -> Generator[Session, None, None]:
    """Provide a test database session."""
    with Session(test_engine) as session:
        yield session


# ============================================
# Vendor Fixtures
# ============================================


@pytest.fixture
def sample_vendors(test_session: Session) -> List[Vendor]:
    """
    Vendors covering the assignment decision tree.

    v-plumb-a: preferred plumber, 4.5 rating, 2h, 80 jobs  -> 105.75
    v-plumb-b: active plumber, 5.0 rating, 1h, 10 jobs     -> 81.375
    v-general: handyman, only "general"                    -> 59.0
    v-inactive: inactive plumber, never assignable
    """
    vendors = [
        Vendor(
            id="v-plumb-a",
            name="Ace Plumbing",
            specialty=["plumbing"],
            status="preferred",
            average_rating=4.5,
            total_jobs_completed=80,
            average_response_time_hours=2,
            insurance_verified=True,
        ),
        Vendor(
            id="v-plumb-b",
            name="Budget Pipes",
            specialty=["Plumbing"],
            status="active",
            average_rating=5.0,
            total_jobs_completed=10,
            average_response_time_hours=1,
            insurance_verified=True,
        ),
        Vendor(
            id="v-general",
            name="Handy Hank",
            specialty=["general"],
            status="active",
            average_rating=4.0,
            total_jobs_completed=10,
            average_response_time_hours=None,
            insurance_verified=True,
        ),
        Vendor(
            id="v-inactive",
            name="Retired Plumber",
            specialty=["plumbing"],
            status="inactive",
            average_rating=5.0,
            total_jobs_completed=500,
            average_response_time_hours=1,
            insurance_verified=True,
        ),
    ]
    for v in vendors:
        test_session.add(v)
    test_session.commit()
    return vendors


@pytest.fixture
def property_assignment(test_session: Session, sample_vendors: List[Vendor]) -> PropertyVendorAssignment:
    """Pin the lower scoring plumber to property p-1."""
    assignment = PropertyVendorAssignment(
        property_id="p-1",
        vendor_id="v-plumb-b",
        specialty="plumbing",
        is_active=True,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    test_session.add(assignment)
    test_session.commit()
    return assignment


# ============================================
# Maintenance Fixtures
# ============================================


@pytest.fixture
def hvac_template(test_session: Session) -> PreventiveMaintenanceTemplate:
    template = PreventiveMaintenanceTemplate(
        id="t-hvac",
        name="HVAC filter change",
        category="hvac",
        frequency_months=3,
        requires_vacancy=True,
    )
    test_session.add(template)
    test_session.commit()
    return template


@pytest.fixture
def hvac_schedule(test_session: Session, hvac_template: PreventiveMaintenanceTemplate) -> PropertyMaintenanceSchedule:
    schedule = PropertyMaintenanceSchedule(
        id="s-hvac",
        property_id="p-1",
        template_id=hvac_template.id,
        next_due_at=date(2024, 6, 10),
    )
    test_session.add(schedule)
    test_session.commit()
    return schedule
