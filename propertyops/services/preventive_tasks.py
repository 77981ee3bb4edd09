"""
Preventive Maintenance Task Generation

Runs daily. For every enabled schedule due within the lookahead window:
1. Fail the schedule if its frequency is below one month, and skip it if a
   task already exists for that cycle's due date
2. If the work needs a vacant property and a guest is in residence, move it
   to the nearest free day (forward first, then backward)
3. Auto-assign a vendor
4. Create the scheduled task and roll the schedule forward one cycle

One broken schedule never stops the run; its failure is captured and counted.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, List, Optional

from sqlmodel import Session, and_, or_, select

from propertyops.core.config import settings
from propertyops.core.errors import ErrorHandler
from propertyops.core.logging_config import get_logger
from propertyops.core.typing import col
from propertyops.models.maintenance import (
    Booking,
    PreventiveMaintenanceTemplate,
    PropertyMaintenanceSchedule,
    ScheduledMaintenanceTask,
)
from propertyops.services.vendor_scoring import VendorScorer

logger = get_logger(__name__)

# Booking statuses that mean someone is (or will be) staying
OCCUPIED_BOOKING_STATUSES = ("confirmed", "arrived")


class InvalidFrequencyError(ValueError):
    """Schedule frequency is below one month."""


@dataclass
class GenerationSummary:
    tasks_created: int = 0
    tasks_skipped: int = 0
    tasks_failed: int = 0
    schedules_processed: int = 0
    created_task_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tasks_created": self.tasks_created,
            "tasks_skipped": self.tasks_skipped,
            "tasks_failed": self.tasks_failed,
            "schedules_processed": self.schedules_processed,
        }


def add_months(value: date, months: int) -> date:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def has_booking_conflict(session: Session, property_id: str, target: date) -> bool:
    """True when an active booking covers `target` (arrival and departure days included)."""
    statement = (
        select(Booking.id)
        .where(col(Booking.property_id) == property_id)
        .where(col(Booking.arrival_date) <= target)
        .where(col(Booking.departure_date) >= target)
        .where(col(Booking.status).in_(OCCUPIED_BOOKING_STATUSES))
        .limit(1)
    )
    return session.exec(statement).first() is not None


def find_vacant_date(
    session: Session,
    property_id: str,
    preferred: date,
    days_to_check: Optional[int] = None,
) -> Optional[date]:
    """
    Nearest day without a booking conflict.

    Checks `preferred` and the following days first, then the days before it.
    """
    days = settings.VACANCY_SEARCH_DAYS if days_to_check is None else days_to_check

    for offset in range(days):
        candidate = preferred + timedelta(days=offset)
        if not has_booking_conflict(session, property_id, candidate):
            return candidate

    for offset in range(1, days + 1):
        candidate = preferred - timedelta(days=offset)
        if not has_booking_conflict(session, property_id, candidate):
            return candidate

    return None


class PreventiveTaskGenerator:
    """
    Example:
        summary = PreventiveTaskGenerator(session).run()
        print(summary.to_dict())
    """

    def __init__(self, session: Session, scorer: Optional[VendorScorer] = None):
        self.session = session
        self.scorer = scorer or VendorScorer(session)

    def run(self, today: Optional[date] = None, lookahead_days: Optional[int] = None) -> GenerationSummary:
        today = today or datetime.now(timezone.utc).date()
        if lookahead_days is None:
            lookahead_days = settings.PREVENTIVE_LOOKAHEAD_DAYS
        horizon = today + timedelta(days=lookahead_days)

        schedules = self._due_schedules(today, horizon)
        logger.info(
            "Generating preventive maintenance tasks",
            window_start=today.isoformat(),
            window_end=horizon.isoformat(),
            schedules=len(schedules),
        )

        summary = GenerationSummary(schedules_processed=len(schedules))
        for schedule in schedules:
            with ErrorHandler("generate_preventive_task", context={"schedule_id": schedule.id}) as handler:
                task = self._process_schedule(schedule)
                if task is None:
                    summary.tasks_skipped += 1
                else:
                    summary.tasks_created += 1
                    summary.created_task_ids.append(task.id)
            if handler.failed:
                self.session.rollback()
                summary.tasks_failed += 1

        logger.info("Preventive task generation complete", **summary.to_dict())
        return summary

    def _due_schedules(self, start: date, end: date) -> List[PropertyMaintenanceSchedule]:
        statement = (
            select(PropertyMaintenanceSchedule)
            .where(col(PropertyMaintenanceSchedule.is_enabled).is_(True))
            .where(col(PropertyMaintenanceSchedule.next_due_at) >= start)
            .where(col(PropertyMaintenanceSchedule.next_due_at) <= end)
            .order_by(col(PropertyMaintenanceSchedule.next_due_at), col(PropertyMaintenanceSchedule.id))
        )
        return list(self.session.exec(statement).all())

    def _process_schedule(self, schedule: PropertyMaintenanceSchedule) -> Optional[ScheduledMaintenanceTask]:
        template = self.session.get(PreventiveMaintenanceTemplate, schedule.template_id)
        if template is None or schedule.next_due_at is None:
            logger.info("Skipping schedule without template", schedule_id=schedule.id)
            return None

        due = schedule.next_due_at
        frequency = (
            template.frequency_months if schedule.custom_frequency_months is None else schedule.custom_frequency_months
        )
        if frequency < 1:
            # The schedule would never move past this cycle
            raise InvalidFrequencyError(f"Schedule {schedule.id} has non-positive frequency {frequency}")

        # Rows created before due_date existed only carry scheduled_date
        existing = self.session.exec(
            select(ScheduledMaintenanceTask.id)
            .where(col(ScheduledMaintenanceTask.schedule_id) == schedule.id)
            .where(
                or_(
                    col(ScheduledMaintenanceTask.due_date) == due,
                    and_(
                        col(ScheduledMaintenanceTask.due_date).is_(None),
                        col(ScheduledMaintenanceTask.scheduled_date) == due,
                    ),
                )
            )
        ).first()
        if existing:
            logger.info("Task already exists", schedule_id=schedule.id, due=due.isoformat())
            return None

        scheduled_date = due
        if template.requires_vacancy and has_booking_conflict(self.session, schedule.property_id, due):
            vacant = find_vacant_date(self.session, schedule.property_id, due)
            if vacant:
                logger.info(
                    "Rescheduled around booking",
                    schedule_id=schedule.id,
                    original=due.isoformat(),
                    new=vacant.isoformat(),
                )
                scheduled_date = vacant
            else:
                logger.warning("No vacant date found, keeping original date", schedule_id=schedule.id)

        assignment = self.scorer.auto_assign_vendor(
            property_id=schedule.property_id,
            category=template.category,
            preferred_vendor_id=schedule.preferred_vendor_id,
        )

        task = ScheduledMaintenanceTask(
            schedule_id=schedule.id,
            property_id=schedule.property_id,
            template_id=template.id,
            assigned_vendor_id=assignment.vendor_id,
            scheduled_date=scheduled_date,
            due_date=due,
            status="scheduled",
            auto_assigned=True,
            assignment_reason=assignment.reason,
        )
        self.session.add(task)

        schedule.next_due_at = add_months(due, frequency)
        schedule.updated_at = datetime.now(timezone.utc)
        self.session.add(schedule)
        self.session.commit()
        self.session.refresh(task)

        logger.info(
            "Created preventive task",
            task_id=task.id,
            template=template.name,
            property_id=schedule.property_id,
            scheduled_date=scheduled_date.isoformat(),
            vendor_id=assignment.vendor_id,
        )
        return task


def generate_preventive_tasks(session: Session, today: Optional[date] = None) -> GenerationSummary:
    return PreventiveTaskGenerator(session).run(today=today)


__all__ = [
    "GenerationSummary",
    "InvalidFrequencyError",
    "PreventiveTaskGenerator",
    "add_months",
    "has_booking_conflict",
    "find_vacant_date",
    "generate_preventive_tasks",
]
