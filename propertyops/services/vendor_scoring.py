"""
Vendor Auto-Assignment Service

Picks the vendor for a maintenance job using a decision tree:
1. Preferred vendor hint, if that vendor is active/preferred
2. Vendor pinned to the property for this category
3. Highest scoring vendor whose specialty covers the category
4. Highest scoring "general" vendor
5. Unassigned (score 0) when nobody qualifies

"No vendor" is a normal result. Only data-access errors raise.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlmodel import Session, select

from propertyops.core.typing import col
from propertyops.models.maintenance import ScheduledMaintenanceTask
from propertyops.models.vendor import (
    ASSIGNABLE_STATUSES,
    PropertyVendorAssignment,
    Vendor,
    VendorStatus,
)

logger = logging.getLogger(__name__)

GENERAL_SPECIALTY = "general"


class ScoringWeights:
    """Fixed weights for vendor scoring (max ~115 points)."""

    RATING_MULTIPLIER: float = 8.0  # 5.0 rating -> 40 points
    RESPONSE_CAP_HOURS: float = 48.0  # Slower than this earns nothing
    RESPONSE_MULTIPLIER: float = 0.625  # Instant response -> 30 points
    DEFAULT_RESPONSE_HOURS: float = 24.0  # Used when a vendor has no history
    JOBS_CAP: int = 100
    JOBS_MULTIPLIER: float = 0.2  # 100+ jobs -> 20 points
    INSURANCE_POINTS: float = 10.0
    PREFERRED_BONUS: float = 15.0


@dataclass
class ScoreBreakdown:
    rating: float
    response: float
    experience: float
    insurance: float
    preferred_bonus: float

    @property
    def total(self) -> float:
        return self.rating + self.response + self.experience + self.insurance + self.preferred_bonus

    def to_dict(self) -> dict[str, float]:
        return {
            "rating": self.rating,
            "response": self.response,
            "experience": self.experience,
            "insurance": self.insurance,
            "preferred_bonus": self.preferred_bonus,
            "total": self.total,
        }


@dataclass
class AssignmentResult:
    vendor_id: Optional[str]
    vendor_name: Optional[str]
    reason: str
    score: float

    @property
    def assigned(self) -> bool:
        return self.vendor_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "reason": self.reason,
            "score": self.score,
        }


def score_vendor(vendor: Vendor, marked_preferred: bool = False) -> ScoreBreakdown:
    """
    Score a vendor. Totals are not clamped.

    Args:
        vendor: Vendor to score
        marked_preferred: Vendor was named as the preferred vendor for this job
    """
    w = ScoringWeights
    response_hours = vendor.average_response_time_hours
    if response_hours is None:
        response_hours = w.DEFAULT_RESPONSE_HOURS

    is_preferred = marked_preferred or vendor.status == VendorStatus.PREFERRED.value

    return ScoreBreakdown(
        rating=(vendor.average_rating or 0.0) * w.RATING_MULTIPLIER,
        response=(w.RESPONSE_CAP_HOURS - min(response_hours, w.RESPONSE_CAP_HOURS)) * w.RESPONSE_MULTIPLIER,
        experience=min(vendor.total_jobs_completed or 0, w.JOBS_CAP) * w.JOBS_MULTIPLIER,
        insurance=w.INSURANCE_POINTS if vendor.insurance_verified else 0.0,
        preferred_bonus=w.PREFERRED_BONUS if is_preferred else 0.0,
    )


def rank_vendors(vendors: List[Vendor]) -> List[tuple[Vendor, float]]:
    """Highest score first; equal scores ordered by vendor id."""
    scored = [(v, score_vendor(v).total) for v in vendors]
    return sorted(scored, key=lambda pair: (-pair[1], pair[0].id))


class VendorScorer:
    """
    Selects and optionally records the vendor for a maintenance job.

    Example:
        scorer = VendorScorer(session)
        result = scorer.auto_assign_vendor(property_id="p1", category="plumbing")
        if result.assigned:
            print(f"{result.vendor_name}: {result.reason}")
    """

    def __init__(self, session: Session):
        self.session = session

    def auto_assign_vendor(
        self,
        property_id: str,
        category: str,
        preferred_vendor_id: Optional[str] = None,
        schedule_id: Optional[str] = None,
    ) -> AssignmentResult:
        """
        Choose a vendor for `category` work at `property_id`.

        When `schedule_id` is given, the chosen vendor is written to that
        scheduled task.
        """
        result = self._select(property_id, category, preferred_vendor_id)

        logger.info(
            f"Vendor assignment for property={property_id} category={category}: "
            f"{result.vendor_id or 'unassigned'} ({result.reason})"
        )

        if schedule_id and result.assigned:
            self._record_on_schedule(schedule_id, result)

        return result

    def _select(
        self,
        property_id: str,
        category: str,
        preferred_vendor_id: Optional[str],
    ) -> AssignmentResult:
        # Step 1: preferred vendor short-circuit
        if preferred_vendor_id:
            vendor = self.session.get(Vendor, preferred_vendor_id)
            if vendor and vendor.status in ASSIGNABLE_STATUSES:
                return AssignmentResult(
                    vendor_id=vendor.id,
                    vendor_name=vendor.name,
                    reason="Preferred vendor",
                    score=score_vendor(vendor, marked_preferred=True).total,
                )
            logger.info(f"Preferred vendor {preferred_vendor_id} not assignable, falling back to scoring")

        # Step 2: vendor pinned to this property
        pinned = self._property_vendor(property_id, category)
        if pinned:
            return AssignmentResult(
                vendor_id=pinned.id,
                vendor_name=pinned.name,
                reason=f"Assigned {category} vendor for property",
                score=score_vendor(pinned).total,
            )

        # Steps 3-4: score specialists, then generalists
        assignable = self._assignable_vendors()
        candidates = [v for v in assignable if v.has_specialty(category)]
        label = f"Best {category} vendor"
        if not candidates:
            candidates = [v for v in assignable if v.has_specialty(GENERAL_SPECIALTY)]
            label = f"Best general vendor for {category}"

        if not candidates:
            return AssignmentResult(vendor_id=None, vendor_name=None, reason="No vendors available", score=0.0)

        best, score = rank_vendors(candidates)[0]
        return AssignmentResult(
            vendor_id=best.id,
            vendor_name=best.name,
            reason=f"{label} (score: {score:.1f})",
            score=score,
        )

    def _property_vendor(self, property_id: str, category: str) -> Optional[Vendor]:
        statement = (
            select(Vendor)
            .join(PropertyVendorAssignment, col(PropertyVendorAssignment.vendor_id) == col(Vendor.id))
            .where(col(PropertyVendorAssignment.property_id) == property_id)
            .where(col(PropertyVendorAssignment.specialty) == category)
            .where(col(PropertyVendorAssignment.is_active).is_(True))
            .where(col(Vendor.status).in_(ASSIGNABLE_STATUSES))
            .order_by(col(PropertyVendorAssignment.created_at))
        )
        return self.session.exec(statement).first()

    def _assignable_vendors(self) -> List[Vendor]:
        # Specialty is a JSON list; membership is checked in Python so the
        # query stays portable between Postgres and SQLite.
        statement = select(Vendor).where(col(Vendor.status).in_(ASSIGNABLE_STATUSES)).order_by(col(Vendor.id))
        return list(self.session.exec(statement).all())

    def _record_on_schedule(self, schedule_id: str, result: AssignmentResult) -> None:
        task = self.session.get(ScheduledMaintenanceTask, schedule_id)
        if task is None:
            logger.warning(f"Scheduled task {schedule_id} not found, assignment not recorded")
            return
        task.assigned_vendor_id = result.vendor_id
        task.auto_assigned = True
        task.assignment_reason = result.reason
        task.updated_at = datetime.now(timezone.utc)
        self.session.add(task)
        self.session.commit()


def get_vendor_scorer(session: Session) -> VendorScorer:
    """Factory function to create VendorScorer."""
    return VendorScorer(session)


__all__ = [
    "ScoringWeights",
    "ScoreBreakdown",
    "AssignmentResult",
    "VendorScorer",
    "score_vendor",
    "rank_vendors",
    "get_vendor_scorer",
]
