"""
Vendor Assignment API Endpoints
"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from propertyops.db import get_session
from propertyops.models.vendor import Vendor
from propertyops.services.vendor_scoring import get_vendor_scorer, score_vendor

router = APIRouter()


# ============== SCHEMAS ==============


class AutoAssignRequest(BaseModel):
    property_id: str
    category: str = Field(min_length=1)
    preferred_vendor_id: Optional[str] = None
    schedule_id: Optional[str] = None  # Scheduled task to record the vendor on


class AssignmentOut(BaseModel):
    vendor_id: Optional[str]
    vendor_name: Optional[str]
    reason: str
    score: float


class VendorScoreOut(BaseModel):
    vendor_id: str
    vendor_name: str
    status: str
    rating: float
    response: float
    experience: float
    insurance: float
    preferred_bonus: float
    total: float


# ============== ENDPOINTS ==============


@router.post("/auto-assign", response_model=AssignmentOut)
def auto_assign_vendor(
    request: AutoAssignRequest,
    session: Session = Depends(get_session),
) -> Any:
    """Pick the best vendor for a maintenance category at a property."""
    result = get_vendor_scorer(session).auto_assign_vendor(
        property_id=request.property_id,
        category=request.category,
        preferred_vendor_id=request.preferred_vendor_id,
        schedule_id=request.schedule_id,
    )
    return result.to_dict()


@router.get("/{vendor_id}/score", response_model=VendorScoreOut)
def get_vendor_score(
    vendor_id: str,
    session: Session = Depends(get_session),
) -> Any:
    """Score breakdown for one vendor."""
    vendor = session.get(Vendor, vendor_id)
    if not vendor:
        raise HTTPException(status_code=404, detail="Vendor not found")

    return {
        "vendor_id": vendor.id,
        "vendor_name": vendor.name,
        "status": vendor.status,
        **score_vendor(vendor).to_dict(),
    }
