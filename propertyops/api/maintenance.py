"""
Preventive Maintenance API Endpoints
"""

from datetime import date
from typing import Any, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from propertyops.db import get_session
from propertyops.services.preventive_tasks import generate_preventive_tasks

router = APIRouter()


class GenerationOut(BaseModel):
    tasks_created: int
    tasks_skipped: int
    tasks_failed: int
    schedules_processed: int


@router.post("/preventive-tasks/generate", response_model=GenerationOut)
def run_preventive_generation(
    today: Optional[date] = None,
    session: Session = Depends(get_session),
) -> Any:
    """Same work as the daily cron job; `today` lets ops backfill a missed day."""
    return generate_preventive_tasks(session, today=today).to_dict()
