"""
Circuit Breaker API Endpoints

Read-only status for dashboards, plus a manual reset for ops.
"""

from datetime import datetime
from typing import Any, List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from propertyops.api.deps import get_circuit_store
from propertyops.core.circuit_breaker import CircuitBreakerStore, CircuitStatus

router = APIRouter()


class CircuitStatusOut(BaseModel):
    service_name: str
    state: str
    failure_count: int
    success_count: int
    last_failure_at: Optional[datetime]
    last_success_at: Optional[datetime]
    opened_at: Optional[datetime]
    can_proceed: bool


def _out(status: CircuitStatus) -> CircuitStatusOut:
    return CircuitStatusOut(
        service_name=status.service_name,
        state=status.state.value,
        failure_count=status.failure_count,
        success_count=status.success_count,
        last_failure_at=status.last_failure_at,
        last_success_at=status.last_success_at,
        opened_at=status.opened_at,
        can_proceed=status.can_proceed,
    )


@router.get("", response_model=List[CircuitStatusOut])
def list_circuits(store: CircuitBreakerStore = Depends(get_circuit_store)) -> Any:
    return [_out(s) for s in store.list_statuses()]


@router.get("/{service_name}", response_model=CircuitStatusOut)
def get_circuit(service_name: str, store: CircuitBreakerStore = Depends(get_circuit_store)) -> Any:
    """Unknown services report closed; nothing is created."""
    return _out(store.get_status(service_name))


@router.post("/{service_name}/reset", response_model=CircuitStatusOut)
def reset_circuit(service_name: str, store: CircuitBreakerStore = Depends(get_circuit_store)) -> Any:
    return _out(store.reset(service_name))
