from fastapi import Depends
from sqlmodel import Session

from propertyops.core.circuit_breaker import CircuitBreakerStore
from propertyops.db import get_session


def get_circuit_store(session: Session = Depends(get_session)) -> CircuitBreakerStore:
    """Breaker store bound to the same database as the request session."""
    return CircuitBreakerStore(session.get_bind())
