"""
Circuit breaker state persistence model.

One row per protected external service. Rows are created on the first
recorded outcome and are never deleted; a reset zeroes the counters.
"""

from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime

from propertyops.core.typing import utc_now


class CircuitBreakerState(SQLModel, table=True):
    """Persisted circuit breaker state."""

    __tablename__ = "circuit_breaker_state"

    id: Optional[int] = Field(default=None, primary_key=True)
    service_name: str = Field(unique=True, index=True)  # e.g. "ai-gateway", "twilio"
    state: str = Field(default="closed")  # "closed", "open", "half_open"
    failure_count: int = Field(default=0)
    success_count: int = Field(default=0)
    last_failure_at: Optional[datetime] = Field(default=None)
    last_success_at: Optional[datetime] = Field(default=None)
    opened_at: Optional[datetime] = Field(default=None)
    last_error_message: Optional[str] = Field(default=None)

    failure_threshold: int = Field(default=5)
    success_threshold: int = Field(default=2)
    reset_timeout_seconds: int = Field(default=60)

    # Bumped on every write; writers compare-and-swap on it
    version: int = Field(default=0)
    updated_at: datetime = Field(default_factory=utc_now)
