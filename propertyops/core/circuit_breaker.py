"""
Database-backed circuit breaker.

Every protected external service (AI gateway, Twilio, Bill.com, ...) has one
CircuitBreakerState row. Callers are short-lived request handlers, so nothing
is kept in process memory: each operation reads the row, computes the
transition, and writes it back.

States:
    closed    -> calls proceed; consecutive failures are counted
    open      -> calls are rejected until reset_timeout_seconds have passed
    half_open -> probing; success_threshold successes close the circuit,
                 a single failure reopens it

The open -> half_open transition is computed when the row is read and only
persisted by the next recorded outcome.

Writes compare-and-swap on the row's version column, so two concurrent
record_failure() calls cannot both write count+1 from the same read.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from propertyops.core.config import settings
from propertyops.core.errors import capture_message
from propertyops.core.typing import as_utc, col, utc_now
from propertyops.models.circuit_breaker_state import CircuitBreakerState

logger = structlog.get_logger(__name__)

# Columns a transition may change
_COUNTER_FIELDS = (
    "state",
    "failure_count",
    "success_count",
    "last_failure_at",
    "last_success_at",
    "opened_at",
    "last_error_message",
)

MAX_ERROR_MESSAGE_LENGTH = 1000

Mutation = Callable[[Dict[str, Any], CircuitBreakerState, datetime], None]


class CircuitState(str, Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if recovered


class StaleCircuitStateError(RuntimeError):
    """Raised when a write keeps losing the version race."""


@dataclass
class CircuitStatus:
    service_name: str
    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_at: Optional[datetime]
    last_success_at: Optional[datetime]
    opened_at: Optional[datetime]
    can_proceed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_name": self.service_name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_at": self.last_failure_at.isoformat() if self.last_failure_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "opened_at": self.opened_at.isoformat() if self.opened_at else None,
            "can_proceed": self.can_proceed,
        }


def effective_state(
    stored_state: str,
    opened_at: Optional[datetime],
    reset_timeout_seconds: int,
    now: datetime,
) -> CircuitState:
    """State as seen at `now`, applying the time-based open -> half_open rule."""
    try:
        state = CircuitState(stored_state)
    except ValueError:
        logger.warning("Unknown circuit state, treating as closed", stored_state=stored_state)
        return CircuitState.CLOSED

    if state != CircuitState.OPEN:
        return state

    opened = as_utc(opened_at)
    if opened is None:
        # Opened without a timestamp: nothing to wait for
        return CircuitState.HALF_OPEN
    elapsed = (now - opened).total_seconds()
    if elapsed >= reset_timeout_seconds:
        return CircuitState.HALF_OPEN
    return CircuitState.OPEN


def _apply_success(values: Dict[str, Any], record: CircuitBreakerState, now: datetime) -> None:
    state = effective_state(values["state"], values["opened_at"], record.reset_timeout_seconds, now)
    values["last_success_at"] = now

    if state == CircuitState.HALF_OPEN:
        values["success_count"] += 1
        if values["success_count"] >= record.success_threshold:
            values["state"] = CircuitState.CLOSED.value
            values["failure_count"] = 0
            values["success_count"] = 0
            values["opened_at"] = None
        else:
            values["state"] = CircuitState.HALF_OPEN.value
    elif state == CircuitState.CLOSED:
        # Failures are tracked consecutively
        values["failure_count"] = 0
    # OPEN: a late success from a call started before the circuit opened


def _apply_failure(error_message: Optional[str]) -> Mutation:
    def mutate(values: Dict[str, Any], record: CircuitBreakerState, now: datetime) -> None:
        state = effective_state(values["state"], values["opened_at"], record.reset_timeout_seconds, now)
        values["failure_count"] += 1
        values["last_failure_at"] = now
        if error_message:
            values["last_error_message"] = error_message[:MAX_ERROR_MESSAGE_LENGTH]

        if state == CircuitState.HALF_OPEN:
            values["state"] = CircuitState.OPEN.value
            values["opened_at"] = now
            values["success_count"] = 0
        elif state == CircuitState.CLOSED and values["failure_count"] >= record.failure_threshold:
            values["state"] = CircuitState.OPEN.value
            values["opened_at"] = now
            values["success_count"] = 0

    return mutate


def _apply_reset(values: Dict[str, Any], record: CircuitBreakerState, now: datetime) -> None:
    values["state"] = CircuitState.CLOSED.value
    values["failure_count"] = 0
    values["success_count"] = 0
    values["opened_at"] = None


def _default(value: Optional[int], fallback: int) -> int:
    """An explicit 0 is kept; only None falls back to settings."""
    return fallback if value is None else value


class CircuitBreakerStore:
    """
    Reads and writes circuit breaker rows.

    Example:
        store = CircuitBreakerStore()
        if store.get_status("ai-gateway").can_proceed:
            ...
            store.record_success("ai-gateway")
    """

    def __init__(
        self,
        engine=None,
        failure_threshold: Optional[int] = None,
        success_threshold: Optional[int] = None,
        reset_timeout_seconds: Optional[int] = None,
        write_retries: Optional[int] = None,
    ):
        if engine is None:
            from propertyops.db import engine as default_engine

            engine = default_engine
        self.engine = engine
        # Defaults only apply to rows created by this store
        self.failure_threshold = max(1, _default(failure_threshold, settings.CIRCUIT_FAILURE_THRESHOLD))
        self.success_threshold = max(1, _default(success_threshold, settings.CIRCUIT_SUCCESS_THRESHOLD))
        self.reset_timeout_seconds = max(0, _default(reset_timeout_seconds, settings.CIRCUIT_RESET_TIMEOUT_SECONDS))
        self.write_retries = max(1, _default(write_retries, settings.CIRCUIT_WRITE_RETRIES))

    # ---------- reads ----------

    def get_status(self, service_name: str, now: Optional[datetime] = None) -> CircuitStatus:
        """Effective status of a service. Never writes."""
        now = now or utc_now()
        with Session(self.engine) as session:
            record = self._load(session, service_name)
            if record is None:
                return self._closed_status(service_name)
            return self._status(service_name, self._snapshot(record), record, now)

    def list_statuses(self, now: Optional[datetime] = None) -> List[CircuitStatus]:
        now = now or utc_now()
        with Session(self.engine) as session:
            records = session.exec(select(CircuitBreakerState).order_by(col(CircuitBreakerState.service_name))).all()
            return [self._status(r.service_name, self._snapshot(r), r, now) for r in records]

    # ---------- writes ----------

    def record_success(self, service_name: str, now: Optional[datetime] = None) -> CircuitStatus:
        return self._write(service_name, _apply_success, now or utc_now())

    def record_failure(
        self,
        service_name: str,
        error_message: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CircuitStatus:
        return self._write(service_name, _apply_failure(error_message), now or utc_now())

    def reset(self, service_name: str, now: Optional[datetime] = None) -> CircuitStatus:
        """Close the circuit and zero its counters. Unknown services are left alone."""
        return self._write(service_name, _apply_reset, now or utc_now(), create=False)

    # ---------- internals ----------

    @staticmethod
    def _load(session: Session, service_name: str) -> Optional[CircuitBreakerState]:
        return session.exec(
            select(CircuitBreakerState).where(col(CircuitBreakerState.service_name) == service_name)
        ).first()

    @staticmethod
    def _snapshot(record: CircuitBreakerState) -> Dict[str, Any]:
        return {field: getattr(record, field) for field in _COUNTER_FIELDS}

    @staticmethod
    def _closed_status(service_name: str) -> CircuitStatus:
        """Status of a service with no record yet."""
        return CircuitStatus(
            service_name=service_name,
            state=CircuitState.CLOSED,
            failure_count=0,
            success_count=0,
            last_failure_at=None,
            last_success_at=None,
            opened_at=None,
            can_proceed=True,
        )

    @staticmethod
    def _status(
        service_name: str,
        values: Dict[str, Any],
        record: CircuitBreakerState,
        now: datetime,
    ) -> CircuitStatus:
        state = effective_state(values["state"], values["opened_at"], record.reset_timeout_seconds, now)
        return CircuitStatus(
            service_name=service_name,
            state=state,
            failure_count=values["failure_count"],
            success_count=values["success_count"],
            last_failure_at=as_utc(values["last_failure_at"]),
            last_success_at=as_utc(values["last_success_at"]),
            opened_at=as_utc(values["opened_at"]),
            can_proceed=state != CircuitState.OPEN,
        )

    def _new_record(self, service_name: str) -> CircuitBreakerState:
        return CircuitBreakerState(
            service_name=service_name,
            failure_threshold=self.failure_threshold,
            success_threshold=self.success_threshold,
            reset_timeout_seconds=self.reset_timeout_seconds,
        )

    def _write(
        self,
        service_name: str,
        mutate: Mutation,
        now: datetime,
        create: bool = True,
    ) -> CircuitStatus:
        for attempt in range(self.write_retries):
            with Session(self.engine) as session:
                record = self._load(session, service_name)

                if record is None:
                    if not create:
                        return self._closed_status(service_name)
                    record = self._new_record(service_name)
                    values = self._snapshot(record)
                    mutate(values, record, now)
                    for field, value in values.items():
                        setattr(record, field, value)
                    record.version = 1
                    record.updated_at = now
                    session.add(record)
                    try:
                        session.commit()
                    except IntegrityError:
                        # Another caller created the row first
                        session.rollback()
                        continue
                    self._log_transition(service_name, CircuitState.CLOSED, values, record, now)
                    return self._status(service_name, values, record, now)

                seen_version = record.version
                before = effective_state(record.state, record.opened_at, record.reset_timeout_seconds, now)
                values = self._snapshot(record)
                mutate(values, record, now)

                result = session.exec(
                    update(CircuitBreakerState)
                    .where(col(CircuitBreakerState.service_name) == service_name)
                    .where(col(CircuitBreakerState.version) == seen_version)
                    .values(**values, version=seen_version + 1, updated_at=now)
                )
                if result.rowcount == 1:
                    session.commit()
                    self._log_transition(service_name, before, values, record, now)
                    return self._status(service_name, values, record, now)
                session.rollback()

            logger.info(
                "Circuit breaker write conflict, retrying",
                service_name=service_name,
                attempt=attempt + 1,
            )

        raise StaleCircuitStateError(
            f"Circuit {service_name}: gave up after {self.write_retries} conflicting writes"
        )

    def _log_transition(
        self,
        service_name: str,
        before: CircuitState,
        values: Dict[str, Any],
        record: CircuitBreakerState,
        now: datetime,
    ) -> None:
        after = effective_state(values["state"], values["opened_at"], record.reset_timeout_seconds, now)
        if before == after:
            return
        if after == CircuitState.OPEN:
            capture_message(
                f"Circuit {service_name}: {before.value.upper()} -> OPEN",
                level="warning",
                context={
                    "service_name": service_name,
                    "failure_count": values["failure_count"],
                    "last_error_message": values["last_error_message"],
                },
            )
        else:
            logger.info(
                f"Circuit {service_name}: {before.value.upper()} -> {after.value.upper()}",
                service_name=service_name,
            )


def get_circuit_breaker_store(engine=None) -> CircuitBreakerStore:
    """Factory function to create CircuitBreakerStore."""
    return CircuitBreakerStore(engine)


__all__ = [
    "CircuitState",
    "CircuitStatus",
    "CircuitBreakerStore",
    "StaleCircuitStateError",
    "effective_state",
    "get_circuit_breaker_store",
]
