"""
Tests for the database-backed circuit breaker.

Tests cover:
1. State transitions (CLOSED -> OPEN -> HALF_OPEN -> CLOSED)
2. Time-based open -> half_open computed on read, without writing
3. Manual reset
4. Compare-and-swap conflicts between concurrent writers
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from sqlalchemy import update
from sqlmodel import Session, SQLModel, create_engine, select

from propertyops.core.circuit_breaker import (
    CircuitBreakerStore,
    CircuitState,
    StaleCircuitStateError,
    effective_state,
)
from propertyops.models.circuit_breaker_state import CircuitBreakerState

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(test_engine) -> CircuitBreakerStore:
    return CircuitBreakerStore(
        test_engine,
        failure_threshold=5,
        success_threshold=2,
        reset_timeout_seconds=60,
    )


def load_row(engine, service_name: str) -> CircuitBreakerState:
    with Session(engine) as session:
        return session.exec(
            select(CircuitBreakerState).where(CircuitBreakerState.service_name == service_name)
        ).one()


def open_circuit(store: CircuitBreakerStore, service_name: str, now: datetime = NOW) -> None:
    for _ in range(store.failure_threshold):
        store.record_failure(service_name, "boom", now=now)


class TestCircuitState:
    def test_circuit_states_exist(self):
        assert CircuitState.CLOSED.value == "closed"
        assert CircuitState.OPEN.value == "open"
        assert CircuitState.HALF_OPEN.value == "half_open"


class TestEffectiveState:
    def test_open_within_timeout_stays_open(self):
        opened = NOW - timedelta(seconds=30)
        assert effective_state("open", opened, 60, NOW) == CircuitState.OPEN

    def test_open_past_timeout_reads_half_open(self):
        opened = NOW - timedelta(seconds=61)
        assert effective_state("open", opened, 60, NOW) == CircuitState.HALF_OPEN

    def test_open_without_timestamp_reads_half_open(self):
        assert effective_state("open", None, 60, NOW) == CircuitState.HALF_OPEN

    def test_naive_opened_at_treated_as_utc(self):
        opened = (NOW - timedelta(seconds=61)).replace(tzinfo=None)
        assert effective_state("open", opened, 60, NOW) == CircuitState.HALF_OPEN

    def test_unknown_state_reads_closed(self):
        assert effective_state("melted", None, 60, NOW) == CircuitState.CLOSED


class TestStateTransitions:
    """Tests for circuit breaker state transitions."""

    def test_unknown_service_is_closed(self, store):
        status = store.get_status("twilio", now=NOW)

        assert status.state == CircuitState.CLOSED
        assert status.can_proceed is True
        assert status.failure_count == 0

    def test_get_status_does_not_create_row(self, store, test_engine):
        store.get_status("twilio", now=NOW)

        with Session(test_engine) as session:
            assert session.exec(select(CircuitBreakerState)).all() == []

    def test_failures_below_threshold_stay_closed(self, store):
        for _ in range(4):
            status = store.record_failure("twilio", "timeout", now=NOW)

        assert status.state == CircuitState.CLOSED
        assert status.failure_count == 4
        assert status.can_proceed is True

    def test_opens_on_threshold_failure(self, store, test_engine):
        for _ in range(4):
            store.record_failure("twilio", "timeout", now=NOW)
        status = store.record_failure("twilio", "timeout", now=NOW)

        assert status.state == CircuitState.OPEN
        assert status.failure_count == 5
        assert status.opened_at == NOW
        assert status.can_proceed is False

        row = load_row(test_engine, "twilio")
        assert row.state == "open"
        assert row.last_error_message == "timeout"

    def test_success_in_closed_resets_failure_count(self, store):
        for _ in range(3):
            store.record_failure("twilio", now=NOW)
        status = store.record_success("twilio", now=NOW)

        assert status.state == CircuitState.CLOSED
        assert status.failure_count == 0
        assert status.last_success_at == NOW

    def test_open_reads_half_open_after_timeout(self, store):
        open_circuit(store, "twilio")

        status = store.get_status("twilio", now=NOW + timedelta(seconds=61))

        assert status.state == CircuitState.HALF_OPEN
        assert status.can_proceed is True

    def test_half_open_not_persisted_on_read(self, store, test_engine):
        open_circuit(store, "twilio")
        before = load_row(test_engine, "twilio")

        later = NOW + timedelta(seconds=61)
        first = store.get_status("twilio", now=later)
        second = store.get_status("twilio", now=later)

        after = load_row(test_engine, "twilio")
        assert first == second
        assert after.state == "open"
        assert after.version == before.version

    def test_half_open_failure_reopens(self, store):
        open_circuit(store, "twilio")
        later = NOW + timedelta(seconds=61)
        store.record_success("twilio", now=later)

        status = store.record_failure("twilio", "still down", now=later)

        assert status.state == CircuitState.OPEN
        assert status.success_count == 0
        assert status.opened_at == later

    def test_half_open_closes_after_success_threshold(self, store):
        open_circuit(store, "twilio")
        later = NOW + timedelta(seconds=61)

        first = store.record_success("twilio", now=later)
        assert first.state == CircuitState.HALF_OPEN
        assert first.success_count == 1

        second = store.record_success("twilio", now=later)
        assert second.state == CircuitState.CLOSED
        assert second.failure_count == 0
        assert second.success_count == 0
        assert second.opened_at is None

    def test_success_while_open_keeps_circuit_open(self, store):
        open_circuit(store, "twilio")

        status = store.record_success("twilio", now=NOW + timedelta(seconds=5))

        assert status.state == CircuitState.OPEN
        assert status.can_proceed is False

    def test_error_message_truncated(self, store, test_engine):
        store.record_failure("twilio", "x" * 5000, now=NOW)

        assert len(load_row(test_engine, "twilio").last_error_message) == 1000

    def test_row_thresholds_override_store_defaults(self, test_engine):
        CircuitBreakerStore(test_engine, failure_threshold=2).record_failure("billcom", now=NOW)

        # A store with different defaults still honours the stored threshold
        status = CircuitBreakerStore(test_engine, failure_threshold=10).record_failure("billcom", now=NOW)

        assert status.state == CircuitState.OPEN

    def test_explicit_zero_settings_are_kept(self, test_engine):
        store = CircuitBreakerStore(test_engine, failure_threshold=0, reset_timeout_seconds=0, write_retries=0)

        assert store.reset_timeout_seconds == 0
        assert store.failure_threshold == 1
        assert store.write_retries == 1

        # One failure opens it and a zero timeout reads half_open straight away
        store.record_failure("twilio", now=NOW)
        assert load_row(test_engine, "twilio").state == CircuitState.OPEN.value
        assert store.get_status("twilio", now=NOW).state == CircuitState.HALF_OPEN

    def test_opening_reports_to_sentry(self, store):
        with patch("propertyops.core.circuit_breaker.capture_message") as capture:
            open_circuit(store, "twilio")

        capture.assert_called_once()
        assert capture.call_args.kwargs["level"] == "warning"
        assert capture.call_args.kwargs["context"]["service_name"] == "twilio"


class TestReset:
    def test_reset_closes_open_circuit(self, store):
        open_circuit(store, "twilio")

        status = store.reset("twilio", now=NOW)

        assert status.state == CircuitState.CLOSED
        assert status.failure_count == 0
        assert status.success_count == 0
        assert status.opened_at is None
        assert status.can_proceed is True

    def test_reset_unknown_service_creates_nothing(self, store, test_engine):
        status = store.reset("ghost", now=NOW)

        assert status.state == CircuitState.CLOSED
        with Session(test_engine) as session:
            assert session.exec(select(CircuitBreakerState)).all() == []


class TestListStatuses:
    def test_lists_all_services_by_name(self, store):
        store.record_failure("twilio", now=NOW)
        store.record_success("ai-gateway", now=NOW)

        names = [s.service_name for s in store.list_statuses(now=NOW)]

        assert names == ["ai-gateway", "twilio"]


class TestConcurrentWrites:
    """
    Uses a file database so a second connection can commit between the
    writer's read and its compare-and-swap.
    """

    @pytest.fixture
    def file_engine(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'circuits.db'}")
        SQLModel.metadata.create_all(engine)
        yield engine
        engine.dispose()

    @staticmethod
    def bump_version(engine, service_name: str) -> None:
        with engine.begin() as conn:
            conn.execute(
                update(CircuitBreakerState)
                .where(CircuitBreakerState.service_name == service_name)
                .values(
                    failure_count=CircuitBreakerState.failure_count + 1,
                    version=CircuitBreakerState.version + 1,
                )
            )

    def test_conflicting_write_is_retried(self, file_engine):
        store = CircuitBreakerStore(file_engine, write_retries=3)
        store.record_failure("twilio", now=NOW)

        calls = []

        def racing_failure(values, record, now):
            calls.append(values["failure_count"])
            if len(calls) == 1:
                # Another worker records a failure after we read the row
                self.bump_version(file_engine, "twilio")
            values["failure_count"] += 1

        status = store._write("twilio", racing_failure, NOW)

        assert calls == [1, 2]
        assert status.failure_count == 3
        assert load_row(file_engine, "twilio").failure_count == 3

    def test_gives_up_after_write_retries(self, file_engine):
        store = CircuitBreakerStore(file_engine, write_retries=2)
        store.record_failure("twilio", now=NOW)

        def always_loses(values, record, now):
            self.bump_version(file_engine, "twilio")
            values["failure_count"] += 1

        with pytest.raises(StaleCircuitStateError):
            store._write("twilio", always_loses, NOW)

        # Only the competing writes landed
        assert load_row(file_engine, "twilio").failure_count == 3

    def test_version_increments_on_every_write(self, file_engine):
        store = CircuitBreakerStore(file_engine)

        store.record_failure("twilio", now=NOW)
        store.record_failure("twilio", now=NOW)
        store.record_success("twilio", now=NOW)

        assert load_row(file_engine, "twilio").version == 3
