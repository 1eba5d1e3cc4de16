"""
Pytest fixtures for the provisioning engine test suite.

Provides:
- In-memory SQLite sessions with the kernel immutability listeners
- The default BCB 352 reference data loaded through get_active_config()
- A DeterministicClock and a ContractSnapshot factory
- Structured log capture
"""

import json
import logging
from collections.abc import Callable, Generator
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from provisioning_config import get_active_config
from provisioning_engines.reference_data import ProvisioningReferenceData
from provisioning_kernel.db.engine import build_engine, create_tables, drop_tables
from provisioning_kernel.db.immutability import register_immutability_listeners
from provisioning_kernel.domain.clock import DeterministicClock
from provisioning_kernel.domain.values import ContractSnapshot
from provisioning_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# Reference date shared by engine and service tests
REFERENCE_DATE = date(2025, 6, 30)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture provisioning_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.recalculate(snapshot)
            logs = captured_logs()
            assert any(r["message"] == "analysis_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("provisioning_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Reference data and time
# =============================================================================


@pytest.fixture(scope="session")
def reference_data() -> ProvisioningReferenceData:
    """The shipped BCB 352 reference data."""
    return get_active_config()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(datetime(2025, 6, 30, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def make_snapshot() -> Callable[..., ContractSnapshot]:
    """
    Build a ContractSnapshot ``days_overdue`` days behind REFERENCE_DATE.

    Pass ``days_overdue=None`` for a contract that is not in default.
    """

    def _make(
        contract_id: str = "CTR-001",
        days_overdue: int | None = 45,
        classification: str | None = "C1",
        balance: str = "10000.00",
        reference_date: date = REFERENCE_DATE,
        **overrides,
    ) -> ContractSnapshot:
        default_date = (
            reference_date - timedelta(days=days_overdue)
            if days_overdue is not None
            else None
        )
        fields = {
            "contract_id": contract_id,
            "outstanding_balance": Decimal(balance),
            "original_value": Decimal(balance),
            "default_date": default_date,
            "portfolio_classification": classification,
        }
        fields.update(overrides)
        return ContractSnapshot(**fields)

    return _make


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    db_engine = build_engine("sqlite://")
    create_tables(db_engine)
    yield db_engine
    drop_tables(db_engine)
    db_engine.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    """Session bound to the per-test database; rolled back afterwards."""
    register_immutability_listeners()
    db_session = Session(engine)
    yield db_session
    db_session.rollback()
    db_session.close()
