"""
Tests for the structured logging system (provisioning_kernel/logging_config.py).

Covers:
- JSON envelope and provisioning payloads (Decimal, enums, trigger tuples)
- Calculation context: contract, batch and reference date binding
- Typed kernel exceptions flattened into exc_* fields
- Logger hierarchy and idempotent configuration
"""

import json
import logging
import threading
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from provisioning_kernel.domain.values import (
    CreditStage,
    DefaultTrigger,
    Milestone,
    Regime,
)
from provisioning_kernel.exceptions import (
    AlertNotFoundError,
    BandTableError,
    MilestoneRegressionError,
)
from provisioning_kernel.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def stream() -> StringIO:
    """Configure the kernel logger onto an in-memory JSON stream."""
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    configure_logging(handler=handler, level=logging.DEBUG)
    return buffer


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestPayload:
    def test_envelope(self, stream):
        get_logger("engines.aging").info("aging_calculated")

        (record,) = _records(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "aging_calculated"
        assert record["logger"] == "provisioning_kernel.engines.aging"
        assert record["ts"].endswith("+00:00")

    def test_provisioning_values(self, stream):
        analysis_id = uuid4()
        get_logger("services.provisioning").info(
            "analysis_recorded",
            extra={
                "analysis_id": analysis_id,
                "adjusted_percentage": Decimal("40.20"),
                "provision_value": Decimal("4020.00"),
                "regime": Regime.INCURRED_LOSS,
                "milestone": Milestone.MUITO_FAVORAVEL,
                "credit_stage": CreditStage.PROBLEM_ASSET,
                "default_triggers": (DefaultTrigger.OVERDUE_90_DAYS, DefaultTrigger.BANKRUPTCY),
                "reference": date(2025, 6, 30),
                "alert_count": 2,
            },
        )

        (record,) = _records(stream)
        assert record["analysis_id"] == str(analysis_id)
        # scale preserved, never a float
        assert record["adjusted_percentage"] == "40.20"
        assert record["provision_value"] == "4020.00"
        assert record["regime"] == "incurred_loss"
        assert record["milestone"] == "muito_favoravel"
        assert record["credit_stage"] == 3
        assert record["default_triggers"] == ["overdue_90_days", "bankruptcy"]
        assert record["reference"] == "2025-06-30"
        assert record["alert_count"] == 2

    def test_one_json_object_per_line(self, stream):
        logger = get_logger("services.batch")
        logger.info("batch_started", extra={"total_items": 3})
        logger.warning("batch_item_failed", extra={"contract_id_hint": "CTR-7"})
        logger.debug("batch_item_duration", extra={"duration_ms": 4})

        records = _records(stream)
        assert [r["message"] for r in records] == [
            "batch_started",
            "batch_item_failed",
            "batch_item_duration",
        ]

    def test_info_is_default_level(self):
        buffer = StringIO()
        configure_logging(handler=logging.StreamHandler(buffer))
        get_logger("engines.staging").debug("stage_assigned")
        get_logger("engines.staging").info("stage_table_loaded")

        assert [r["message"] for r in _records(buffer)] == ["stage_table_loaded"]


class TestCalculationContext:
    def test_bound_context_on_every_line(self, stream):
        logger = get_logger("services.provisioning")
        with LogContext.bind(batch_id="B-1", contract_id="CTR-9", reference_date=date(2025, 6, 30)):
            logger.info("provisioning_calculated")
            logger.info("milestone_alert_raised")

        for record in _records(stream):
            assert record["batch_id"] == "B-1"
            assert record["contract_id"] == "CTR-9"
            assert record["reference_date"] == "2025-06-30"

    def test_context_wins_over_extra(self, stream):
        with LogContext.bind(contract_id="CTR-9"):
            get_logger("test").info("x", extra={"contract_id": "CTR-OTHER"})

        assert _records(stream)[0]["contract_id"] == "CTR-9"

    def test_nested_contract_inside_batch(self):
        with LogContext.bind(batch_id="B-1"):
            with LogContext.bind(contract_id="CTR-1"):
                assert LogContext.get_all() == {"batch_id": "B-1", "contract_id": "CTR-1"}
            with LogContext.bind(contract_id="CTR-2"):
                assert LogContext.get_all()["contract_id"] == "CTR-2"
            assert LogContext.get_all() == {"batch_id": "B-1"}
        assert LogContext.get_all() == {}

    def test_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(contract_id="CTR-BOOM"):
                raise RuntimeError("boom")

        assert "contract_id" not in LogContext.get_all()

    def test_none_values_keep_current(self):
        LogContext.set(actor_id="analyst-1")

        with LogContext.bind(actor_id=None, contract_id="CTR-3"):
            assert LogContext.get_all() == {"contract_id": "CTR-3", "actor_id": "analyst-1"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="portfolio"):
            LogContext.set(portfolio="C1")

    def test_values_stored_as_text(self):
        batch_id = uuid4()
        LogContext.set(batch_id=batch_id, reference_date=date(2025, 6, 30))

        assert LogContext.get_all() == {"batch_id": str(batch_id), "reference_date": "2025-06-30"}

    def test_fields_ordered(self):
        LogContext.set(**{name: name.upper() for name in reversed(CONTEXT_FIELDS)})

        assert tuple(LogContext.get_all()) == CONTEXT_FIELDS

    def test_worker_thread_starts_without_context(self):
        seen: list[dict] = []
        with LogContext.bind(batch_id="B-1", contract_id="CTR-1"):
            worker = threading.Thread(target=lambda: seen.append(LogContext.get_all()))
            worker.start()
            worker.join()

        assert seen == [{}]


class TestExceptionFields:
    def test_band_table_error(self, stream):
        try:
            raise BandTableError("incurred_loss", "rows 3-4 and 5-6 overlap or leave a gap")
        except BandTableError:
            get_logger("config").error("config_rejected", exc_info=True)

        (record,) = _records(stream)
        assert record["exc_type"] == "BandTableError"
        assert record["exc_code"] == "INVALID_BAND_TABLE"
        assert record["exc_table"] == "incurred_loss"
        assert record["exc_reason"] == "rows 3-4 and 5-6 overlap or leave a gap"
        assert "Traceback" in record["traceback"]

    def test_milestone_regression_error(self, stream):
        try:
            raise MilestoneRegressionError("CTR-5", "premium", "otimo")
        except MilestoneRegressionError:
            get_logger("db.immutability").error("milestone_write_rejected", exc_info=True)

        (record,) = _records(stream)
        assert record["exc_code"] == "MILESTONE_REGRESSION"
        assert record["exc_contract_id"] == "CTR-5"
        assert record["exc_recorded"] == "premium"
        assert record["exc_attempted"] == "otimo"

    def test_alert_not_found(self, stream):
        alert_id = str(uuid4())
        try:
            raise AlertNotFoundError(alert_id)
        except AlertNotFoundError:
            get_logger("services.provisioning").warning("alert_lookup_failed", exc_info=True)

        assert _records(stream)[0]["exc_alert_id"] == alert_id

    def test_plain_exception_has_no_code(self, stream):
        try:
            raise ValueError("bad snapshot")
        except ValueError:
            get_logger("services.batch").error("batch_item_exception", exc_info=True)

        (record,) = _records(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "bad snapshot"
        assert "exc_code" not in record


class TestConfiguration:
    def test_idempotent(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))

        root = logging.getLogger("provisioning_kernel")
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert root.propagate is False

    def test_reset(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        reset_logging()

        root = logging.getLogger("provisioning_kernel")
        assert root.handlers == []
        assert root.propagate is True
