"""
Tests for BatchRecalculator.

Covers:
- Run status: completed, partially completed, failed
- SAVEPOINT isolation: a failing contract never aborts the others and
  leaves nothing persisted
- Duplicate contracts skipped
- Alert counts and warnings aggregated per run
"""

from decimal import Decimal

import pytest

from provisioning_kernel.domain.results import IssueCode
from provisioning_kernel.selectors.provisioning_selector import ProvisioningSelector
from provisioning_services import (
    BatchItemStatus,
    BatchRecalculator,
    BatchRunStatus,
    ProvisioningService,
)


class _FailAfterWriteService(ProvisioningService):
    """Raises after the analysis of CTR-BOOM has been flushed."""

    def recalculate(self, snapshot, reference_date=None):
        result = super().recalculate(snapshot, reference_date)
        if snapshot.contract_id == "CTR-BOOM":
            raise RuntimeError("downstream failure")
        return result


@pytest.fixture
def service(session, reference_data, deterministic_clock) -> ProvisioningService:
    return ProvisioningService(session, reference_data, clock=deterministic_clock)


@pytest.fixture
def recalculator(session, service, deterministic_clock) -> BatchRecalculator:
    return BatchRecalculator(session, service, clock=deterministic_clock)


@pytest.fixture
def selector(session) -> ProvisioningSelector:
    return ProvisioningSelector(session)


class TestRunStatus:
    def test_all_succeed(self, recalculator, selector, make_snapshot):
        result = recalculator.run([
            make_snapshot(contract_id="CTR-1", days_overdue=10),
            make_snapshot(contract_id="CTR-2", days_overdue=200, classification="C3"),
        ])

        assert result.status is BatchRunStatus.COMPLETED
        assert (result.total_items, result.succeeded, result.failed) == (2, 2, 0)
        first = result.item_results[0]
        assert first.status is BatchItemStatus.SUCCEEDED
        assert first.result_data["analysis_id"] == str(
            selector.latest_analysis("CTR-1").analysis_id
        )
        assert Decimal(first.result_data["adjusted_percentage"]) == Decimal("1.0")
        assert first.result_data["milestone"] == "inicial"

    def test_partial_failure(self, recalculator, selector, make_snapshot):
        result = recalculator.run([
            make_snapshot(contract_id="CTR-1"),
            make_snapshot(contract_id="CTR-BAD", classification="C7"),
            make_snapshot(contract_id="CTR-3"),
        ])

        assert result.status is BatchRunStatus.PARTIALLY_COMPLETED
        assert (result.succeeded, result.failed) == (2, 1)
        (failure,) = result.failures()
        assert failure.item_index == 1
        assert failure.contract_id == "CTR-BAD"
        assert failure.error_code == IssueCode.UNKNOWN_CLASSIFICATION
        assert selector.latest_analysis("CTR-3") is not None

    def test_all_fail(self, recalculator, make_snapshot):
        result = recalculator.run([
            make_snapshot(contract_id="CTR-1", balance="-5.00"),
            make_snapshot(contract_id="CTR-2", classification=None),
        ])

        assert result.status is BatchRunStatus.FAILED
        assert [r.error_code for r in result.failures()] == [
            IssueCode.NEGATIVE_BALANCE,
            IssueCode.UNKNOWN_CLASSIFICATION,
        ]

    def test_empty_batch(self, recalculator):
        result = recalculator.run([])

        assert result.status is BatchRunStatus.COMPLETED
        assert result.total_items == 0
        assert result.item_results == ()


class TestIsolation:
    def test_exception_rolls_back_only_failing_contract(
        self, session, reference_data, deterministic_clock, selector, make_snapshot,
    ):
        service = _FailAfterWriteService(session, reference_data, clock=deterministic_clock)
        recalculator = BatchRecalculator(session, service, clock=deterministic_clock)

        result = recalculator.run([
            make_snapshot(contract_id="CTR-1"),
            make_snapshot(contract_id="CTR-BOOM"),
            make_snapshot(contract_id="CTR-3"),
        ])

        assert result.status is BatchRunStatus.PARTIALLY_COMPLETED
        boom = result.item_results[1]
        assert boom.status is BatchItemStatus.FAILED
        assert boom.error_code == "UNHANDLED_EXCEPTION"
        assert boom.error_message == "downstream failure"
        assert selector.latest_analysis("CTR-BOOM") is None
        assert selector.milestone_state("CTR-BOOM") is None
        assert selector.latest_analysis("CTR-1") is not None
        assert selector.latest_analysis("CTR-3") is not None

    def test_exception_logged(
        self, session, reference_data, deterministic_clock, make_snapshot, captured_logs,
    ):
        service = _FailAfterWriteService(session, reference_data, clock=deterministic_clock)
        BatchRecalculator(session, service, clock=deterministic_clock).run(
            [make_snapshot(contract_id="CTR-BOOM")]
        )

        records = [r for r in captured_logs() if r["message"] == "batch_item_exception"]
        assert len(records) == 1
        assert records[0]["exception_type"] == "RuntimeError"
        assert "batch_id" in records[0]

    def test_duplicate_contract_skipped(self, recalculator, selector, make_snapshot):
        result = recalculator.run([
            make_snapshot(contract_id="CTR-1", days_overdue=10),
            make_snapshot(contract_id="CTR-1", days_overdue=400),
        ])

        assert result.status is BatchRunStatus.COMPLETED
        assert (result.succeeded, result.skipped) == (1, 1)
        skipped = result.item_results[1]
        assert skipped.status is BatchItemStatus.SKIPPED
        assert skipped.error_code == "DUPLICATE_CONTRACT"
        assert len(selector.analysis_history("CTR-1")) == 1


class TestAggregation:
    def test_alert_count_across_runs(self, recalculator, make_snapshot, deterministic_clock):
        first = recalculator.run([
            make_snapshot(contract_id="CTR-1", days_overdue=105, classification="C2"),
            make_snapshot(contract_id="CTR-2", days_overdue=105, classification="C2"),
        ])
        deterministic_clock.advance_days(1)
        second = recalculator.run([
            make_snapshot(contract_id="CTR-1", days_overdue=490, classification="C2"),
            make_snapshot(contract_id="CTR-2", days_overdue=106, classification="C2"),
        ])

        assert first.alert_count == 0
        assert second.alert_count == 3
        assert second.item_results[0].result_data["alert_count"] == 3
        assert second.item_results[0].result_data["milestone"] == "premium"

    def test_warnings_collected(self, recalculator, make_snapshot):
        result = recalculator.run([
            make_snapshot(contract_id="CTR-1", days_overdue=None, default_date="not-a-date"),
        ])

        assert result.status is BatchRunStatus.COMPLETED
        assert result.warnings == (f"CTR-1: {IssueCode.INVALID_DATE}",)

    def test_timestamps_from_clock(self, recalculator, make_snapshot, deterministic_clock):
        result = recalculator.run([make_snapshot()])

        assert result.started_at == deterministic_clock.now()
        assert result.item_results[0].started_at == deterministic_clock.now()
