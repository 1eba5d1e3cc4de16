"""
provisioning_services.batch_recalculation -- SAVEPOINT-per-contract batch recalculation.

Contract:
    Recalculates a sequence of contract snapshots through
    ``ProvisioningService.recalculate``.  Each contract's chain (analysis,
    milestone state, alerts) is one atomic unit.

Architecture: provisioning_services.  Imports from provisioning_services and
    kernel infrastructure only.

Invariants enforced:
    - SAVEPOINT isolation per contract: one failure never aborts the batch.
    - A failed calculation or an unexpected exception rolls back only that
      contract's SAVEPOINT and is recorded on its item result.
    - A contract appearing twice in one batch is recalculated once; later
      occurrences are skipped.
    - All timestamps from the injected Clock.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from provisioning_kernel.domain.clock import Clock, SystemClock
from provisioning_kernel.domain.values import ContractSnapshot
from provisioning_kernel.logging_config import LogContext, get_logger
from provisioning_services.provisioning_service import ProvisioningService

logger = get_logger("services.batch")


class BatchRunStatus(str, Enum):
    """Run-level outcome."""

    COMPLETED = "completed"  # Every contract succeeded (or was skipped)
    PARTIALLY_COMPLETED = "partially_completed"  # Some contracts failed
    FAILED = "failed"  # No contract succeeded


class BatchItemStatus(str, Enum):
    """Per-contract outcome within a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # Duplicate contract in the same run


@dataclass(frozen=True)
class BatchItemResult:
    """Immutable result of recalculating a single contract."""

    item_index: int  # 0-indexed position in the batch
    contract_id: str
    status: BatchItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None  # e.g., {"analysis_id": "..."}
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class BatchRunResult:
    """Immutable result of a batch recalculation. Returned by ``BatchRecalculator.run()``."""

    batch_id: UUID
    status: BatchRunStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    alert_count: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    warnings: tuple[str, ...] = field(default=())

    def failures(self) -> tuple[BatchItemResult, ...]:
        return tuple(r for r in self.item_results if r.status is BatchItemStatus.FAILED)


class BatchRecalculator:
    """Batch recalculation with SAVEPOINT-per-contract isolation.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT schedule runs or manage threads.
    """

    def __init__(
        self,
        session: Session,
        service: ProvisioningService,
        clock: Clock | None = None,
    ):
        self._session = session
        self._service = service
        self._clock = clock or SystemClock()

    def run(
        self,
        snapshots: Iterable[ContractSnapshot],
        reference_date: date | None = None,
    ) -> BatchRunResult:
        """Recalculate every snapshot; one SAVEPOINT per contract."""
        start_time = time.monotonic()
        started_at = self._clock.now()
        batch_id = uuid4()

        succeeded = 0
        failed = 0
        skipped = 0
        alert_count = 0
        seen: set[str] = set()
        item_results: list[BatchItemResult] = []
        warnings: list[str] = []

        with LogContext.bind(batch_id=str(batch_id)):
            logger.info(
                "batch_recalculation_started",
                extra={"reference_date": reference_date.isoformat() if reference_date else None},
            )

            for index, snapshot in enumerate(snapshots):
                item_start = time.monotonic()
                item_started_at = self._clock.now()

                if snapshot.contract_id in seen:
                    skipped += 1
                    item_results.append(BatchItemResult(
                        item_index=index,
                        contract_id=snapshot.contract_id,
                        status=BatchItemStatus.SKIPPED,
                        error_code="DUPLICATE_CONTRACT",
                        error_message="Contract already recalculated in this batch",
                        started_at=item_started_at,
                        completed_at=item_started_at,
                    ))
                    continue
                seen.add(snapshot.contract_id)

                savepoint = self._session.begin_nested()
                try:
                    outcome = self._service.recalculate(snapshot, reference_date)
                    item_duration = int((time.monotonic() - item_start) * 1000)

                    if outcome.is_success:
                        savepoint.commit()
                        succeeded += 1
                        alert_count += len(outcome.alerts)
                        warnings.extend(
                            f"{snapshot.contract_id}: {w.code}" for w in outcome.warnings
                        )
                        item_result = BatchItemResult(
                            item_index=index,
                            contract_id=snapshot.contract_id,
                            status=BatchItemStatus.SUCCEEDED,
                            result_data={
                                "analysis_id": str(outcome.analysis.analysis_id),
                                "adjusted_percentage": str(outcome.analysis.adjusted_percentage),
                                "credit_stage": outcome.analysis.credit_stage.value,
                                "expected_loss": str(outcome.analysis.expected_loss),
                                "milestone": outcome.evaluation.recorded_milestone.value,
                                "alert_count": len(outcome.alerts),
                            },
                            duration_ms=item_duration,
                            started_at=item_started_at,
                            completed_at=self._clock.now(),
                        )
                    else:
                        savepoint.rollback()
                        failed += 1
                        first = outcome.errors[0]
                        item_result = BatchItemResult(
                            item_index=index,
                            contract_id=snapshot.contract_id,
                            status=BatchItemStatus.FAILED,
                            error_code=first.code,
                            error_message=first.message,
                            duration_ms=item_duration,
                            started_at=item_started_at,
                            completed_at=self._clock.now(),
                        )

                except Exception as exc:
                    savepoint.rollback()
                    failed += 1
                    item_result = BatchItemResult(
                        item_index=index,
                        contract_id=snapshot.contract_id,
                        status=BatchItemStatus.FAILED,
                        error_code="UNHANDLED_EXCEPTION",
                        error_message=str(exc),
                        duration_ms=int((time.monotonic() - item_start) * 1000),
                        started_at=item_started_at,
                        completed_at=self._clock.now(),
                    )
                    logger.warning(
                        "batch_item_exception",
                        extra={
                            "contract_id": snapshot.contract_id,
                            "exception_type": type(exc).__name__,
                            "error_message": str(exc),
                        },
                    )

                item_results.append(item_result)

            if failed == 0:
                status = BatchRunStatus.COMPLETED
            elif succeeded == 0:
                status = BatchRunStatus.FAILED
            else:
                status = BatchRunStatus.PARTIALLY_COMPLETED

            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.info(
                "batch_recalculation_completed",
                extra={
                    "status": status.value,
                    "total_items": len(item_results),
                    "succeeded": succeeded,
                    "failed": failed,
                    "skipped": skipped,
                    "alert_count": alert_count,
                    "duration_ms": duration_ms,
                },
            )

        return BatchRunResult(
            batch_id=batch_id,
            status=status,
            total_items=len(item_results),
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            item_results=tuple(item_results),
            alert_count=alert_count,
            started_at=started_at,
            completed_at=self._clock.now(),
            duration_ms=duration_ms,
            warnings=tuple(warnings),
        )
