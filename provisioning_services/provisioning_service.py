"""
provisioning_services.provisioning_service -- Recalculate and persist the provisioning view of a contract.

Responsibility:
    Run the pure provisioning chain for one contract, append the resulting
    analysis, advance the contract's explicit milestone state, append any
    negotiation alerts and suggest a settlement amount.  Also owns the read
    lifecycle of alerts.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes ``calculate_provisioning``, ``track_milestone`` and
    ``calculate_settlement_proposal`` with the kernel ORM models.  The only
    layer that reads time, through the injected ``Clock``.

Invariants enforced:
    - Analyses and alerts are append-only (kernel immutability listeners are
      registered on construction).
    - The recorded milestone never regresses; ``track_milestone`` keeps it
      and the listener rejects any attempt to lower it.
    - No alert on the first calculation of a contract.
    - Flush only: the caller owns commit/rollback, so analysis, state and
      alerts of one contract land in the same transaction.

Failure modes:
    - A failed calculation (unknown classification, negative balance ...)
      returns a ``ProvisioningRunResult`` carrying the errors; nothing is
      persisted for that contract.
    - AlertNotFoundError from ``mark_alert_read`` for an unknown alert id.

Audit relevance:
    ``analysis_recorded`` and ``milestone_alert_raised`` log events carry the
    analysis id, adjusted percentage, milestone and configuration checksum.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from provisioning_engines.milestones import MilestoneEvaluation, track_milestone
from provisioning_engines.provisioning import calculate_provisioning
from provisioning_engines.reference_data import ProvisioningReferenceData
from provisioning_engines.settlement import (
    SettlementProposal,
    calculate_settlement_proposal,
)
from provisioning_kernel.db.immutability import register_immutability_listeners
from provisioning_kernel.domain.analysis import ProvisionAlert, ProvisioningAnalysis
from provisioning_kernel.domain.clock import Clock, SystemClock
from provisioning_kernel.domain.results import CalculationIssue
from provisioning_kernel.domain.values import AlertPolicy, ContractSnapshot
from provisioning_kernel.exceptions import AlertNotFoundError
from provisioning_kernel.logging_config import LogContext, get_logger
from provisioning_kernel.models.alert import ProvisionAlertModel
from provisioning_kernel.models.analysis import ProvisioningAnalysisModel
from provisioning_kernel.models.milestone_state import ContractMilestoneStateModel

logger = get_logger("services.provisioning")

# Actor stamped on rows written by unattended recalculation
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


@dataclass(frozen=True)
class ProvisioningRunResult:
    """Outcome of one contract recalculation."""

    contract_id: str
    analysis: ProvisioningAnalysis | None = None
    evaluation: MilestoneEvaluation | None = None
    alerts: tuple[ProvisionAlert, ...] = ()
    settlement: SettlementProposal | None = None
    warnings: tuple[CalculationIssue, ...] = ()
    errors: tuple[CalculationIssue, ...] = ()

    @property
    def is_success(self) -> bool:
        return not self.errors and self.analysis is not None


class ProvisioningService:
    """
    Recalculates contracts and manages their negotiation alerts.

    Contract:
        Receives Session, reference data and Clock via constructor injection.
    Guarantees:
        - ``recalculate`` appends exactly one analysis per successful call.
        - Alerts of one call are ordered by ``sequence`` in threshold order.
    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT load reference data; use ``provisioning_config.get_active_config``.
    """

    def __init__(
        self,
        session: Session,
        reference_data: ProvisioningReferenceData,
        clock: Clock | None = None,
        alert_policy: AlertPolicy = AlertPolicy.PER_THRESHOLD,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        self._session = session
        self._reference_data = reference_data
        self._clock = clock or SystemClock()
        self._alert_policy = alert_policy
        self._actor_id = actor_id
        register_immutability_listeners()

    @property
    def reference_data(self) -> ProvisioningReferenceData:
        return self._reference_data

    # -------------------------------------------------------------------------
    # Recalculation
    # -------------------------------------------------------------------------

    def recalculate(
        self,
        snapshot: ContractSnapshot,
        reference_date: date | None = None,
    ) -> ProvisioningRunResult:
        """Recalculate one contract as of ``reference_date`` (default: today)."""
        now = self._clock.now()
        as_of = reference_date or self._clock.today()

        with LogContext.bind(
            contract_id=snapshot.contract_id,
            reference_date=as_of,
            actor_id=self._actor_id,
        ):
            result = calculate_provisioning(snapshot, self._reference_data, as_of, now)
            if not result.is_success:
                logger.warning(
                    "provisioning_calculation_failed",
                    extra={
                        "error_codes": [e.code for e in result.errors],
                    },
                )
                return ProvisioningRunResult(
                    contract_id=snapshot.contract_id,
                    warnings=result.warnings,
                    errors=result.errors,
                )

            analysis_model = ProvisioningAnalysisModel.from_dto(
                result.unwrap(), created_by_id=self._actor_id,
            )
            self._session.add(analysis_model)
            self._session.flush()
            analysis = analysis_model.to_dto()

            evaluation = self._advance_milestone(analysis)
            alerts = self._record_alerts(evaluation, analysis)

            settlement = calculate_settlement_proposal(
                analysis.outstanding_balance,
                analysis.adjusted_percentage,
                analysis.provision_value,
                policy=self._reference_data.policies.settlement,
            )

            logger.info(
                "analysis_recorded",
                extra={
                    "analysis_id": str(analysis.analysis_id),
                    "regime": analysis.regime.value,
                    "stage": analysis.stage.value,
                    "adjusted_percentage": str(analysis.adjusted_percentage),
                    "provision_value": str(analysis.provision_value),
                    "credit_stage": analysis.credit_stage,
                    "default_triggers": analysis.default_triggers,
                    "expected_loss": analysis.expected_loss,
                    "milestone": evaluation.recorded_milestone.value,
                    "alert_count": len(alerts),
                    "config_checksum": analysis.config_checksum,
                },
            )

        return ProvisioningRunResult(
            contract_id=snapshot.contract_id,
            analysis=analysis,
            evaluation=evaluation,
            alerts=alerts,
            settlement=settlement,
            warnings=result.warnings,
        )

    def _advance_milestone(self, analysis: ProvisioningAnalysis) -> MilestoneEvaluation:
        state_model = self._session.scalars(
            select(ContractMilestoneStateModel).where(
                ContractMilestoneStateModel.contract_id == analysis.contract_id
            )
        ).first()
        previous = state_model.to_dto() if state_model is not None else None

        evaluation = track_milestone(
            analysis.contract_id,
            analysis.adjusted_percentage,
            previous,
            self._reference_data.milestones,
            policy=self._alert_policy,
        )

        next_state = evaluation.next_state
        if state_model is None:
            state_model = ContractMilestoneStateModel(
                contract_id=next_state.contract_id,
                milestone=next_state.milestone.value,
                percentage=next_state.percentage,
                last_analysis_id=analysis.analysis_id,
                updated_at=analysis.calculated_at,
            )
            self._session.add(state_model)
        else:
            state_model.milestone = next_state.milestone.value
            state_model.percentage = next_state.percentage
            state_model.last_analysis_id = analysis.analysis_id
            state_model.updated_at = analysis.calculated_at
        self._session.flush()
        return evaluation

    def _record_alerts(
        self,
        evaluation: MilestoneEvaluation,
        analysis: ProvisioningAnalysis,
    ) -> tuple[ProvisionAlert, ...]:
        models = []
        for sequence, alert in enumerate(evaluation.alerts):
            model = ProvisionAlertModel.from_alert(
                alert,
                analysis_id=analysis.analysis_id,
                alerted_at=analysis.calculated_at,
                created_by_id=self._actor_id,
                sequence=sequence,
            )
            self._session.add(model)
            models.append(model)
        if not models:
            return ()

        self._session.flush()
        for model in models:
            logger.info(
                "milestone_alert_raised",
                extra={
                    "alert_id": str(model.id),
                    "alert_type": model.alert_type,
                    "previous_milestone": model.previous_milestone,
                    "new_milestone": model.new_milestone,
                    "new_percentage": str(model.new_percentage),
                },
            )
        return tuple(m.to_dto() for m in models)

    # -------------------------------------------------------------------------
    # Alert read lifecycle
    # -------------------------------------------------------------------------

    def mark_alert_read(self, alert_id: UUID) -> ProvisionAlert:
        """
        Mark one alert as read.  Marking an already-read alert is a no-op.

        Raises:
            AlertNotFoundError: If no alert has ``alert_id``.
        """
        model = self._session.get(ProvisionAlertModel, alert_id)
        if model is None:
            raise AlertNotFoundError(str(alert_id))
        if not model.is_read:
            model.is_read = True
            model.read_at = self._clock.now()
            self._session.flush()
            logger.info(
                "alert_marked_read",
                extra={"alert_id": str(alert_id), "contract_id": model.contract_id},
            )
        return model.to_dto()

    def mark_all_alerts_read(self, contract_id: str | None = None) -> int:
        """Mark every unread alert (optionally of one contract) as read; returns the count."""
        stmt = select(ProvisionAlertModel).where(ProvisionAlertModel.is_read.is_(False))
        if contract_id is not None:
            stmt = stmt.where(ProvisionAlertModel.contract_id == contract_id)
        models = self._session.scalars(stmt).all()

        now = self._clock.now()
        for model in models:
            model.is_read = True
            model.read_at = now
        if models:
            self._session.flush()

        logger.info(
            "alerts_marked_read",
            extra={"contract_id": contract_id, "count": len(models)},
        )
        return len(models)
