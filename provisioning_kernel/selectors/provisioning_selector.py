"""
Module: provisioning_kernel.selectors.provisioning_selector
Responsibility: Read paths over analyses, alerts and milestone state.
Architecture position: Kernel > Selectors.

Failure modes:
    - AnalysisNotFoundError from ``require_latest_analysis`` when a contract
      has never been calculated.
"""

from __future__ import annotations

from sqlalchemy import select

from provisioning_kernel.domain.analysis import (
    MilestoneState,
    ProvisionAlert,
    ProvisioningAnalysis,
)
from provisioning_kernel.exceptions import AnalysisNotFoundError
from provisioning_kernel.models.alert import ProvisionAlertModel
from provisioning_kernel.models.analysis import ProvisioningAnalysisModel
from provisioning_kernel.models.milestone_state import ContractMilestoneStateModel
from provisioning_kernel.selectors.base import BaseSelector


class ProvisioningSelector(BaseSelector[ProvisioningAnalysisModel]):
    """Queries for the provisioning view of one or many contracts."""

    def latest_analysis(self, contract_id: str) -> ProvisioningAnalysis | None:
        """Most recent analysis of a contract, or None."""
        model = self.session.scalars(
            select(ProvisioningAnalysisModel)
            .where(ProvisioningAnalysisModel.contract_id == contract_id)
            .order_by(
                ProvisioningAnalysisModel.calculated_at.desc(),
                ProvisioningAnalysisModel.created_at.desc(),
            )
            .limit(1)
        ).first()
        return model.to_dto() if model is not None else None

    def require_latest_analysis(self, contract_id: str) -> ProvisioningAnalysis:
        analysis = self.latest_analysis(contract_id)
        if analysis is None:
            raise AnalysisNotFoundError(contract_id)
        return analysis

    def analysis_history(self, contract_id: str) -> list[ProvisioningAnalysis]:
        """All analyses of a contract, oldest first."""
        models = self.session.scalars(
            select(ProvisioningAnalysisModel)
            .where(ProvisioningAnalysisModel.contract_id == contract_id)
            .order_by(
                ProvisioningAnalysisModel.calculated_at.asc(),
                ProvisioningAnalysisModel.created_at.asc(),
            )
        ).all()
        return [m.to_dto() for m in models]

    def milestone_state(self, contract_id: str) -> MilestoneState | None:
        model = self.session.scalars(
            select(ContractMilestoneStateModel).where(
                ContractMilestoneStateModel.contract_id == contract_id
            )
        ).first()
        return model.to_dto() if model is not None else None

    def alerts(self, contract_id: str) -> list[ProvisionAlert]:
        """All alerts of a contract in the order they were raised."""
        models = self.session.scalars(
            select(ProvisionAlertModel)
            .where(ProvisionAlertModel.contract_id == contract_id)
            .order_by(ProvisionAlertModel.alerted_at.asc(), ProvisionAlertModel.sequence.asc())
        ).all()
        return [m.to_dto() for m in models]

    def unread_alerts(self, contract_id: str | None = None) -> list[ProvisionAlert]:
        """Unread alerts, newest first; optionally restricted to one contract."""
        stmt = select(ProvisionAlertModel).where(ProvisionAlertModel.is_read.is_(False))
        if contract_id is not None:
            stmt = stmt.where(ProvisionAlertModel.contract_id == contract_id)
        stmt = stmt.order_by(
            ProvisionAlertModel.alerted_at.desc(), ProvisionAlertModel.sequence.desc(),
        )
        return [m.to_dto() for m in self.session.scalars(stmt).all()]
