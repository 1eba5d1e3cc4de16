"""
Module: provisioning_kernel.models.analysis
Responsibility: ORM persistence for provisioning analyses -- one row per
    calculation run per contract.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - Append-only: rows are never updated or deleted
      (db/immutability.py listeners).
    - Percentages and values stored as Numeric(38, 9), never float.

Audit relevance:
    ``config_checksum`` ties every analysis to the exact reference-data set
    that produced it; ``rationale`` records the method in plain language.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from provisioning_kernel.db.base import TrackedBase
from provisioning_kernel.domain.analysis import ProvisioningAnalysis
from provisioning_kernel.domain.values import (
    CreditStage,
    DefaultTrigger,
    Milestone,
    PortfolioClassification,
    Regime,
    RiskIndicator,
    Stage,
)


class ProvisioningAnalysisModel(TrackedBase):
    """
    Persistent provisioning analysis. Append-only.

    Contract:
        Created once by ``ProvisioningService.recalculate``; the latest row per
        contract (by ``calculated_at``) is the current view.
    """

    __tablename__ = "provisioning_analyses"

    __table_args__ = (
        Index("idx_analysis_contract_calculated", "contract_id", "calculated_at"),
        Index("idx_analysis_reference_date", "reference_date"),
    )

    contract_id: Mapped[str] = mapped_column(String(100), nullable=False)
    reference_date: Mapped[date] = mapped_column(nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(nullable=False)

    days_overdue: Mapped[int] = mapped_column(Integer, nullable=False)
    months_overdue: Mapped[int] = mapped_column(Integer, nullable=False)
    date_valid: Mapped[bool] = mapped_column(Boolean, nullable=False)

    portfolio_classification: Mapped[str] = mapped_column(String(2), nullable=False)
    regime: Mapped[str] = mapped_column(String(20), nullable=False)
    band_label: Mapped[str] = mapped_column(String(50), nullable=False)

    base_percentage: Mapped[Decimal] = mapped_column(nullable=False)
    collateral_coverage: Mapped[Decimal] = mapped_column(nullable=False)
    adjusted_percentage: Mapped[Decimal] = mapped_column(nullable=False)
    outstanding_balance: Mapped[Decimal] = mapped_column(nullable=False)
    provision_value: Mapped[Decimal] = mapped_column(nullable=False)

    stage: Mapped[str] = mapped_column(String(1), nullable=False)
    stage_label: Mapped[str] = mapped_column(String(100), nullable=False)
    credit_stage: Mapped[int] = mapped_column(Integer, nullable=False)
    observation_days_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    # JSON arrays of DefaultTrigger / RiskIndicator values
    default_triggers: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    risk_indicators: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    write_off_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)

    probability_of_default: Mapped[Decimal] = mapped_column(nullable=False)
    loss_given_default: Mapped[Decimal] = mapped_column(nullable=False)
    expected_loss: Mapped[Decimal] = mapped_column(nullable=False)
    provisioning_mark: Mapped[Decimal | None] = mapped_column(nullable=True)
    milestone: Mapped[str] = mapped_column(String(20), nullable=False)
    fallback_used: Mapped[bool] = mapped_column(Boolean, nullable=False)

    rationale: Mapped[str] = mapped_column(Text, nullable=False, default="")
    config_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ProvisioningAnalysis {self.contract_id} "
            f"{self.reference_date} {self.adjusted_percentage}% stage={self.stage}>"
        )

    def to_dto(self) -> ProvisioningAnalysis:
        """Convert ORM model to frozen domain DTO."""
        return ProvisioningAnalysis(
            analysis_id=self.id,
            contract_id=self.contract_id,
            reference_date=self.reference_date,
            calculated_at=self.calculated_at,
            days_overdue=self.days_overdue,
            months_overdue=self.months_overdue,
            date_valid=self.date_valid,
            portfolio_classification=PortfolioClassification(self.portfolio_classification),
            regime=Regime(self.regime),
            band_label=self.band_label,
            base_percentage=self.base_percentage,
            collateral_coverage=self.collateral_coverage,
            adjusted_percentage=self.adjusted_percentage,
            outstanding_balance=self.outstanding_balance,
            provision_value=self.provision_value,
            stage=Stage(self.stage),
            stage_label=self.stage_label,
            credit_stage=CreditStage(self.credit_stage),
            observation_days_remaining=self.observation_days_remaining,
            default_triggers=tuple(DefaultTrigger(t) for t in self.default_triggers),
            risk_indicators=tuple(RiskIndicator(i) for i in self.risk_indicators),
            write_off_eligible=self.write_off_eligible,
            probability_of_default=self.probability_of_default,
            loss_given_default=self.loss_given_default,
            expected_loss=self.expected_loss,
            provisioning_mark=self.provisioning_mark,
            milestone=Milestone(self.milestone),
            fallback_used=self.fallback_used,
            rationale=self.rationale,
            config_checksum=self.config_checksum,
        )

    @classmethod
    def from_dto(cls, dto: ProvisioningAnalysis, created_by_id) -> ProvisioningAnalysisModel:
        """Create ORM model from domain DTO."""
        return cls(
            contract_id=dto.contract_id,
            reference_date=dto.reference_date,
            calculated_at=dto.calculated_at,
            days_overdue=dto.days_overdue,
            months_overdue=dto.months_overdue,
            date_valid=dto.date_valid,
            portfolio_classification=dto.portfolio_classification.value,
            regime=dto.regime.value,
            band_label=dto.band_label,
            base_percentage=dto.base_percentage,
            collateral_coverage=dto.collateral_coverage,
            adjusted_percentage=dto.adjusted_percentage,
            outstanding_balance=dto.outstanding_balance,
            provision_value=dto.provision_value,
            stage=dto.stage.value,
            stage_label=dto.stage_label,
            credit_stage=dto.credit_stage.value,
            observation_days_remaining=dto.observation_days_remaining,
            default_triggers=[t.value for t in dto.default_triggers],
            risk_indicators=[i.value for i in dto.risk_indicators],
            write_off_eligible=dto.write_off_eligible,
            probability_of_default=dto.probability_of_default,
            loss_given_default=dto.loss_given_default,
            expected_loss=dto.expected_loss,
            provisioning_mark=dto.provisioning_mark,
            milestone=dto.milestone.value,
            fallback_used=dto.fallback_used,
            rationale=dto.rationale,
            config_checksum=dto.config_checksum,
            created_by_id=created_by_id,
        )
