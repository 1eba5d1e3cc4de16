"""
Analysis DTOs -- Frozen outputs of the provisioning calculation chain.

Responsibility:
    ``ProvisioningAnalysis`` is the append-only record of one calculation run
    for one contract.  ``MilestoneState`` is the explicit per-contract memory
    the milestone tracker compares against.  ``MilestoneAlert`` is a detected
    forward transition; ``ProvisionAlert`` is its persisted view.

Architecture position:
    Kernel > Domain.  Produced by ``provisioning_engines``, persisted by
    ``provisioning_kernel.models`` via ``to_dto``/``from_dto``.

Invariants enforced:
    - provision_value == outstanding_balance * adjusted_percentage / 100,
      quantized to cents (computed by the engine, carried verbatim here).
    - Milestone state never moves backwards (checked by the tracker and
      again by the ORM listeners).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from provisioning_kernel.domain.values import (
    CreditStage,
    DefaultTrigger,
    Milestone,
    PortfolioClassification,
    Regime,
    RiskIndicator,
    Stage,
)


class AlertType(str, Enum):
    """Kind of negotiation alert, derived from the milestone reached."""

    MILESTONE_CHANGE = "milestone_change"
    PREMIUM_REACHED = "premium_reached"  # bank accepts ~10% of the balance
    TOTAL_REACHED = "total_reached"  # debt treated as unrecoverable

    @classmethod
    def for_milestone(cls, milestone: Milestone) -> AlertType:
        if milestone is Milestone.TOTAL:
            return cls.TOTAL_REACHED
        if milestone is Milestone.PREMIUM:
            return cls.PREMIUM_REACHED
        return cls.MILESTONE_CHANGE


@dataclass(frozen=True)
class ProvisioningAnalysis:
    """One provisioning calculation for one contract at one reference date.

    ``expected_loss`` (PD x LGD x EAD) and ``provisioning_mark`` explain the
    provision; they never change ``provision_value``.
    """

    contract_id: str
    reference_date: date
    calculated_at: datetime
    days_overdue: int
    months_overdue: int
    date_valid: bool
    portfolio_classification: PortfolioClassification
    regime: Regime
    band_label: str
    base_percentage: Decimal
    collateral_coverage: Decimal
    adjusted_percentage: Decimal
    outstanding_balance: Decimal
    provision_value: Decimal
    stage: Stage
    stage_label: str
    credit_stage: CreditStage
    observation_days_remaining: int
    default_triggers: tuple[DefaultTrigger, ...]
    risk_indicators: tuple[RiskIndicator, ...]
    write_off_eligible: bool
    probability_of_default: Decimal
    loss_given_default: Decimal
    expected_loss: Decimal
    provisioning_mark: Decimal | None
    milestone: Milestone
    fallback_used: bool
    rationale: str
    config_checksum: str | None = None
    analysis_id: UUID | None = None


@dataclass(frozen=True)
class MilestoneState:
    """Last recorded milestone of a contract (explicit tracker memory)."""

    contract_id: str
    milestone: Milestone
    percentage: Decimal


@dataclass(frozen=True)
class MilestoneAlert:
    """A detected forward milestone transition, not yet persisted."""

    contract_id: str
    alert_type: AlertType
    previous_milestone: Milestone
    new_milestone: Milestone
    previous_percentage: Decimal
    new_percentage: Decimal
    message: str


@dataclass(frozen=True)
class ProvisionAlert:
    """Persisted negotiation alert. Only ``is_read``/``read_at`` ever change."""

    alert_id: UUID
    contract_id: str
    analysis_id: UUID | None
    alert_type: AlertType
    previous_milestone: Milestone
    new_milestone: Milestone
    previous_percentage: Decimal
    new_percentage: Decimal
    message: str
    is_read: bool
    alerted_at: datetime
    read_at: datetime | None = None
