"""
Module: provisioning_engines.reference_data
Responsibility:
    The read-only bundle of regulatory reference data every provisioning
    calculation receives: band tables, stages, milestone thresholds,
    operation types and policy parameters.

Architecture position:
    Engines -- pure data.  Built by ``provisioning_config`` (or directly by
    tests) and passed as a parameter; engines never load or cache it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType

from provisioning_engines.credit_risk import (
    DEFAULT_PROVISIONING_MARKS,
    ExpectedLossPolicy,
    RiskIndicatorPolicy,
)
from provisioning_engines.milestones import MilestoneThresholds
from provisioning_engines.rate_resolver import RateTables
from provisioning_engines.settlement import SettlementPolicy
from provisioning_engines.staging import OperationTypeTable, StageTable
from provisioning_kernel.domain.values import PortfolioClassification


@dataclass(frozen=True)
class ProvisioningPolicies:
    """Scalar policy parameters of the calculation chain and settlement."""

    observation_period_days: int = 180
    write_off_months: Mapping[PortfolioClassification, int] = field(default_factory=dict)
    default_write_off_months: int = 18
    settlement: SettlementPolicy = field(default_factory=SettlementPolicy)
    risk_indicators: RiskIndicatorPolicy = field(default_factory=RiskIndicatorPolicy)
    expected_loss: ExpectedLossPolicy = field(default_factory=ExpectedLossPolicy)
    provisioning_marks: tuple[Decimal, ...] = DEFAULT_PROVISIONING_MARKS

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "write_off_months", MappingProxyType(dict(self.write_off_months)),
        )
        object.__setattr__(self, "provisioning_marks", tuple(self.provisioning_marks))

    def write_off_limit(self, classification: PortfolioClassification) -> int:
        return self.write_off_months.get(classification, self.default_write_off_months)


@dataclass(frozen=True)
class ProvisioningReferenceData:
    rate_tables: RateTables
    stages: StageTable
    milestones: MilestoneThresholds
    operation_types: OperationTypeTable
    policies: ProvisioningPolicies = field(default_factory=ProvisioningPolicies)
    config_id: str = "custom"
    config_version: int = 1
    checksum: str | None = None
