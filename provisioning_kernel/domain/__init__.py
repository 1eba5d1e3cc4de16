"""
Pure domain layer.

This module contains pure value objects and result types
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock abstraction)
- I/O

All domain objects are immutable and deterministic.
"""

from provisioning_kernel.domain.analysis import (
    AlertType,
    MilestoneAlert,
    MilestoneState,
    ProvisionAlert,
    ProvisioningAnalysis,
)
from provisioning_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from provisioning_kernel.domain.results import (
    CalculationIssue,
    CalculationResult,
    IssueCode,
)
from provisioning_kernel.domain.values import (
    AlertPolicy,
    ContractSnapshot,
    CreditStage,
    DefaultTrigger,
    Milestone,
    PortfolioClassification,
    Regime,
    RiskIndicator,
    Stage,
)

__all__ = [
    "AlertPolicy",
    "AlertType",
    "CalculationIssue",
    "CalculationResult",
    "Clock",
    "ContractSnapshot",
    "CreditStage",
    "DefaultTrigger",
    "DeterministicClock",
    "IssueCode",
    "Milestone",
    "MilestoneAlert",
    "MilestoneState",
    "PortfolioClassification",
    "ProvisionAlert",
    "ProvisioningAnalysis",
    "Regime",
    "RiskIndicator",
    "Stage",
    "SystemClock",
]
