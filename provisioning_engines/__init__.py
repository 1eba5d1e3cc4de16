"""
Module: provisioning_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    provisioning engines.  This is the canonical import surface for
    ``provisioning_services`` and ``provisioning_config``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import provisioning_kernel (domain, exceptions, logging).
    MUST NOT import provisioning_services or provisioning_config.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Reference dates and timestamps are explicit parameters.
    - Decimal-only arithmetic for percentages and amounts.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine`` (see
    ``provisioning_engines.tracer``), emitting PROVISIONING_ENGINE_TRACE
    records with engine name, version, input fingerprint and duration.
"""

from provisioning_engines.aging import AgingResult, calculate_aging
from provisioning_engines.credit_risk import (
    ExpectedLossEstimate,
    ExpectedLossPolicy,
    RiskIndicatorPolicy,
    estimate_expected_loss,
    identify_risk_indicators,
    provisioning_mark,
)
from provisioning_engines.milestones import (
    MilestoneEvaluation,
    MilestoneThreshold,
    MilestoneThresholds,
    build_alert_message,
    milestone_for,
    track_milestone,
)
from provisioning_engines.provisioning import (
    calculate_provisioning,
    derive_collateral_coverage,
)
from provisioning_engines.rate_resolver import (
    BandRow,
    BandTable,
    RateResolution,
    RateTables,
    apply_collateral,
    resolve_rate,
    select_regime,
)
from provisioning_engines.reference_data import (
    ProvisioningPolicies,
    ProvisioningReferenceData,
)
from provisioning_engines.settlement import (
    SettlementPolicy,
    SettlementProposal,
    calculate_settlement_proposal,
)
from provisioning_engines.staging import (
    CreditStageAssessment,
    OperationTypeTable,
    StageAssignment,
    StageDefinition,
    StageTable,
    assign_stage,
    determine_credit_stage,
    is_write_off_eligible,
    resolve_portfolio_classification,
)
from provisioning_engines.tracer import traced_engine

__all__ = [
    # Aging
    "AgingResult",
    "calculate_aging",
    # Rate resolver
    "BandRow",
    "BandTable",
    "RateResolution",
    "RateTables",
    "apply_collateral",
    "resolve_rate",
    "select_regime",
    # Credit risk readings
    "ExpectedLossEstimate",
    "ExpectedLossPolicy",
    "RiskIndicatorPolicy",
    "estimate_expected_loss",
    "identify_risk_indicators",
    "provisioning_mark",
    # Staging
    "CreditStageAssessment",
    "OperationTypeTable",
    "StageAssignment",
    "StageDefinition",
    "StageTable",
    "assign_stage",
    "determine_credit_stage",
    "is_write_off_eligible",
    "resolve_portfolio_classification",
    # Milestones
    "MilestoneEvaluation",
    "MilestoneThreshold",
    "MilestoneThresholds",
    "build_alert_message",
    "milestone_for",
    "track_milestone",
    # Settlement
    "SettlementPolicy",
    "SettlementProposal",
    "calculate_settlement_proposal",
    # Orchestration
    "ProvisioningPolicies",
    "ProvisioningReferenceData",
    "calculate_provisioning",
    "derive_collateral_coverage",
    # Tracing
    "traced_engine",
]
