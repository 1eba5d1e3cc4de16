"""
Module: provisioning_engines.provisioning
Responsibility:
    Run the full calculation chain for one contract (aging, rate
    resolution, staging, credit stage with its default triggers, write-off
    check, risk indicators, expected loss, provisioning mark, milestone) and
    produce the frozen ``ProvisioningAnalysis``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Orchestrates the sibling
    engines; persistence and alerting state belong to
    ``provisioning_services``.

Invariants enforced:
    - Purity: reference date and calculation timestamp are parameters.
    - provision_value = outstanding_balance * adjusted_percentage / 100,
      quantized to cents (ROUND_HALF_UP).
    - Classification comes from the snapshot or, when absent, from the
      operation-type table -- never from aging.
    - Identical inputs produce identical analyses (including rationale).

Failure modes:
    - Failure result on unknown classification / operation type, on a
      negative balance, when no stage covers the aging, or (``INVALID_DATE``)
      when the reference date itself is missing or unparseable.  Nothing is
      raised.
    - Warnings ``INVALID_DATE`` and ``BAND_LOOKUP_MISS`` are carried on a
      successful result and logged here.

Usage:
    from provisioning_config import get_active_config
    from provisioning_engines.provisioning import calculate_provisioning

    result = calculate_provisioning(
        snapshot, get_active_config(), date(2024, 4, 15), calculated_at,
    )
    if result.is_success:
        analysis = result.value
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from provisioning_engines.aging import AgingResult, calculate_aging, coerce_date
from provisioning_engines.credit_risk import (
    ExpectedLossEstimate,
    estimate_expected_loss,
    identify_risk_indicators,
    provisioning_mark,
)
from provisioning_engines.milestones import milestone_for
from provisioning_engines.rate_resolver import RateResolution, clamp_coverage, resolve_rate
from provisioning_engines.reference_data import ProvisioningReferenceData
from provisioning_engines.staging import (
    CreditStageAssessment,
    StageAssignment,
    assign_stage,
    determine_credit_stage,
    is_write_off_eligible,
    resolve_portfolio_classification,
)
from provisioning_engines.tracer import traced_engine
from provisioning_kernel.domain.analysis import ProvisioningAnalysis
from provisioning_kernel.domain.results import (
    CalculationIssue,
    CalculationResult,
    IssueCode,
)
from provisioning_kernel.domain.values import (
    ContractSnapshot,
    Milestone,
    PortfolioClassification,
    RiskIndicator,
)
from provisioning_kernel.logging_config import get_logger

logger = get_logger("engines.provisioning")

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def derive_collateral_coverage(snapshot: ContractSnapshot) -> Decimal:
    """
    Collateral coverage percentage of a snapshot, clamped to [0, 100].

    An explicit coverage wins; otherwise collateral value over outstanding
    balance; no collateral means 0.
    """
    if snapshot.collateral_coverage is not None:
        return clamp_coverage(snapshot.collateral_coverage)
    if (
        snapshot.has_collateral
        and snapshot.collateral_value is not None
        and snapshot.outstanding_balance > 0
    ):
        return clamp_coverage(
            snapshot.collateral_value / snapshot.outstanding_balance * HUNDRED
        )
    return Decimal("0")


def _resolve_classification(
    snapshot: ContractSnapshot,
    reference_data: ProvisioningReferenceData,
) -> CalculationResult[PortfolioClassification]:
    if snapshot.portfolio_classification is not None:
        parsed = PortfolioClassification.parse(snapshot.portfolio_classification)
        if parsed is None:
            return CalculationResult.failure(CalculationIssue(
                code=IssueCode.UNKNOWN_CLASSIFICATION,
                message=(
                    "Unknown portfolio classification: "
                    f"{snapshot.portfolio_classification!r}"
                ),
                field="portfolio_classification",
            ))
        return CalculationResult.success(parsed)
    if snapshot.operation_type is None:
        return CalculationResult.failure(CalculationIssue(
            code=IssueCode.UNKNOWN_CLASSIFICATION,
            message="Contract has neither a classification nor an operation type",
            field="portfolio_classification",
        ))
    return resolve_portfolio_classification(
        snapshot.operation_type, reference_data.operation_types,
    )


def build_rationale(
    aging: AgingResult,
    rate: RateResolution,
    stage: StageAssignment,
    credit: CreditStageAssessment,
    milestone: Milestone,
    guidance: str,
    write_off_eligible: bool,
    risk_indicators: tuple[RiskIndicator, ...] = (),
    expected: ExpectedLossEstimate | None = None,
    mark: Decimal | None = None,
) -> str:
    """Plain-language, deterministic method note for an analysis."""
    lines = [
        f"Aging: {aging.days_overdue} days ({aging.months_overdue} months) overdue"
        + ("" if aging.date_valid else "; default date invalid, treated as current")
        + ".",
        f"Regime: {rate.regime.value}, band {rate.band_label}, "
        f"{rate.classification.value} base {rate.base_percentage}%"
        + (" (fallback ceiling, band table incomplete)" if rate.fallback_used else "")
        + ".",
        f"Collateral coverage {rate.collateral_coverage}% -> "
        f"adjusted {rate.adjusted_percentage}%"
        + (f", provisioning mark {mark}%" if mark is not None else "")
        + ".",
        f"Stage {stage.stage.value} ({stage.label}); "
        f"CMN 4.966 stage {credit.credit_stage.value}"
        + (
            " (" + ", ".join(t.value for t in credit.default_triggers) + ")"
            if credit.default_triggers
            else ""
        )
        + (
            f", restructuring observation {credit.observation_days_remaining} days left"
            if credit.in_observation_period
            else ""
        )
        + ".",
    ]
    if risk_indicators:
        lines.append("Risk indicators: " + ", ".join(i.value for i in risk_indicators) + ".")
    if expected is not None:
        lines.append(
            f"Expected loss: PD {expected.probability_of_default}% x "
            f"LGD {expected.loss_given_default}% x EAD {expected.exposure_at_default} "
            f"= {expected.expected_loss}."
        )
    lines.append(
        f"Negotiation milestone: {milestone.value}."
        + (f" {guidance}" if guidance else "")
    )
    if write_off_eligible:
        lines.append("Write-off limit reached for this classification.")
    return "\n".join(lines)


@traced_engine(
    "provisioning",
    "1.0",
    fingerprint_fields=("snapshot", "reference_date"),
)
def calculate_provisioning(
    snapshot: ContractSnapshot,
    reference_data: ProvisioningReferenceData,
    reference_date: date,
    calculated_at: datetime,
) -> CalculationResult[ProvisioningAnalysis]:
    """
    Calculate the provisioning analysis of one contract.

    Args:
        snapshot: Contract data as of the reference date.
        reference_data: Loaded, validated reference tables.
        reference_date: The "as of" date for aging.
        calculated_at: Timestamp stamped on the analysis (from the caller's
            Clock).

    Returns:
        CalculationResult[ProvisioningAnalysis].
    """
    as_of = coerce_date(reference_date)
    if as_of is None:
        logger.warning(
            "provisioning_invalid_reference_date",
            extra={"contract_id": snapshot.contract_id, "reference_date": str(reference_date)},
        )
        return CalculationResult.failure(CalculationIssue(
            code=IssueCode.INVALID_DATE,
            message=f"Reference date missing or invalid: {reference_date!r}",
            field="reference_date",
        ))

    warnings: list[CalculationIssue] = []

    if snapshot.outstanding_balance < 0:
        return CalculationResult.failure(CalculationIssue(
            code=IssueCode.NEGATIVE_BALANCE,
            message=f"Outstanding balance is negative: {snapshot.outstanding_balance}",
            field="outstanding_balance",
        ))

    classification_result = _resolve_classification(snapshot, reference_data)
    if not classification_result.is_success:
        return CalculationResult.failure(*classification_result.errors)
    classification = classification_result.unwrap()

    aging = calculate_aging(snapshot.default_date, as_of)
    if not aging.date_valid:
        warnings.append(CalculationIssue(
            code=IssueCode.INVALID_DATE,
            message="Default or reference date invalid; aging treated as zero",
            field="default_date",
            details={"default_date": str(snapshot.default_date)},
        ))

    coverage = derive_collateral_coverage(snapshot)
    rate_result = resolve_rate(
        classification,
        aging.days_overdue,
        aging.months_overdue,
        reference_data.rate_tables,
        collateral_coverage=coverage,
    )
    if not rate_result.is_success:
        return CalculationResult.failure(*rate_result.errors, warnings=tuple(warnings))
    rate = rate_result.unwrap()
    warnings.extend(rate_result.warnings)
    if rate.fallback_used:
        logger.warning(
            "band_lookup_miss",
            extra={
                "contract_id": snapshot.contract_id,
                "regime": rate.regime.value,
                "aging_value": rate.aging_value,
                "fallback_percentage": str(rate.base_percentage),
            },
        )

    stage_result = assign_stage(classification, aging, rate.regime, reference_data.stages)
    if not stage_result.is_success:
        return CalculationResult.failure(*stage_result.errors, warnings=tuple(warnings))
    stage = stage_result.unwrap()

    policies = reference_data.policies
    credit = determine_credit_stage(
        aging.days_overdue,
        as_of,
        is_restructured=snapshot.is_restructured,
        restructured_on=coerce_date(snapshot.restructured_on),
        observation_period_days=policies.observation_period_days,
        in_bankruptcy=snapshot.in_bankruptcy,
        under_judicial_measure=snapshot.under_judicial_measure,
        covenant_breach=snapshot.covenant_breach,
    )
    write_off = is_write_off_eligible(
        classification,
        aging.months_overdue,
        policies.write_off_months,
        default_limit=policies.default_write_off_months,
    )

    provision_value = (
        snapshot.outstanding_balance * rate.adjusted_percentage / HUNDRED
    ).quantize(CENT, rounding=ROUND_HALF_UP)

    indicators = identify_risk_indicators(
        aging.days_overdue,
        aging.months_overdue,
        rate.adjusted_percentage,
        is_restructured=snapshot.is_restructured,
        has_collateral=snapshot.has_collateral or coverage > 0,
        collateral_coverage=coverage,
        policy=policies.risk_indicators,
    )
    expected = estimate_expected_loss(
        credit.credit_stage,
        snapshot.outstanding_balance,
        coverage,
        policy=policies.expected_loss,
    )
    mark = provisioning_mark(rate.adjusted_percentage, policies.provisioning_marks)

    milestone = milestone_for(rate.adjusted_percentage, reference_data.milestones)
    rationale = build_rationale(
        aging,
        rate,
        stage,
        credit,
        milestone,
        reference_data.milestones.guidance_for(milestone),
        write_off,
        risk_indicators=indicators,
        expected=expected,
        mark=mark,
    )

    analysis = ProvisioningAnalysis(
        contract_id=snapshot.contract_id,
        reference_date=as_of,
        calculated_at=calculated_at,
        days_overdue=aging.days_overdue,
        months_overdue=aging.months_overdue,
        date_valid=aging.date_valid,
        portfolio_classification=classification,
        regime=rate.regime,
        band_label=rate.band_label,
        base_percentage=rate.base_percentage,
        collateral_coverage=rate.collateral_coverage,
        adjusted_percentage=rate.adjusted_percentage,
        outstanding_balance=snapshot.outstanding_balance,
        provision_value=provision_value,
        stage=stage.stage,
        stage_label=stage.label,
        credit_stage=credit.credit_stage,
        observation_days_remaining=credit.observation_days_remaining,
        default_triggers=credit.default_triggers,
        risk_indicators=indicators,
        write_off_eligible=write_off,
        probability_of_default=expected.probability_of_default,
        loss_given_default=expected.loss_given_default,
        expected_loss=expected.expected_loss,
        provisioning_mark=mark,
        milestone=milestone,
        fallback_used=rate.fallback_used,
        rationale=rationale,
        config_checksum=reference_data.checksum,
    )
    return CalculationResult.success(analysis, *warnings)
