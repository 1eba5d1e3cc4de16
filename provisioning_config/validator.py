"""
Configuration Validator (``provisioning_config.validator``).

Responsibility
--------------
Validates a ``ProvisioningConfigurationSet`` before it is compiled and
handed to the engines, ensuring the reference tables are complete and
mutually consistent.

Invariants enforced
-------------------
* Every table builds into its engine structure (structural checks).
* Expected-loss bands start at day 0 and cover every day up to 90.
* Incurred-loss bands cover every month reachable beyond 90 days and end
  with an unbounded row.
* Stage boundaries coincide with band boundaries of the same regime and
  stages cover the same ranges as the bands.
* Policy parameters are in range.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> configuration
  MUST NOT be compiled; ``raise_for_errors`` raises the typed
  ReferenceDataError subclass of the first failing table.
* Validation warnings  -> configuration may be used but should be reviewed.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TypeVar

from provisioning_config.compiler import (
    build_band_table,
    build_milestone_thresholds,
    build_operation_types,
    build_policies,
    build_stage_table,
)
from provisioning_config.schema import ProvisioningConfigurationSet
from provisioning_engines.rate_resolver import EXPECTED_LOSS_MAX_DAYS, BandTable
from provisioning_engines.reference_data import ProvisioningPolicies
from provisioning_engines.staging import OperationTypeTable, StageTable
from provisioning_kernel.domain.values import CreditStage, PortfolioClassification, Regime
from provisioning_kernel.exceptions import (
    BandTableError,
    MilestoneTableError,
    OperationTypeTableError,
    ReferenceDataError,
    StageTableError,
)

T = TypeVar("T")

# First month reachable by the incurred-loss regime (91 days // 30)
FIRST_INCURRED_MONTH = (EXPECTED_LOSS_MAX_DAYS + 1) // 30

_TABLE_ERRORS: dict[str, type[ReferenceDataError]] = {
    "expected_loss": BandTableError,
    "incurred_loss": BandTableError,
    "stages": StageTableError,
    "milestones": MilestoneTableError,
    "operation_types": OperationTypeTableError,
}


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error_tables: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, table: str, msg: str) -> None:
        self.errors.append(f"[{table}] {msg}")
        self.error_tables.append(table)

    def add_warning(self, table: str, msg: str) -> None:
        self.warnings.append(f"[{table}] {msg}")

    def raise_for_errors(self) -> None:
        if self.is_valid:
            return
        table = self.error_tables[0]
        error_cls = _TABLE_ERRORS.get(table, ReferenceDataError)
        raise error_cls(table, "; ".join(self.errors))


def _build(result: ConfigValidationResult, table: str, builder: Callable[[], T]) -> T | None:
    try:
        return builder()
    except ReferenceDataError as exc:
        result.add_error(table, exc.reason)
        return None


def validate_configuration(config: ProvisioningConfigurationSet) -> ConfigValidationResult:
    """
    Validate a configuration set.

    A configuration with errors MUST NOT be compiled.
    """
    result = ConfigValidationResult()

    expected = _build(result, "expected_loss", lambda: build_band_table(config.expected_loss, "expected_loss"))
    incurred = _build(result, "incurred_loss", lambda: build_band_table(config.incurred_loss, "incurred_loss"))
    stages = _build(result, "stages", lambda: build_stage_table(config.stages))
    _build(result, "milestones", lambda: build_milestone_thresholds(config.milestones))
    operation_types = _build(
        result, "operation_types", lambda: build_operation_types(config.operation_types),
    )
    policies = _build(result, "policies", lambda: build_policies(config.policies))

    if expected is not None:
        _validate_expected_loss(expected, result)
    if incurred is not None:
        _validate_incurred_loss(incurred, result)
    if stages is not None:
        _validate_stages(stages, expected, incurred, result)
    if operation_types is not None:
        _validate_operation_types(operation_types, result)
    if policies is not None:
        _validate_policies(policies, result)

    return result


def _validate_expected_loss(table: BandTable, result: ConfigValidationResult) -> None:
    if table.regime is not Regime.EXPECTED_LOSS:
        result.add_error("expected_loss", f"regime must be expected_loss, not {table.regime.value}")
        return
    if table.lower_bound != 0:
        result.add_error("expected_loss", "first band must start at day 0")
    if table.upper_bound is not None and table.upper_bound <= EXPECTED_LOSS_MAX_DAYS:
        result.add_error(
            "expected_loss",
            f"bands end at day {table.upper_bound - 1}, must cover day {EXPECTED_LOSS_MAX_DAYS}",
        )
    for row in table.rows:
        if row.lower_bound > EXPECTED_LOSS_MAX_DAYS:
            result.add_warning(
                "expected_loss",
                f"band {row.label} is unreachable (expected loss ends at day "
                f"{EXPECTED_LOSS_MAX_DAYS})",
            )


def _validate_incurred_loss(table: BandTable, result: ConfigValidationResult) -> None:
    if table.regime is not Regime.INCURRED_LOSS:
        result.add_error("incurred_loss", f"regime must be incurred_loss, not {table.regime.value}")
        return
    if table.lower_bound > FIRST_INCURRED_MONTH:
        result.add_error(
            "incurred_loss",
            f"first band starts at month {table.lower_bound}, must cover month "
            f"{FIRST_INCURRED_MONTH}",
        )
    if table.upper_bound is not None:
        result.add_error("incurred_loss", "last band must be unbounded")


def _validate_stages(
    stages: StageTable,
    expected: BandTable | None,
    incurred: BandTable | None,
    result: ConfigValidationResult,
) -> None:
    for table in (expected, incurred):
        if table is None:
            continue
        for error in stages.alignment_errors(table):
            result.add_error("stages", error)

    expected_stages = stages.for_regime(Regime.EXPECTED_LOSS)
    if expected_stages[0].lower_bound != 0:
        result.add_error("stages", f"stage {expected_stages[0].stage.value} must start at day 0")
    last_expected = expected_stages[-1]
    if last_expected.upper_bound is not None and last_expected.upper_bound <= EXPECTED_LOSS_MAX_DAYS:
        result.add_error(
            "stages",
            f"expected-loss stages end at day {last_expected.upper_bound - 1}, "
            f"must cover day {EXPECTED_LOSS_MAX_DAYS}",
        )
    incurred_stages = stages.for_regime(Regime.INCURRED_LOSS)
    if incurred_stages[0].lower_bound > FIRST_INCURRED_MONTH:
        result.add_error(
            "stages",
            f"stage {incurred_stages[0].stage.value} must cover month {FIRST_INCURRED_MONTH}",
        )


def _validate_operation_types(table: OperationTypeTable, result: ConfigValidationResult) -> None:
    if len(table) == 0:
        result.add_warning("operation_types", "no operation types defined")
        return
    used = set(table.mapping.values())
    for classification in PortfolioClassification:
        if classification not in used:
            result.add_warning(
                "operation_types", f"no operation type maps to {classification.value}",
            )


def _validate_policies(policies: ProvisioningPolicies, result: ConfigValidationResult) -> None:
    if policies.observation_period_days < 0:
        result.add_error("policies", "observation period cannot be negative")
    if policies.default_write_off_months <= 0:
        result.add_error("policies", "default write-off limit must be positive")
    for classification, months in policies.write_off_months.items():
        if months <= 0:
            result.add_error(
                "policies", f"write-off limit of {classification.value} must be positive",
            )
    settlement = policies.settlement
    for name, value in (
        ("premium_threshold", settlement.premium_threshold),
        ("premium_proposal_percentage", settlement.premium_proposal_percentage),
    ):
        if value < Decimal("0") or value > Decimal("100"):
            result.add_error("policies", f"settlement {name} {value} outside [0, 100]")

    indicators = policies.risk_indicators
    if not 0 <= indicators.attention_min_days <= indicators.attention_max_days:
        result.add_error(
            "policies",
            f"attention band {indicators.attention_min_days}-{indicators.attention_max_days} "
            "days is empty or negative",
        )
    if indicators.prolonged_delay_months < 0:
        result.add_error("policies", "prolonged delay months cannot be negative")

    expected_loss = policies.expected_loss
    percentages = [
        ("high_provision_percentage", indicators.high_provision_percentage),
        ("insufficient_collateral_percentage", indicators.insufficient_collateral_percentage),
        ("base_lgd_percentage", expected_loss.base_lgd_percentage),
        ("collateral_lgd_reduction_percentage", expected_loss.collateral_lgd_reduction_percentage),
    ]
    percentages.extend(
        (f"PD of credit stage {stage.value}", pd)
        for stage, pd in expected_loss.pd_by_credit_stage.items()
    )
    for name, value in percentages:
        if value < Decimal("0") or value > Decimal("100"):
            result.add_error("policies", f"{name} {value} outside [0, 100]")

    pds = [expected_loss.pd_by_credit_stage[stage] for stage in CreditStage]
    if pds != sorted(pds):
        result.add_error("policies", "PD must not decrease with the credit stage")

    marks = policies.provisioning_marks
    if any(mark <= Decimal("0") or mark > Decimal("100") for mark in marks):
        result.add_error("policies", "provisioning marks must lie in (0, 100]")
    if list(marks) != sorted(set(marks)):
        result.add_error("policies", "provisioning marks must be strictly ascending")
