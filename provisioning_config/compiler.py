"""
provisioning_config.compiler -- builds engine reference data from a configuration set.

Responsibility:
    Translate the raw ``ProvisioningConfigurationSet`` definitions into the
    typed, frozen engine structures and bundle them as a
    ``ProvisioningReferenceData``.

Architecture position:
    Configuration -- sits between the YAML definitions and
    ``provisioning_engines``.  The engines never import this package.

Invariants enforced:
    - Every percentage becomes a ``Decimal`` built from its text.
    - Structural table invariants are enforced by the engine types
      themselves; the builders surface them as typed ReferenceDataError
      subclasses.
    - The set checksum is carried onto the reference data unchanged.

Failure modes:
    - BandTableError / StageTableError / MilestoneTableError /
      OperationTypeTableError for malformed definitions.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from provisioning_config.schema import (
    BandTableDef,
    MilestoneDef,
    OperationTypeDef,
    PoliciesDef,
    ProvisioningConfigurationSet,
    StageDef,
)
from provisioning_engines.credit_risk import ExpectedLossPolicy, RiskIndicatorPolicy
from provisioning_engines.milestones import MilestoneThreshold, MilestoneThresholds
from provisioning_engines.rate_resolver import BandRow, BandTable, RateTables
from provisioning_engines.reference_data import (
    ProvisioningPolicies,
    ProvisioningReferenceData,
)
from provisioning_engines.settlement import SettlementPolicy
from provisioning_engines.staging import OperationTypeTable, StageDefinition, StageTable
from provisioning_kernel.domain.values import (
    CreditStage,
    Milestone,
    PortfolioClassification,
    Regime,
    Stage,
)
from provisioning_kernel.exceptions import (
    BandTableError,
    MilestoneTableError,
    OperationTypeTableError,
    ReferenceDataError,
    StageTableError,
)


def to_decimal(value: str, table: str, what: str) -> Decimal:
    try:
        result = Decimal(value)
    except InvalidOperation as exc:
        raise ReferenceDataError(table, f"{what} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise ReferenceDataError(table, f"{what} is not finite: {value!r}")
    return result


def _regime(value: str, table: str, error_cls: type[ReferenceDataError]) -> Regime:
    try:
        return Regime(value)
    except ValueError as exc:
        raise error_cls(table, f"unknown regime {value!r}") from exc


def build_band_table(definition: BandTableDef, table: str) -> BandTable:
    regime = _regime(definition.regime, table, BandTableError)
    rows = []
    for row in definition.rows:
        percentages: dict[PortfolioClassification, Decimal] = {}
        for token, pct in row.percentages:
            classification = PortfolioClassification.parse(token)
            if classification is None:
                raise BandTableError(table, f"unknown classification column {token!r}")
            try:
                percentages[classification] = to_decimal(
                    pct, table, f"{token} percentage of band {row.lower_bound}",
                )
            except ReferenceDataError as exc:
                raise BandTableError(table, exc.reason) from exc
        rows.append(BandRow(
            lower_bound=row.lower_bound,
            upper_bound=row.upper_bound,
            percentages=percentages,
        ))
    return BandTable(regime=regime, rows=tuple(rows))


def build_stage_table(definitions: tuple[StageDef, ...]) -> StageTable:
    stages = []
    for definition in definitions:
        try:
            stage = Stage(definition.stage)
        except ValueError as exc:
            raise StageTableError("stages", f"unknown stage {definition.stage!r}") from exc
        stages.append(StageDefinition(
            stage=stage,
            regime=_regime(definition.regime, "stages", StageTableError),
            lower_bound=definition.lower_bound,
            upper_bound=definition.upper_bound,
            label=definition.label,
            description=definition.description,
        ))
    return StageTable(stages=tuple(stages))


def build_milestone_thresholds(definitions: tuple[MilestoneDef, ...]) -> MilestoneThresholds:
    entries = []
    for definition in definitions:
        try:
            milestone = Milestone(definition.milestone)
        except ValueError as exc:
            raise MilestoneTableError(
                "milestones", f"unknown milestone {definition.milestone!r}",
            ) from exc
        try:
            threshold = to_decimal(
                definition.threshold, "milestones", f"threshold of {milestone.value}",
            )
        except ReferenceDataError as exc:
            raise MilestoneTableError("milestones", exc.reason) from exc
        entries.append(MilestoneThreshold(
            milestone=milestone,
            threshold=threshold,
            guidance=definition.guidance,
        ))
    if not entries:
        raise MilestoneTableError("milestones", "no thresholds defined")
    return MilestoneThresholds(thresholds=tuple(entries))


def build_operation_types(definitions: tuple[OperationTypeDef, ...]) -> OperationTypeTable:
    mapping: dict[str, PortfolioClassification] = {}
    for definition in definitions:
        classification = PortfolioClassification.parse(definition.classification)
        if classification is None:
            raise OperationTypeTableError(
                "operation_types",
                f"{definition.name!r} maps to unknown classification "
                f"{definition.classification!r}",
            )
        if definition.name in mapping:
            raise OperationTypeTableError(
                "operation_types", f"{definition.name!r} is listed twice",
            )
        mapping[definition.name] = classification
    return OperationTypeTable(mapping=mapping)


def build_policies(definition: PoliciesDef) -> ProvisioningPolicies:
    write_off: dict[PortfolioClassification, int] = {}
    for token, months in definition.write_off_months:
        classification = PortfolioClassification.parse(token)
        if classification is None:
            raise ReferenceDataError("policies", f"unknown write-off classification {token!r}")
        write_off[classification] = months

    pd_by_stage: dict[CreditStage, Decimal] = {}
    for stage, pd in definition.pd_by_credit_stage:
        try:
            credit_stage = CreditStage(stage)
        except ValueError as exc:
            raise ReferenceDataError("policies", f"unknown credit stage {stage!r}") from exc
        pd_by_stage[credit_stage] = to_decimal(pd, "policies", f"PD of credit stage {stage}")
    missing = [s.value for s in CreditStage if s not in pd_by_stage]
    if missing:
        raise ReferenceDataError("policies", f"no PD for credit stages {missing}")

    return ProvisioningPolicies(
        observation_period_days=definition.observation_period_days,
        write_off_months=write_off,
        default_write_off_months=definition.default_write_off_months,
        settlement=SettlementPolicy(
            premium_threshold=to_decimal(
                definition.settlement_premium_threshold,
                "policies",
                "settlement premium threshold",
            ),
            premium_proposal_percentage=to_decimal(
                definition.settlement_premium_proposal_percentage,
                "policies",
                "settlement premium proposal percentage",
            ),
        ),
        risk_indicators=RiskIndicatorPolicy(
            attention_min_days=definition.attention_min_days,
            attention_max_days=definition.attention_max_days,
            high_provision_percentage=to_decimal(
                definition.high_provision_percentage, "policies", "high provision percentage",
            ),
            insufficient_collateral_percentage=to_decimal(
                definition.insufficient_collateral_percentage,
                "policies",
                "insufficient collateral percentage",
            ),
            prolonged_delay_months=definition.prolonged_delay_months,
        ),
        expected_loss=ExpectedLossPolicy(
            pd_by_credit_stage=pd_by_stage,
            base_lgd_percentage=to_decimal(
                definition.base_lgd_percentage, "policies", "base LGD percentage",
            ),
            collateral_lgd_reduction_percentage=to_decimal(
                definition.collateral_lgd_reduction_percentage,
                "policies",
                "collateral LGD reduction percentage",
            ),
        ),
        provisioning_marks=tuple(
            to_decimal(mark, "policies", "provisioning mark")
            for mark in definition.provisioning_marks
        ),
    )


def compile_reference_data(config: ProvisioningConfigurationSet) -> ProvisioningReferenceData:
    """Build the engine reference data of a configuration set."""
    return ProvisioningReferenceData(
        rate_tables=RateTables(
            expected_loss=build_band_table(config.expected_loss, "expected_loss"),
            incurred_loss=build_band_table(config.incurred_loss, "incurred_loss"),
        ),
        stages=build_stage_table(config.stages),
        milestones=build_milestone_thresholds(config.milestones),
        operation_types=build_operation_types(config.operation_types),
        policies=build_policies(config.policies),
        config_id=config.config_id,
        config_version=config.version,
        checksum=config.checksum,
    )
