"""
Module: provisioning_engines.staging
Responsibility:
    Label a contract's aging with a risk stage (A..H), resolve its portfolio
    classification from its operation type, and derive the CMN 4.966 credit
    stage and write-off eligibility.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Stages are a labeling of the band tables: every stage boundary is a
      band boundary of the same regime (checked by ``StageTable.alignment_errors``
      at configuration load).
    - Stage rank is non-decreasing in aging; A covers the start of the
      expected-loss table, H is unbounded at the end of the incurred-loss
      table.
    - Classification is never inferred from aging; it comes from the
      snapshot or the fixed operation-type table.

Failure modes:
    - StageTableError / OperationTypeTableError on malformed tables.
    - Failure results ``NO_STAGE_FOR_AGING``, ``UNKNOWN_CLASSIFICATION``,
      ``UNKNOWN_OPERATION_TYPE``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType

from provisioning_engines.aging import AgingResult
from provisioning_engines.rate_resolver import BandTable, select_regime
from provisioning_engines.tracer import traced_engine
from provisioning_kernel.domain.results import (
    CalculationIssue,
    CalculationResult,
    IssueCode,
)
from provisioning_kernel.domain.values import (
    CreditStage,
    DefaultTrigger,
    PortfolioClassification,
    Regime,
    Stage,
)
from provisioning_kernel.exceptions import OperationTypeTableError, StageTableError
from provisioning_kernel.logging_config import get_logger

logger = get_logger("engines.staging")

CREDIT_STAGE_1_MAX_DAYS = 30
CREDIT_STAGE_2_MAX_DAYS = 90


@dataclass(frozen=True)
class StageDefinition:
    """Aging interval ``[lower_bound, upper_bound)`` of one stage in one regime."""

    stage: Stage
    regime: Regime
    lower_bound: int
    upper_bound: int | None
    label: str
    description: str = ""

    def contains(self, value: int) -> bool:
        if value < self.lower_bound:
            return False
        return self.upper_bound is None or value < self.upper_bound


@dataclass(frozen=True)
class StageTable:
    """
    The eight stages A..H in order.

    Guarantees:
        - Stages appear exactly once, in A..H order.
        - Expected-loss stages precede incurred-loss stages.
        - Within a regime, stages are contiguous; only H is unbounded.
    """

    stages: tuple[StageDefinition, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "stages", tuple(self.stages))

        if tuple(d.stage for d in self.stages) != tuple(Stage):
            raise StageTableError("stages", "stages must list A..H exactly once, in order")

        regimes = [d.regime for d in self.stages]
        first_incurred = regimes.index(Regime.INCURRED_LOSS) if Regime.INCURRED_LOSS in regimes else None
        if first_incurred is None or Regime.EXPECTED_LOSS not in regimes:
            raise StageTableError("stages", "both regimes need at least one stage")
        if any(r is Regime.EXPECTED_LOSS for r in regimes[first_incurred:]):
            raise StageTableError("stages", "expected-loss stages must precede incurred-loss stages")

        for regime in Regime:
            previous: StageDefinition | None = None
            for definition in self.for_regime(regime):
                if definition.upper_bound is not None and definition.upper_bound <= definition.lower_bound:
                    raise StageTableError(
                        "stages", f"stage {definition.stage.value} has an empty interval",
                    )
                if previous is not None:
                    if previous.upper_bound != definition.lower_bound:
                        raise StageTableError(
                            "stages",
                            f"stages {previous.stage.value} and {definition.stage.value} "
                            "overlap or leave a gap",
                        )
                previous = definition

        for definition in self.stages[:-1]:
            if definition.upper_bound is None:
                raise StageTableError(
                    "stages", f"only the last stage may be unbounded ({definition.stage.value})",
                )
        if self.stages[-1].upper_bound is not None:
            raise StageTableError("stages", "the last stage must be unbounded")

    def for_regime(self, regime: Regime) -> tuple[StageDefinition, ...]:
        return tuple(d for d in self.stages if d.regime is regime)

    def find(self, regime: Regime, value: int) -> StageDefinition | None:
        for definition in self.for_regime(regime):
            if definition.contains(value):
                return definition
        return None

    def alignment_errors(self, table: BandTable) -> list[str]:
        """Stage boundaries of ``table.regime`` that are not band boundaries."""
        errors: list[str] = []
        band_bounds = table.boundaries()
        for definition in self.for_regime(table.regime):
            bounds = [definition.lower_bound]
            if definition.upper_bound is not None:
                bounds.append(definition.upper_bound)
            for bound in bounds:
                if bound not in band_bounds:
                    errors.append(
                        f"stage {definition.stage.value} boundary {bound} "
                        f"is not a {table.regime.value} band boundary"
                    )
        return errors


@dataclass(frozen=True)
class StageAssignment:
    stage: Stage
    label: str
    regime: Regime
    classification: PortfolioClassification


@traced_engine("staging", "1.0", fingerprint_fields=("classification", "aging", "regime"))
def assign_stage(
    classification: PortfolioClassification | str,
    aging: AgingResult,
    regime: Regime | None,
    stages: StageTable,
) -> CalculationResult[StageAssignment]:
    """
    Assign the stage label for an aging in a regime.

    ``regime`` defaults to the regime selected by the 90-day cutover.
    """
    resolved = PortfolioClassification.parse(classification)
    if resolved is None:
        return CalculationResult.failure(CalculationIssue(
            code=IssueCode.UNKNOWN_CLASSIFICATION,
            message=f"Unknown portfolio classification: {classification!r}",
            field="portfolio_classification",
        ))

    regime = regime or select_regime(aging.days_overdue)
    value = aging.days_overdue if regime is Regime.EXPECTED_LOSS else aging.months_overdue
    definition = stages.find(regime, value)
    if definition is None:
        return CalculationResult.failure(CalculationIssue(
            code=IssueCode.NO_STAGE_FOR_AGING,
            message=f"No {regime.value} stage covers aging value {value}",
            field="stage",
            details={"regime": regime.value, "aging_value": value},
        ))

    return CalculationResult.success(StageAssignment(
        stage=definition.stage,
        label=definition.label,
        regime=regime,
        classification=resolved,
    ))


def _normalize_operation_type(value: str) -> str:
    return " ".join(value.strip().casefold().split())


@dataclass(frozen=True)
class OperationTypeTable:
    """Fixed lookup from operation type (modality) to classification."""

    mapping: Mapping[str, PortfolioClassification]

    def __post_init__(self) -> None:
        normalized: dict[str, PortfolioClassification] = {}
        for operation_type, classification in self.mapping.items():
            if not isinstance(classification, PortfolioClassification):
                raise OperationTypeTableError(
                    "operation_types",
                    f"{operation_type!r} maps to {classification!r}, not C1..C5",
                )
            key = _normalize_operation_type(operation_type)
            if key in normalized and normalized[key] is not classification:
                raise OperationTypeTableError(
                    "operation_types", f"{operation_type!r} is mapped twice",
                )
            normalized[key] = classification
        object.__setattr__(self, "mapping", MappingProxyType(normalized))

    def lookup(self, operation_type: str) -> PortfolioClassification | None:
        return self.mapping.get(_normalize_operation_type(operation_type))

    def __len__(self) -> int:
        return len(self.mapping)


def resolve_portfolio_classification(
    operation_type: str | None,
    table: OperationTypeTable,
) -> CalculationResult[PortfolioClassification]:
    """Classification of an operation type via the fixed table."""
    classification = table.lookup(operation_type) if operation_type else None
    if classification is None:
        return CalculationResult.failure(CalculationIssue(
            code=IssueCode.UNKNOWN_OPERATION_TYPE,
            message=f"Operation type not mapped to a classification: {operation_type!r}",
            field="operation_type",
        ))
    return CalculationResult.success(classification)


@dataclass(frozen=True)
class CreditStageAssessment:
    credit_stage: CreditStage
    in_observation_period: bool
    observation_days_remaining: int
    default_triggers: tuple[DefaultTrigger, ...] = ()


def determine_credit_stage(
    days_overdue: int,
    reference_date: date,
    is_restructured: bool = False,
    restructured_on: date | None = None,
    observation_period_days: int = 180,
    in_bankruptcy: bool = False,
    under_judicial_measure: bool = False,
    covenant_breach: bool = False,
) -> CreditStageAssessment:
    """
    CMN 4.966 stage: 1 up to 30 days, 2 up to 90 days, 3 beyond.

    Bankruptcy, a judicial measure or a covenant breach make the contract a
    problem asset (stage 3) whatever its aging; ``default_triggers`` lists
    every criterion that applied.  A restructured contract is at least
    stage 2 while it is inside the observation period that starts on the
    restructuring date.
    """
    triggers = tuple(
        trigger
        for trigger, applies in (
            (DefaultTrigger.OVERDUE_90_DAYS, days_overdue > CREDIT_STAGE_2_MAX_DAYS),
            (DefaultTrigger.BANKRUPTCY, in_bankruptcy),
            (DefaultTrigger.JUDICIAL_MEASURE, under_judicial_measure),
            (DefaultTrigger.COVENANT_BREACH, covenant_breach),
        )
        if applies
    )

    if triggers:
        stage = CreditStage.PROBLEM_ASSET
    elif days_overdue <= CREDIT_STAGE_1_MAX_DAYS:
        stage = CreditStage.NORMAL
    else:
        stage = CreditStage.SIGNIFICANT_INCREASE

    in_observation = False
    remaining = 0
    if is_restructured and restructured_on is not None:
        elapsed = max(0, (reference_date - restructured_on).days)
        in_observation = elapsed <= observation_period_days
        remaining = max(0, observation_period_days - elapsed)
        if in_observation and stage is CreditStage.NORMAL:
            stage = CreditStage.SIGNIFICANT_INCREASE

    return CreditStageAssessment(
        credit_stage=stage,
        in_observation_period=in_observation,
        observation_days_remaining=remaining,
        default_triggers=triggers,
    )


def is_write_off_eligible(
    classification: PortfolioClassification,
    months_overdue: int,
    limits: Mapping[PortfolioClassification, int],
    default_limit: int = 18,
) -> bool:
    """True once months overdue reach the classification's write-off limit."""
    return months_overdue >= limits.get(classification, default_limit)
