"""
Module: provisioning_engines.rate_resolver
Responsibility:
    Resolve the regulatory loss-provision percentage of a contract from the
    BCB 352 band tables and discount it by collateral coverage.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import provisioning_kernel/domain (and kernel exceptions for
    structural table errors).

Invariants enforced:
    - Regime cutover: days_overdue <= 90 reads the expected-loss (days)
      table, anything above reads the incurred-loss (months) table.
    - Band rows are half-open ``[lower_bound, upper_bound)``, contiguous,
      ordered; only the last row may be unbounded (``upper_bound=None``).
    - Every row carries a percentage for every classification C1..C5, in
      [0, 100], non-decreasing down the table.
    - adjusted = max(0, base - base * coverage / 100), coverage clamped to
      [0, 100]; therefore 0 <= adjusted <= base.
    - Decimal-only arithmetic.

Failure modes:
    - BandTableError when a BandTable is built from malformed rows.
    - Failure result ``UNKNOWN_CLASSIFICATION`` for anything but C1..C5.
    - Lookup miss (incomplete table) -> conservative fallback ceiling
      (100% months, 10% days), ``fallback_used=True`` and a
      ``BAND_LOOKUP_MISS`` warning on the result.

Audit relevance:
    ``RateResolution.band_label`` and ``fallback_used`` are persisted on the
    analysis so a reviewer can see which row produced the percentage.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from provisioning_engines.tracer import traced_engine
from provisioning_kernel.domain.results import (
    CalculationIssue,
    CalculationResult,
    IssueCode,
)
from provisioning_kernel.domain.values import PortfolioClassification, Regime
from provisioning_kernel.exceptions import BandTableError
from provisioning_kernel.logging_config import get_logger

logger = get_logger("engines.rate_resolver")

EXPECTED_LOSS_MAX_DAYS = 90

HUNDRED = Decimal("100")
ZERO = Decimal("0")

FALLBACK_PERCENTAGE: Mapping[Regime, Decimal] = MappingProxyType({
    Regime.INCURRED_LOSS: Decimal("100"),
    Regime.EXPECTED_LOSS: Decimal("10"),
})

REGIME_UNIT: Mapping[Regime, str] = MappingProxyType({
    Regime.EXPECTED_LOSS: "days",
    Regime.INCURRED_LOSS: "months",
})


@dataclass(frozen=True)
class BandRow:
    """
    One row of a provisioning band table.

    Contract:
        Covers aging values ``lower_bound <= v < upper_bound``; an
        ``upper_bound`` of None means unbounded above.
    Guarantees:
        - ``percentages`` is a read-only mapping keyed by
          PortfolioClassification.
    """

    lower_bound: int
    upper_bound: int | None
    percentages: Mapping[PortfolioClassification, Decimal] = field(
        default_factory=dict,
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "percentages", MappingProxyType(dict(self.percentages)),
        )

    @property
    def label(self) -> str:
        if self.upper_bound is None:
            return f"{self.lower_bound}+"
        return f"{self.lower_bound}-{self.upper_bound - 1}"

    def contains(self, value: int) -> bool:
        if value < self.lower_bound:
            return False
        return self.upper_bound is None or value < self.upper_bound

    def percentage_for(self, classification: PortfolioClassification) -> Decimal:
        return self.percentages[classification]


@dataclass(frozen=True)
class BandTable:
    """
    Ordered band table for one regime.

    Contract:
        Structural invariants are checked at construction; completeness
        (starting at 0, covering the whole regime range) is checked by the
        configuration validator, so an incomplete table can still be built
        and exercises the lookup fallback.
    """

    regime: Regime
    rows: tuple[BandRow, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "rows", tuple(self.rows))
        table = self.regime.value

        if not self.rows:
            raise BandTableError(table, "table has no rows")

        previous: BandRow | None = None
        for index, row in enumerate(self.rows):
            if row.lower_bound < 0:
                raise BandTableError(table, f"row {index} has a negative lower bound")
            if row.upper_bound is not None and row.upper_bound <= row.lower_bound:
                raise BandTableError(
                    table, f"row {index} upper bound must exceed its lower bound",
                )
            if row.upper_bound is None and index != len(self.rows) - 1:
                raise BandTableError(table, f"row {index} is unbounded but not last")

            missing = [c.value for c in PortfolioClassification if c not in row.percentages]
            if missing:
                raise BandTableError(
                    table, f"row {row.label} misses classifications {', '.join(missing)}",
                )
            for classification, pct in row.percentages.items():
                if not isinstance(pct, Decimal):
                    raise BandTableError(
                        table, f"row {row.label} {classification.value} is not a Decimal",
                    )
                if pct < ZERO or pct > HUNDRED:
                    raise BandTableError(
                        table,
                        f"row {row.label} {classification.value} percentage {pct} "
                        "outside [0, 100]",
                    )

            if previous is not None:
                if row.lower_bound != previous.upper_bound:
                    raise BandTableError(
                        table,
                        f"rows {previous.label} and {row.label} overlap or leave a gap",
                    )
                for classification in PortfolioClassification:
                    if row.percentages[classification] < previous.percentages[classification]:
                        raise BandTableError(
                            table,
                            f"{classification.value} percentage decreases from "
                            f"{previous.label} to {row.label}",
                        )
            previous = row

    @property
    def unit(self) -> str:
        return REGIME_UNIT[self.regime]

    @property
    def lower_bound(self) -> int:
        return self.rows[0].lower_bound

    @property
    def upper_bound(self) -> int | None:
        return self.rows[-1].upper_bound

    def find(self, value: int) -> BandRow | None:
        for row in self.rows:
            if row.contains(value):
                return row
        return None

    def boundaries(self) -> frozenset[int]:
        """Every lower and upper bound appearing in the table."""
        bounds = {row.lower_bound for row in self.rows}
        bounds.update(row.upper_bound for row in self.rows if row.upper_bound is not None)
        return frozenset(bounds)


@dataclass(frozen=True)
class RateTables:
    """The two regime tables, loaded once and passed read-only."""

    expected_loss: BandTable
    incurred_loss: BandTable

    def __post_init__(self) -> None:
        if self.expected_loss.regime is not Regime.EXPECTED_LOSS:
            raise BandTableError("expected_loss", "table regime must be expected_loss")
        if self.incurred_loss.regime is not Regime.INCURRED_LOSS:
            raise BandTableError("incurred_loss", "table regime must be incurred_loss")

    def for_regime(self, regime: Regime) -> BandTable:
        if regime is Regime.EXPECTED_LOSS:
            return self.expected_loss
        return self.incurred_loss


@dataclass(frozen=True)
class RateResolution:
    """Outcome of a rate lookup for one contract."""

    classification: PortfolioClassification
    regime: Regime
    aging_value: int
    band: BandRow | None
    base_percentage: Decimal
    collateral_coverage: Decimal
    adjusted_percentage: Decimal
    fallback_used: bool = False

    @property
    def band_label(self) -> str:
        unit = REGIME_UNIT[self.regime]
        if self.band is None:
            return f"fallback ({unit})"
        return f"{self.band.label} {unit}"


def select_regime(days_overdue: int) -> Regime:
    """Hard regulatory cutover at 90 days."""
    if days_overdue <= EXPECTED_LOSS_MAX_DAYS:
        return Regime.EXPECTED_LOSS
    return Regime.INCURRED_LOSS


def clamp_coverage(coverage: Decimal | None) -> Decimal:
    """Clamp a collateral coverage percentage into [0, 100]."""
    if coverage is None:
        return ZERO
    return min(HUNDRED, max(ZERO, coverage))


def apply_collateral(base_percentage: Decimal, coverage: Decimal | None) -> Decimal:
    """adjusted = max(0, base - base * coverage / 100) with clamped coverage."""
    clamped = clamp_coverage(coverage)
    return max(ZERO, base_percentage - base_percentage * clamped / HUNDRED)


def _unknown_classification(value: Any) -> CalculationIssue:
    return CalculationIssue(
        code=IssueCode.UNKNOWN_CLASSIFICATION,
        message=f"Unknown portfolio classification: {value!r}",
        field="portfolio_classification",
        details={"value": str(value)},
    )


@traced_engine(
    "rate_resolver",
    "1.0",
    fingerprint_fields=(
        "classification", "days_overdue", "months_overdue", "collateral_coverage",
    ),
)
def resolve_rate(
    classification: PortfolioClassification | str,
    days_overdue: int,
    months_overdue: int,
    tables: RateTables,
    collateral_coverage: Decimal | None = ZERO,
) -> CalculationResult[RateResolution]:
    """
    Look up the base percentage and apply the collateral discount.

    Args:
        classification: C1..C5 (enum or token).
        days_overdue: Whole days overdue, >= 0.  Selects the regime.
        months_overdue: Whole months overdue, >= 0.  Used by the
            incurred-loss table.
        tables: Expected-loss and incurred-loss band tables.
        collateral_coverage: Percentage of the debt covered by collateral.

    Returns:
        CalculationResult[RateResolution]; a failure only for an unknown
        classification.

    Raises:
        ValueError: If aging values are negative (programming error).
    """
    if days_overdue < 0 or months_overdue < 0:
        raise ValueError("aging values cannot be negative")

    resolved = PortfolioClassification.parse(classification)
    if resolved is None:
        return CalculationResult.failure(_unknown_classification(classification))

    regime = select_regime(days_overdue)
    table = tables.for_regime(regime)
    aging_value = days_overdue if regime is Regime.EXPECTED_LOSS else months_overdue

    warnings: list[CalculationIssue] = []
    band = table.find(aging_value)
    if band is None:
        base = FALLBACK_PERCENTAGE[regime]
        warnings.append(CalculationIssue(
            code=IssueCode.BAND_LOOKUP_MISS,
            message=(
                f"No {regime.value} band contains {aging_value} {table.unit}; "
                f"using fallback ceiling {base}%"
            ),
            field=f"{table.unit}_overdue",
            details={
                "regime": regime.value,
                "aging_value": aging_value,
                "fallback_percentage": str(base),
            },
        ))
    else:
        base = band.percentage_for(resolved)

    coverage = clamp_coverage(collateral_coverage)
    resolution = RateResolution(
        classification=resolved,
        regime=regime,
        aging_value=aging_value,
        band=band,
        base_percentage=base,
        collateral_coverage=coverage,
        adjusted_percentage=apply_collateral(base, coverage),
        fallback_used=band is None,
    )
    return CalculationResult.success(resolution, *warnings)
