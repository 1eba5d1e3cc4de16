"""
Module: provisioning_engines.credit_risk
Responsibility:
    Supplementary credit-risk readings of an analysed contract: the risk
    indicators reported with its stage, the theoretical expected loss
    (PD x LGD x EAD) and the provisioning mark (50% .. 100%) it has reached.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - PD comes from the CMN 4.966 credit stage; LGD is the base LGD reduced
      by collateral, never by more than the configured share.
    - expected_loss = EAD * PD / 100 * LGD / 100, quantized to cents;
      0 <= expected_loss <= EAD.
    - The provisioning mark is the highest configured mark not above the
      adjusted percentage, or None below the first mark.

Failure modes:
    - None raised.  These readings never fail a calculation.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType

from provisioning_engines.tracer import traced_engine
from provisioning_kernel.domain.values import CreditStage, RiskIndicator

CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")
HUNDRED = Decimal("100")
ZERO = Decimal("0")

DEFAULT_PROVISIONING_MARKS: tuple[Decimal, ...] = tuple(
    Decimal(mark) for mark in ("50", "60", "70", "80", "90", "100")
)


@dataclass(frozen=True)
class RiskIndicatorPolicy:
    """Thresholds of the deterioration signals (percentages, days, months)."""

    attention_min_days: int = 30
    attention_max_days: int = 90
    high_provision_percentage: Decimal = Decimal("30")
    insufficient_collateral_percentage: Decimal = Decimal("50")
    prolonged_delay_months: int = 6


def _default_pd() -> Mapping[CreditStage, Decimal]:
    return {
        CreditStage.NORMAL: Decimal("5"),
        CreditStage.SIGNIFICANT_INCREASE: Decimal("20"),
        CreditStage.PROBLEM_ASSET: Decimal("80"),
    }


@dataclass(frozen=True)
class ExpectedLossPolicy:
    """
    PD per credit stage, base LGD and the maximum LGD reduction by collateral.

    These are estimates used to explain the provision, not official figures.
    """

    pd_by_credit_stage: Mapping[CreditStage, Decimal] = field(default_factory=_default_pd)
    base_lgd_percentage: Decimal = Decimal("45")
    collateral_lgd_reduction_percentage: Decimal = Decimal("70")

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "pd_by_credit_stage", MappingProxyType(dict(self.pd_by_credit_stage)),
        )


@dataclass(frozen=True)
class ExpectedLossEstimate:
    probability_of_default: Decimal
    loss_given_default: Decimal
    exposure_at_default: Decimal
    expected_loss: Decimal


def identify_risk_indicators(
    days_overdue: int,
    months_overdue: int,
    adjusted_percentage: Decimal,
    is_restructured: bool,
    has_collateral: bool,
    collateral_coverage: Decimal,
    policy: RiskIndicatorPolicy = RiskIndicatorPolicy(),
) -> tuple[RiskIndicator, ...]:
    """Deterioration signals present on the contract, in a fixed order."""
    checks = (
        (
            RiskIndicator.ATTENTION_BAND_DELAY,
            policy.attention_min_days <= days_overdue <= policy.attention_max_days,
        ),
        (RiskIndicator.HIGH_PROVISION, adjusted_percentage >= policy.high_provision_percentage),
        (RiskIndicator.RESTRUCTURED, is_restructured),
        (
            RiskIndicator.INSUFFICIENT_COLLATERAL,
            has_collateral and collateral_coverage < policy.insufficient_collateral_percentage,
        ),
        (RiskIndicator.PROLONGED_DELAY, months_overdue >= policy.prolonged_delay_months),
    )
    return tuple(indicator for indicator, present in checks if present)


@traced_engine(
    "expected_loss",
    "1.0",
    fingerprint_fields=("credit_stage", "exposure_at_default", "collateral_coverage"),
)
def estimate_expected_loss(
    credit_stage: CreditStage,
    exposure_at_default: Decimal,
    collateral_coverage: Decimal,
    policy: ExpectedLossPolicy = ExpectedLossPolicy(),
) -> ExpectedLossEstimate:
    """
    Expected loss = EAD * PD * LGD.

    Collateral coverage (clamped to [0, 100]) scales the LGD reduction:
    full coverage cuts the base LGD by ``collateral_lgd_reduction_percentage``.
    """
    pd = policy.pd_by_credit_stage[credit_stage]
    coverage = min(HUNDRED, max(ZERO, collateral_coverage))
    reduction = coverage / HUNDRED * policy.collateral_lgd_reduction_percentage / HUNDRED
    lgd = (policy.base_lgd_percentage * (1 - reduction)).quantize(
        RATE_PLACES, rounding=ROUND_HALF_UP,
    )
    ead = max(ZERO, exposure_at_default)
    expected = (ead * pd / HUNDRED * lgd / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    return ExpectedLossEstimate(
        probability_of_default=pd,
        loss_given_default=lgd,
        exposure_at_default=ead,
        expected_loss=expected,
    )


def provisioning_mark(
    adjusted_percentage: Decimal,
    marks: tuple[Decimal, ...] = DEFAULT_PROVISIONING_MARKS,
) -> Decimal | None:
    """Highest provisioning mark reached, e.g. 70 for 74.5%; None below 50%."""
    reached = [mark for mark in marks if adjusted_percentage >= mark]
    return max(reached) if reached else None
