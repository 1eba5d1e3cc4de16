"""
Values -- Immutable domain vocabulary of the provisioning engine.

Responsibility:
    Defines the ordered enumerations (portfolio classification, regime,
    stage, credit stage, negotiation milestone) and the ``ContractSnapshot``
    input record consumed by every engine.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by engines, config and services. No outward dependencies.

Invariants enforced:
    - Ordered enums expose ``rank`` so comparisons never rely on string order.
    - Monetary amounts and percentages are ``Decimal`` -- never ``float``.
    - ``ContractSnapshot`` is frozen: one snapshot feeds one calculation.

Failure modes:
    - TypeError on a snapshot built with non-Decimal amounts.
    - ``PortfolioClassification.parse`` returns None (never raises) for
      unknown input; engines turn that into a failure result.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class PortfolioClassification(str, Enum):
    """BCB 352 portfolio (carteira) selecting the percentage column."""

    C1 = "C1"
    C2 = "C2"
    C3 = "C3"
    C4 = "C4"
    C5 = "C5"

    @classmethod
    def parse(cls, value: Any) -> PortfolioClassification | None:
        """Return the classification for ``value`` or None if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class Regime(str, Enum):
    """Provisioning methodology selected by the 90-day cutover."""

    EXPECTED_LOSS = "expected_loss"  # days-based, 0-90 days
    INCURRED_LOSS = "incurred_loss"  # months-based, beyond 90 days


class Stage(str, Enum):
    """Fine-grained aging severity label, A (current) to H (total loss)."""

    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"
    F = "F"
    G = "G"
    H = "H"

    @property
    def rank(self) -> int:
        return _STAGE_ORDER.index(self)


_STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)


class CreditStage(int, Enum):
    """CMN 4.966 three-stage credit risk classification."""

    NORMAL = 1
    SIGNIFICANT_INCREASE = 2
    PROBLEM_ASSET = 3


class DefaultTrigger(str, Enum):
    """Why a contract is a CMN 4.966 problem asset (stage 3)."""

    OVERDUE_90_DAYS = "overdue_90_days"
    BANKRUPTCY = "bankruptcy"
    JUDICIAL_MEASURE = "judicial_measure"
    COVENANT_BREACH = "covenant_breach"


class RiskIndicator(str, Enum):
    """Signs of credit deterioration reported alongside the stage."""

    ATTENTION_BAND_DELAY = "attention_band_delay"  # 30 to 90 days overdue
    HIGH_PROVISION = "high_provision"
    RESTRUCTURED = "restructured"
    INSUFFICIENT_COLLATERAL = "insufficient_collateral"
    PROLONGED_DELAY = "prolonged_delay"


class Milestone(str, Enum):
    """
    Negotiation milestone (momento de negociacao).

    Strictly ordered; ``total`` is terminal.  The enum fixes the ORDER only,
    the percentage thresholds come from configuration.
    """

    INICIAL = "inicial"
    FAVORAVEL = "favoravel"
    MUITO_FAVORAVEL = "muito_favoravel"
    OTIMO = "otimo"
    PREMIUM = "premium"
    TOTAL = "total"

    @property
    def rank(self) -> int:
        return _MILESTONE_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self is Milestone.TOTAL


_MILESTONE_ORDER: tuple[Milestone, ...] = tuple(Milestone)


class AlertPolicy(str, Enum):
    """How a percentage jump that skips milestones is reported."""

    PER_THRESHOLD = "per_threshold"  # one alert per crossed threshold
    DIRECT = "direct"  # a single alert from previous to new milestone


@dataclass(frozen=True)
class ContractSnapshot:
    """
    Immutable view of a contract as fetched by the host data layer.

    Contract:
        ``portfolio_classification`` is either a C1..C5 token or None, in
        which case ``operation_type`` is resolved through the configured
        operation-type table.  ``default_date`` may be a ``date``,
        ``datetime``, ISO string or None; invalid values mean "not in
        default" downstream.
    Guarantees:
        - Amounts are Decimal.
        - The bankruptcy, judicial-measure and covenant-breach flags each
          force CMN 4.966 stage 3 regardless of aging.
    Non-goals:
        - Does not validate dates or classification; the engines report
          those through result objects.
    """

    contract_id: str
    outstanding_balance: Decimal
    default_date: date | datetime | str | None = None
    portfolio_classification: str | None = None
    operation_type: str | None = None
    original_value: Decimal = Decimal("0")
    contract_date: date | None = None
    has_collateral: bool = False
    collateral_value: Decimal | None = None
    collateral_coverage: Decimal | None = None
    is_restructured: bool = False
    restructured_on: date | None = None
    in_bankruptcy: bool = False
    under_judicial_measure: bool = False
    covenant_breach: bool = False

    def __post_init__(self) -> None:
        for name in ("outstanding_balance", "original_value"):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                raise TypeError(f"{name} must be Decimal, not {type(value).__name__}")
        for name in ("collateral_value", "collateral_coverage"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Decimal):
                raise TypeError(f"{name} must be Decimal, not {type(value).__name__}")
