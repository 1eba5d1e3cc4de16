"""
Calculation result types.

Contract:
    Engines never let exceptions cross the core boundary for business
    outcomes.  Each operation returns a ``CalculationResult`` carrying either
    a value or one or more blocking ``CalculationIssue`` errors, plus any
    non-blocking warnings (invalid dates, band lookup fallbacks).

Guarantees:
    - Immutable (frozen dataclasses).
    - ``errors`` and ``warnings`` are always tuples.
    - ``bool(result) == result.is_success``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class IssueCode:
    """Machine-readable issue codes."""

    UNKNOWN_CLASSIFICATION = "UNKNOWN_CLASSIFICATION"
    UNKNOWN_OPERATION_TYPE = "UNKNOWN_OPERATION_TYPE"
    NO_STAGE_FOR_AGING = "NO_STAGE_FOR_AGING"
    INVALID_DATE = "INVALID_DATE"
    BAND_LOOKUP_MISS = "BAND_LOOKUP_MISS"
    NEGATIVE_BALANCE = "NEGATIVE_BALANCE"


@dataclass(frozen=True)
class CalculationIssue:
    """A single error or warning raised by an engine."""

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class CalculationResult(Generic[T]):
    """Success value or failure issues of a pure engine operation."""

    value: T | None = None
    errors: tuple[CalculationIssue, ...] = field(default_factory=tuple)
    warnings: tuple[CalculationIssue, ...] = field(default_factory=tuple)

    @property
    def is_success(self) -> bool:
        return not self.errors

    @classmethod
    def success(
        cls, value: T, *warnings: CalculationIssue,
    ) -> CalculationResult[T]:
        return cls(value=value, errors=(), warnings=tuple(warnings))

    @classmethod
    def failure(
        cls, *errors: CalculationIssue, warnings: tuple[CalculationIssue, ...] = (),
    ) -> CalculationResult[T]:
        if not errors:
            raise ValueError("A failure result needs at least one error")
        return cls(value=None, errors=tuple(errors), warnings=warnings)

    def unwrap(self) -> T:
        """Return the value; raise ValueError on a failed result."""
        if self.errors:
            codes = ", ".join(e.code for e in self.errors)
            raise ValueError(f"Calculation failed: {codes}")
        return self.value  # type: ignore[return-value]

    def __bool__(self) -> bool:
        return self.is_success
