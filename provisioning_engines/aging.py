"""
Module: provisioning_engines.aging
Responsibility:
    Derive days and months overdue of a contract from its default (or
    last-payment) date and an explicit reference date.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import provisioning_kernel/domain.

Invariants enforced:
    - Purity: no clock access, no I/O.  The reference date is always a
      parameter.
    - days_overdue >= 0 (clamped when not yet due).
    - months_overdue == days_overdue // 30.
    - Monotone: for a fixed default date, both values are non-decreasing as
      the reference date advances.

Failure modes:
    - None raised.  A missing or unparseable date yields ``AgingResult(0, 0)``
      with ``date_valid=False`` so the caller can flag it.

Usage:
    from datetime import date
    from provisioning_engines.aging import calculate_aging

    aging = calculate_aging(date(2024, 1, 1), date(2024, 4, 15))
    # AgingResult(days_overdue=105, months_overdue=3, date_valid=True)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from provisioning_engines.tracer import traced_engine
from provisioning_kernel.logging_config import get_logger

logger = get_logger("engines.aging")

DAYS_PER_MONTH = 30


@dataclass(frozen=True)
class AgingResult:
    """
    Delinquency aging of a contract at a reference date.

    Guarantees:
        - days_overdue >= 0 and months_overdue == days_overdue // 30.
        - date_valid is False when either input date was missing or invalid.
    """

    days_overdue: int
    months_overdue: int
    date_valid: bool = True

    def __post_init__(self) -> None:
        if self.days_overdue < 0:
            raise ValueError("days_overdue cannot be negative")
        if self.months_overdue != self.days_overdue // DAYS_PER_MONTH:
            raise ValueError("months_overdue must equal days_overdue // 30")

    @classmethod
    def from_days(cls, days_overdue: int, date_valid: bool = True) -> AgingResult:
        days = max(0, days_overdue)
        return cls(
            days_overdue=days,
            months_overdue=days // DAYS_PER_MONTH,
            date_valid=date_valid,
        )

    @property
    def is_overdue(self) -> bool:
        return self.days_overdue > 0


NOT_IN_DEFAULT = AgingResult(days_overdue=0, months_overdue=0, date_valid=True)
INVALID_DATES = AgingResult(days_overdue=0, months_overdue=0, date_valid=False)


def coerce_date(value: Any) -> date | None:
    """
    Parse ``value`` into a calendar date, or None if it is not one.

    Accepts ``date``, ``datetime`` (date part) and complete ISO-8601 strings
    (``YYYY-MM-DD`` optionally followed by a time component).  Trailing text
    after a valid date makes the whole value invalid.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return None
    return None


@traced_engine("aging", "1.0", fingerprint_fields=("default_date", "reference_date"))
def calculate_aging(default_date: Any, reference_date: Any) -> AgingResult:
    """
    Compute days and months overdue.

    Args:
        default_date: Default or last-payment date.  ``None`` means the
            contract is not in default and yields a valid zero aging.
        reference_date: The "as of" date of the calculation.

    Returns:
        AgingResult.  Invalid (present but unparseable) dates, or a missing
        reference date, produce zero aging with ``date_valid=False``.
    """
    reference = coerce_date(reference_date)
    if reference is None:
        logger.warning(
            "aging_invalid_reference_date",
            extra={"reference_date": str(reference_date)},
        )
        return INVALID_DATES

    if default_date is None or (isinstance(default_date, str) and not default_date.strip()):
        return NOT_IN_DEFAULT

    default = coerce_date(default_date)
    if default is None:
        logger.warning(
            "aging_invalid_default_date",
            extra={"default_date": str(default_date)},
        )
        return INVALID_DATES

    return AgingResult.from_days((reference - default).days)
