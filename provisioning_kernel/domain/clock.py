"""
Clock -- Injectable source of calculation timestamps and reference dates.

Responsibility:
    Services stamp ``calculated_at``, ``alerted_at`` and ``read_at`` and pick
    the default "as of" date through a Clock, never through ``datetime.now()``
    or ``date.today()``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Audit relevance:
    A daily batch replayed with a DeterministicClock reproduces the same
    reference dates and timestamps as the original run.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

# Brasilia time.  Brazil has not observed daylight saving since 2019.
BUSINESS_TIMEZONE = timezone(timedelta(hours=-3), "BRT")


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``today()`` is the calendar date of ``now()`` in Brasilia time, the
          default reference date of a recalculation.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().astimezone(BUSINESS_TIMEZONE).date()


class SystemClock(Clock):
    """Wall-clock time. Not suitable for replay or tests."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test and replay clock.

    ``now()`` returns the same value until ``advance()`` or
    ``advance_days()`` moves it; a naive start time is taken as UTC.
    """

    def __init__(self, start: datetime | None = None):
        start = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._start = start.astimezone(timezone.utc)
        self._elapsed = timedelta(0)

    def now(self) -> datetime:
        return self._start + self._elapsed

    def advance(self, seconds: int = 1) -> None:
        self._elapsed += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        """Move to the same time on a later day (next daily recalculation)."""
        self._elapsed += timedelta(days=days)
