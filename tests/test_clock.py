"""Tests for the injectable clock (provisioning_kernel/domain/clock.py)."""

from datetime import UTC, date, datetime, timedelta, timezone

from provisioning_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:
    def test_now_is_stable_until_advanced(self):
        clock = DeterministicClock(datetime(2025, 6, 30, 12, 0, tzinfo=UTC))

        assert clock.now() == clock.now()
        clock.advance(90)
        assert clock.now() == datetime(2025, 6, 30, 12, 1, 30, tzinfo=UTC)

    def test_advance_days_moves_reference_date(self):
        clock = DeterministicClock(datetime(2025, 6, 30, 12, 0, tzinfo=UTC))

        clock.advance_days(2)

        assert clock.today() == date(2025, 7, 2)

    def test_today_uses_brasilia_date(self):
        # 01:30 UTC on July 1st is still June 30th in Brasilia
        clock = DeterministicClock(datetime(2025, 7, 1, 1, 30, tzinfo=UTC))

        assert clock.today() == date(2025, 6, 30)

    def test_offset_start_normalized_to_utc(self):
        start = datetime(2025, 6, 30, 9, 0, tzinfo=timezone(timedelta(hours=-3)))

        now = DeterministicClock(start).now()

        assert now == datetime(2025, 6, 30, 12, 0, tzinfo=UTC)
        assert now.utcoffset() == timedelta(0)

    def test_naive_start_taken_as_utc(self):
        clock = DeterministicClock(datetime(2025, 6, 30, 12, 0))

        assert clock.now().tzinfo is not None


class TestSystemClock:
    def test_now_is_aware_utc(self):
        assert SystemClock().now().utcoffset() == timedelta(0)
