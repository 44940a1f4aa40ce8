"""Tests for the injectable clock (payroll_kernel/domain/clock.py)."""

from datetime import date, datetime, timedelta, timezone

import pytest

from payroll_kernel.domain.clock import DeterministicClock, SystemClock

MANILA = timezone(timedelta(hours=8))


class TestDeterministicClock:

    def test_frozen_until_moved(self):
        clock = DeterministicClock(datetime(2026, 1, 16, 9, 0, tzinfo=timezone.utc))

        assert clock.now() == clock.now()
        clock.set_time(datetime(2026, 1, 17, 9, 0, tzinfo=timezone.utc))
        assert clock.today() == date(2026, 1, 17)

    def test_naive_time_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2026, 1, 16, 9, 0))

    def test_business_date_uses_business_timezone(self):
        late_utc = datetime(2026, 1, 18, 17, 0, tzinfo=timezone.utc)

        assert DeterministicClock(late_utc).today() == date(2026, 1, 18)
        assert DeterministicClock(late_utc, business_tz=MANILA).today() == date(2026, 1, 19)


class TestSystemClock:

    def test_aware_utc(self):
        assert SystemClock().now().tzinfo is timezone.utc
