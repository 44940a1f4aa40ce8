"""
Clock -- injectable time source.

Responsibility:
    Services never call ``datetime.now()`` or ``date.today()``.  Ledger
    timestamps, calculation times and the adjustment-deadline check all
    read an injected Clock.

Architecture position:
    Kernel > Domain -- pure; ``SystemClock`` is the only place real time
    enters the kernel.

Invariants enforced:
    - ``now()`` is timezone-aware.
    - ``today()`` is the calendar date in the clock's business timezone,
      not in UTC.  Payroll deadlines are local dates: 01:00 in Manila on
      the 19th is already past a deadline of the 18th even though UTC
      still reads the 18th.

Audit relevance:
    A fixed clock makes ledger hashes and stored timestamps reproducible.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timezone, tzinfo


class Clock(ABC):
    """Time source with a business timezone for calendar dates."""

    def __init__(self, business_tz: tzinfo = timezone.utc):
        self.business_tz = business_tz

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """Current business date."""
        return self.now().astimezone(self.business_tz).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Clock frozen at a given instant until ``set_time`` moves it."""

    def __init__(
        self,
        fixed_time: datetime | None = None,
        business_tz: tzinfo = timezone.utc,
    ):
        super().__init__(business_tz)
        self._now = fixed_time or datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
        if self._now.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")

    def now(self) -> datetime:
        return self._now

    def set_time(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")
        self._now = moment
