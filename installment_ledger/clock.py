"""
Clock Module

Injectable time source. Lifecycle and summary code ask a Clock for "now"
instead of calling ``datetime.now()`` so tests can move time deterministically.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Abstract time source returning timezone-aware datetimes"""

    @abstractmethod
    def now(self) -> datetime:
        """Current time"""
        pass

    def today(self) -> date:
        """Current calendar date"""
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at a given instant until moved explicitly.

    Used by tests to simulate the passage of time between payments.
    """

    def __init__(self, fixed_time: Optional[datetime] = None):
        self._time = fixed_time or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set_time(self, value: datetime) -> None:
        self._time = value

    def set_date(self, value: date) -> None:
        """Move to noon UTC on the given date"""
        self._time = datetime(value.year, value.month, value.day, 12, 0, 0, tzinfo=timezone.utc)

    def advance(self, days: int = 0, seconds: int = 0) -> datetime:
        self._time = self._time + timedelta(days=days, seconds=seconds)
        return self._time
