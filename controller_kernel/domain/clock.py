"""
Clock -- injectable source of the current time.

Services stamp report metadata and applied budget rows with ``now()``;
engines never ask for the time.  Tests pass a ``DeterministicClock`` so
``generated_at`` values are byte-stable.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from controller_kernel.domain.periods import Period


class Clock(ABC):
    """Source of timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def current_period(self) -> Period:
        """The (year, month) the clock currently falls in."""
        moment = self.now()
        return (moment.year, moment.month)


class SystemClock(Clock):
    """Wall-clock UTC time; the only place the kernel reads the system clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Fixed clock for tests.

    ``now()`` keeps returning the same instant until ``advance()`` or
    ``set_time()`` moves it.
    """

    DEFAULT = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._base = fixed_time or self.DEFAULT
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._base + self._offset

    def set_time(self, time: datetime) -> None:
        self._base = time
        self._offset = timedelta(0)

    def advance(self, seconds: int = 1, days: int = 0) -> None:
        self._offset += timedelta(days=days, seconds=seconds)
