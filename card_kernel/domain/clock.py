"""
Clock -- injectable time source.

Validation, posting and batch code never call ``datetime.now()`` or
``date.today()`` directly: processed_timestamp, rejected_at, run start/end
and the default processing date all come from a Clock, so a run can be
replayed against a fixed time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """``now()`` is timezone-aware; ``today()`` is its calendar date."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Fixed clock for tests and replays.

    ``now()`` returns the same instant until ``advance()`` moves it.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        """Move the clock forward and return the new time."""
        self._current += timedelta(seconds=seconds)
        return self._current
