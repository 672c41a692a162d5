"""
Injectable time source.

Domain and service code never read the wall clock directly: stage history
timestamps, actual start/end dates and settlement timestamps all come from
a ``Clock`` passed in by the caller. ``SystemClock`` is the only place the
kernel touches real time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Early morning on the first day of the spring harvest.
DEFAULT_TEST_TIME = datetime(2024, 4, 1, 6, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    ``now()`` keeps returning the same instant until ``advance``, ``tick``
    or ``set_time`` is called, so tests can assert exact timestamps.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = moment

    def advance(self, seconds: int | float | timedelta = 1) -> datetime:
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        self._current += step
        return self._current

    def tick(self) -> datetime:
        return self.advance(1)
