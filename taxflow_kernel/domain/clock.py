"""
Clock -- injectable source of "now" for services and jobs.

Responsibility:
    Deadline classification, escalation thresholds, lease expiry and the
    archival cutoff all compare against the current time.  They read it
    from a Clock passed in at construction, never from ``datetime.now()``
    directly, so a test can pin the date a filing is evaluated on.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the only place that reads the
    wall clock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Source of timezone-aware timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def now_utc(self) -> datetime:
        """``now()`` normalised to UTC; calendar-day rules use this."""
        return self.now().astimezone(timezone.utc)


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests and dry runs.

    ``now()`` returns the same instant until the test moves it with
    ``advance()`` or jumps with ``set_time()``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._time = fixed_time or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        self._time = time

    def advance(
        self,
        seconds: float = 0,
        *,
        minutes: float = 0,
        hours: float = 0,
        days: float = 0,
    ) -> datetime:
        """Move forward and return the new time."""
        self._time += timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
        return self._time
