"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that schedulers, executors, handlers and
    module services never call ``datetime.now()`` or ``date.today()``
    directly.

Architecture position:
    Kernel > Domain -- pure, zero I/O (except SystemClock, the one
    sanctioned boundary for wall-clock time).

Audit relevance:
    Execution timestamps, invoice dates and next-run times are all traceable
    to an injected Clock instance, which makes schedule arithmetic
    reproducible in tests.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Every service that needs the current time receives a Clock via
        constructor injection.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def today(self) -> date:
        """Get the current calendar date."""
        return self.now().date()


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Guarantees:
        Returns timezone-aware UTC ``datetime`` instances.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - The tz-awareness of the supplied time is preserved, so tests on
          SQLite can run with naive datetimes.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def advance_days(self, days: int) -> None:
        """Advance the clock by whole days."""
        self.advance(days * 86400)
