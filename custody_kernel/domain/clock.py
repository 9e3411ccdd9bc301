"""
Injected time source.

Services never call ``datetime.now()``; every stamp they write (approval,
gate verification, return, notification, audit) comes from the ``Clock``
they were built with.  ``SystemClock`` is the production source and
``DeterministicClock`` pins time for tests.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Returns timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock that only moves when told to.

    ``now()`` keeps returning the same instant until ``advance()`` is
    called.  Shared by the worker threads of concurrency tests, so reads
    and moves are guarded by a lock.
    """

    def __init__(self, start: datetime | None = None):
        start = start or DEFAULT_START
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start")
        self._current = start.astimezone(timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def advance(self, seconds: float = 1) -> datetime:
        """Move forward by ``seconds`` and return the new instant."""
        with self._lock:
            self._current += timedelta(seconds=seconds)
            return self._current
