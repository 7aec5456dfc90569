"""
Clock -- injectable source of "now" for governance timestamps.

Responsibility:
    Every timestamp the kernel persists (``entered_at`` on quantity records,
    ``marked_at`` / ``cleared_at`` on unbalance decisions, ``occurred_at`` on
    audit events, ``variance_computed_at``) is read from a Clock handed to
    the service constructor.

Architecture position:
    Kernel > Domain.  SystemClock is the only place wall time enters.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_DEFAULT_START = datetime(2025, 3, 3, 8, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Time source.  ``now()`` is always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests and replays.

    Time only moves when ``advance()`` is called, so two writes in the same
    test share a timestamp unless the test says otherwise.
    """

    def __init__(self, start: datetime | None = None):
        if start is not None and start.tzinfo is None:
            raise ValueError("DeterministicClock needs an aware start time")
        self._current = (start or _DEFAULT_START).astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        """Move forward by ``seconds`` and return the new time."""
        self._current += timedelta(seconds=seconds)
        return self._current
