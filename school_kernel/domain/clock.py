"""
Clock -- injectable time source.

Responsibility:
    Services that stamp the phase ledger and the run lock receive a Clock
    instead of calling ``datetime.now()`` directly, so tests can pin the
    recorded times.

Architecture position:
    Kernel > Domain -- zero I/O (except SystemClock, the one sanctioned
    boundary for time).
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock that returns actual system time (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Test clock pinned to one instant."""

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._fixed_time
