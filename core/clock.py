"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Provides a testable clock abstraction for lifecycle timestamps.

- The orchestrator stamps init/destroy times through an injected clock
- Tests inject MockClock to get deterministic timestamps

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
import threading
import time


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the runtime clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    @abstractmethod
    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        pass


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """
    Production clock using actual system time.

    All times are in UTC.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return time.time()


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Allows time manipulation for deterministic tests. With
    ``auto_advance`` set, every read moves time forward, so
    successive timestamps are strictly increasing.
    """

    def __init__(
        self,
        initial_time: Optional[datetime] = None,
        auto_advance: Optional[timedelta] = None,
    ):
        """
        Initialize mock clock.

        Args:
            initial_time: Starting time (defaults to current UTC)
            auto_advance: Step applied after every ``now()`` call
        """
        self._time = initial_time or datetime.now(timezone.utc)
        self._auto_advance = auto_advance
        self._lock = threading.Lock()

    def now(self) -> datetime:
        """Get current (mocked) datetime."""
        with self._lock:
            current = self._time
            if self._auto_advance:
                self._time = self._time + self._auto_advance
            return current

    def timestamp(self) -> float:
        """Get current (mocked) timestamp."""
        return self.now().timestamp()


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
]
