"""
Logical clock for time-lock and canary interval gating.

All time comparisons in the ledger use integer epoch seconds from a single
Clock, read once per transaction. Clocks never report a value smaller than
one they have already reported.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Optional


class Clock(ABC):
    """Source of monotonically non-decreasing epoch seconds."""

    @abstractmethod
    def now(self) -> int:
        pass


class SystemClock(Clock):
    """
    Wall clock with backward steps clamped away.

    If the system time moves backwards (NTP adjustment, VM resume), the last
    reported value is returned until wall time catches up.
    """

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        wall = int(time.time())
        with self._lock:
            if wall > self._last:
                self._last = wall
            return self._last


class ManualClock(Clock):
    """Clock driven explicitly; used by tests and simulations."""

    def __init__(self, start: Optional[int] = None):
        self._now = int(time.time()) if start is None else int(start)
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now += int(seconds)
            return self._now

    def set(self, timestamp: int) -> int:
        with self._lock:
            if timestamp < self._now:
                raise ValueError("ManualClock cannot move backwards")
            self._now = int(timestamp)
            return self._now
