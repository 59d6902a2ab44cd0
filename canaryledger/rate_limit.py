"""
Per-caller request throttling for the HTTP surface.

Each caller identity gets a sliding window of recent request timestamps.
This limits request volume only; the canary's minimum update interval is a
ledger rule enforced in canary.py against the ledger clock.
"""

import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional


@dataclass
class RateLimitResult:
    """Outcome of one throttling decision."""
    allowed: bool
    remaining: int
    reset_at: float
    retry_after: Optional[float] = None


class RateLimiter:
    """
    Sliding window limiter keyed by caller identity.

    Usage:
        limiter = RateLimiter(config.STORE_RPM)
        if not limiter.check(caller).allowed:
            ...reject with 429...
    """

    def __init__(
        self,
        rpm: int,
        window_seconds: int = 60,
        time_source: Callable[[], float] = time.time,
        cleanup_every: int = 1000
    ):
        """
        Args:
            rpm: Requests allowed per caller per window
            window_seconds: Window length in seconds
            time_source: Returns the current time in seconds; tests pass the ledger clock
            cleanup_every: Prune idle callers after this many checks
        """
        self.limit = max(1, rpm)
        self.window = window_seconds
        self.cleanup_every = max(1, cleanup_every)
        self._now = time_source
        self._windows: Dict[str, Deque[float]] = defaultdict(deque)
        self._checks = 0
        self._lock = threading.RLock()

    def _expire(self, hits: Deque[float], now: float) -> int:
        expired = 0
        while hits and hits[0] <= now - self.window:
            hits.popleft()
            expired += 1
        return expired

    def check(self, caller: str) -> RateLimitResult:
        """Record a request from caller if it fits in the window."""
        now = self._now()
        with self._lock:
            self._checks += 1
            if self._checks % self.cleanup_every == 0:
                self.cleanup_expired()

            hits = self._windows[caller]
            self._expire(hits, now)
            reset_at = (hits[0] if hits else now) + self.window

            if len(hits) >= self.limit:
                return RateLimitResult(False, 0, reset_at, retry_after=max(0, reset_at - now))

            hits.append(now)
            return RateLimitResult(True, self.limit - len(hits), reset_at)

    def cleanup_expired(self) -> int:
        """Drop expired timestamps and idle callers; returns timestamps dropped."""
        now = self._now()
        with self._lock:
            dropped = sum(self._expire(hits, now) for hits in self._windows.values())
            for caller in [c for c, hits in self._windows.items() if not hits]:
                del self._windows[caller]
        return dropped
