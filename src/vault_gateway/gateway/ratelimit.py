"""Fixed-window request counter keyed by caller identity."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class RateLimitRecord:
    """Counter for one key inside its current window."""

    count: int
    window_reset_at: float


class FixedWindowRateLimiter:
    """Fixed-window rate limiter.

    WARNING: process-local. With several workers each keeps its own
    counters, so the effective limit becomes ``max_requests * workers``.
    """

    _CLEANUP_INTERVAL: float = 60.0  # Run cleanup at most every 60 seconds

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._records: dict[str, RateLimitRecord] = {}
        self._clock = clock
        self._lock = threading.Lock()
        self._last_cleanup: float = clock()

    def allow(self, key: str, max_requests: int, window_seconds: float) -> bool:
        """Admit or deny one request for ``key``; admitted requests use a slot."""
        with self._lock:
            now = self._clock()

            if now - self._last_cleanup > self._CLEANUP_INTERVAL:
                self._cleanup_expired_unlocked(now)
                self._last_cleanup = now

            record = self._records.get(key)
            if record is None or now > record.window_reset_at:
                self._records[key] = RateLimitRecord(count=1, window_reset_at=now + window_seconds)
                return True

            if record.count >= max_requests:
                return False

            record.count += 1
            return True

    def retry_after(self, key: str) -> int:
        """Whole seconds until ``key``'s current window closes (at least 1)."""
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return 0
            remaining = record.window_reset_at - self._clock()
        return max(1, math.ceil(remaining))

    def _cleanup_expired_unlocked(self, now: float) -> None:
        """Drop records whose window has closed. Must be called under lock."""
        expired = [key for key, record in self._records.items() if now > record.window_reset_at]
        for key in expired:
            del self._records[key]

    def __len__(self) -> int:
        return len(self._records)
