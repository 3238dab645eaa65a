"""
In-memory fixed-window rate limiter for the batch sync endpoint.

Counts are per process, so a multi-worker deployment gets one window per
worker.
"""
import math
import threading
import time
from dataclasses import dataclass

CLEANUP_INTERVAL_SECONDS = 60


@dataclass
class RateLimitResult:
    success: bool
    remaining: int
    reset_at: float  # epoch seconds


class RateLimiter:
    def __init__(self, clock=time.time):
        self._clock = clock
        self._windows = {}  # key -> [count, reset_at]
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def _cleanup(self, now):
        if now - self._last_cleanup < CLEANUP_INTERVAL_SECONDS:
            return
        self._last_cleanup = now
        for key in [k for k, (_, reset_at) in self._windows.items() if reset_at < now]:
            del self._windows[key]

    def check(self, key: str, limit: int, window_seconds: float = 60) -> RateLimitResult:
        """
        Count one request against key.

        Args:
            key: Unique identifier (e.g., "sync:<ip>")
            limit: Max requests allowed in the window
            window_seconds: Window length
        """
        with self._lock:
            now = self._clock()
            self._cleanup(now)

            entry = self._windows.get(key)
            if entry is None or entry[1] < now:
                reset_at = now + window_seconds
                self._windows[key] = [1, reset_at]
                return RateLimitResult(True, limit - 1, reset_at)

            if entry[0] >= limit:
                return RateLimitResult(False, 0, entry[1])

            entry[0] += 1
            return RateLimitResult(True, limit - entry[0], entry[1])

    def headers(self, key: str, limit: int, window_seconds: float = 60):
        """
        Rate-limit check for API routes.

        Returns:
            tuple: (limited, headers) with X-RateLimit-* headers, plus
                   Retry-After when limited
        """
        result = self.check(key, limit, window_seconds)
        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(math.ceil(result.reset_at)),
        }
        if not result.success:
            headers["Retry-After"] = str(max(0, math.ceil(result.reset_at - self._clock())))
        return not result.success, headers

    def reset(self):
        with self._lock:
            self._windows.clear()


# Global instance - create once and reuse
limiter = RateLimiter()


def rate_limit_headers(key, limit, window_seconds=60):
    return limiter.headers(key, limit, window_seconds)
