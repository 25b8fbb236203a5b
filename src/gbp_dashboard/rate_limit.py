"""
Fixed-window request limiting per user
"""
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from . import config

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check"""
    success: bool
    limit: int
    remaining: int
    reset: int  # epoch seconds when the window resets
    headers: Dict[str, str] = field(default_factory=dict)


class MemoryRateLimiter:
    """
    In-memory fixed window limiter

    Each key gets `limit` requests per `window_seconds`; the window starts
    with the first request after the previous one expired.
    """

    def __init__(
        self,
        limit: Optional[int] = None,
        window_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time
    ):
        self.limit = limit or config.RATE_LIMIT_CONFIG["requests"]
        self.window_seconds = window_seconds or config.RATE_LIMIT_CONFIG["window_seconds"]
        self.clock = clock
        self._store: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def _increment(self, key: str) -> Tuple[int, float]:
        now = self.clock()
        count, reset_time = self._store.get(key, (0, 0.0))
        if reset_time <= now:
            count, reset_time = 0, now + self.window_seconds
        count += 1
        self._store[key] = (count, reset_time)
        return count, reset_time

    def check(self, user_id: str) -> RateLimitResult:
        """Count a request for a user and report whether it is allowed"""
        key = f"ratelimit:{user_id}"
        with self._lock:
            count, reset_time = self._increment(key)

        remaining = max(0, self.limit - count)
        success = count <= self.limit
        reset = int(math.floor(reset_time))

        if not success:
            logger.warning(f"Rate limit exceeded for {user_id}")

        return RateLimitResult(
            success=success,
            limit=self.limit,
            remaining=remaining,
            reset=reset,
            headers={
                "X-RateLimit-Limit": str(self.limit),
                "X-RateLimit-Remaining": str(remaining),
                "X-RateLimit-Reset": str(reset),
            },
        )

    def cleanup(self) -> int:
        """Drop expired windows, returns number removed"""
        now = self.clock()
        with self._lock:
            expired = [k for k, (_, reset) in self._store.items() if reset <= now]
            for k in expired:
                del self._store[k]
        return len(expired)

    def reset(self, user_id: Optional[str] = None):
        with self._lock:
            if user_id is None:
                self._store.clear()
            else:
                self._store.pop(f"ratelimit:{user_id}", None)


_default_limiter: Optional[MemoryRateLimiter] = None


def check_rate_limit(user_id: str) -> RateLimitResult:
    """Check the shared process-wide limiter"""
    global _default_limiter
    if _default_limiter is None:
        _default_limiter = MemoryRateLimiter()
    return _default_limiter.check(user_id)
