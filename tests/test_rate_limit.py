"""
Tests for the fixed-window rate limiter
"""
import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gbp_dashboard import rate_limit
from gbp_dashboard.rate_limit import MemoryRateLimiter, check_rate_limit


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.mark.unit
class TestMemoryRateLimiter:

    def test_defaults_from_config(self):
        limiter = MemoryRateLimiter()
        assert limiter.limit == 100
        assert limiter.window_seconds == 900

    def test_allows_until_limit(self):
        clock = FakeClock()
        limiter = MemoryRateLimiter(limit=3, window_seconds=60, clock=clock)

        results = [limiter.check("u1") for _ in range(4)]

        assert [r.success for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[0].reset == 1060

    def test_headers(self):
        limiter = MemoryRateLimiter(limit=5, window_seconds=60, clock=FakeClock())
        result = limiter.check("u1")
        assert result.headers == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "4",
            "X-RateLimit-Reset": "1060",
        }

    def test_window_resets(self):
        clock = FakeClock()
        limiter = MemoryRateLimiter(limit=1, window_seconds=60, clock=clock)
        assert limiter.check("u1").success
        assert not limiter.check("u1").success

        clock.now += 61
        assert limiter.check("u1").success

    def test_users_are_independent(self):
        limiter = MemoryRateLimiter(limit=1, window_seconds=60, clock=FakeClock())
        assert limiter.check("u1").success
        assert limiter.check("u2").success
        assert not limiter.check("u1").success

    def test_cleanup_drops_expired(self):
        clock = FakeClock()
        limiter = MemoryRateLimiter(limit=5, window_seconds=60, clock=clock)
        limiter.check("u1")
        clock.now += 30
        limiter.check("u2")

        clock.now += 31
        assert limiter.cleanup() == 1
        assert limiter.cleanup() == 0

    def test_reset_single_user(self):
        limiter = MemoryRateLimiter(limit=1, window_seconds=60, clock=FakeClock())
        limiter.check("u1")
        limiter.check("u2")
        limiter.reset("u1")
        assert limiter.check("u1").success
        assert not limiter.check("u2").success

    def test_shared_limiter(self, monkeypatch):
        monkeypatch.setattr(rate_limit, "_default_limiter", MemoryRateLimiter(limit=1, window_seconds=60))
        assert check_rate_limit("u1").success
        assert not check_rate_limit("u1").success
