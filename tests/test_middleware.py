"""
Tests for the fixed-window rate limiter.
"""

import pytest

from conversion_backend.errors import RateLimited
from conversion_backend.middleware import RateLimiter


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


def test_allows_up_to_limit(clock):
    limiter = RateLimiter(requests_per_minute=3, clock=clock)
    assert [limiter.is_allowed("alice") for _ in range(4)] == [True, True, True, False]


def test_owners_are_counted_separately(clock):
    limiter = RateLimiter(requests_per_minute=1, clock=clock)
    assert limiter.is_allowed("alice")
    assert limiter.is_allowed("bob")
    assert not limiter.is_allowed("alice")


def test_window_resets(clock):
    limiter = RateLimiter(requests_per_minute=1, clock=clock)
    limiter.check("alice")
    with pytest.raises(RateLimited):
        limiter.check("alice")

    clock.now += RateLimiter.WINDOW_SECONDS
    limiter.check("alice")


def test_cleanup_drops_expired_windows(clock):
    limiter = RateLimiter(requests_per_minute=5, clock=clock)
    limiter.is_allowed("old")
    clock.now += 30
    limiter.is_allowed("recent")
    clock.now += 31

    limiter.cleanup()
    assert set(limiter.requests) == {"recent"}
