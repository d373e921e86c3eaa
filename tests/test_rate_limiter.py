"""
Fixed-Interval Rate Limiter Tests

Tests that:
1. The first acquire never waits
2. Back-to-back acquires wait out the remainder of the interval
3. Acquires spaced further apart than the interval do not wait
4. Negative intervals are rejected

A fake clock and sleep make the timing deterministic.

Run with: pytest tests/test_rate_limiter.py -v
"""

import pytest

from mindboat_push.services.rate_limiter import FixedIntervalRateLimiter


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _limiter(interval: float, clock: FakeClock) -> FixedIntervalRateLimiter:
    return FixedIntervalRateLimiter(interval, clock=clock, sleep=clock.sleep)


class TestFixedIntervalRateLimiter:

    @pytest.mark.asyncio
    async def test_first_acquire_does_not_wait(self):
        clock = FakeClock()
        await _limiter(0.05, clock).acquire()
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_consecutive_acquires_are_spaced(self):
        clock = FakeClock()
        limiter = _limiter(0.05, clock)
        for _ in range(4):
            await limiter.acquire()
        assert clock.sleeps == pytest.approx([0.05, 0.05, 0.05])

    @pytest.mark.asyncio
    async def test_partial_wait_when_time_already_passed(self):
        clock = FakeClock()
        limiter = _limiter(0.05, clock)
        await limiter.acquire()
        clock.now += 0.03
        await limiter.acquire()
        assert clock.sleeps == pytest.approx([0.02])

    @pytest.mark.asyncio
    async def test_no_wait_after_long_gap(self):
        clock = FakeClock()
        limiter = _limiter(0.05, clock)
        await limiter.acquire()
        clock.now += 1.0
        await limiter.acquire()
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_zero_interval_never_waits(self):
        clock = FakeClock()
        limiter = _limiter(0, clock)
        for _ in range(3):
            await limiter.acquire()
        assert clock.sleeps == []

    def test_from_milliseconds(self):
        assert FixedIntervalRateLimiter.from_milliseconds(50).interval == pytest.approx(0.05)

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError):
            FixedIntervalRateLimiter(-1)
