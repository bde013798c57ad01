"""
Tests for the fixed-window Rate Limiter.

A settable clock drives window expiry.
"""

from datetime import UTC, datetime

import pytest

from gateway.exceptions import RateLimitedError
from gateway.services.rate_limit import FixedWindowRateLimiter, normalize_ip


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_limiter(clock: FakeClock, max_requests: int = 5, skip_successful: bool = False):
    return FixedWindowRateLimiter(
        name="test",
        window_seconds=900,
        max_requests=max_requests,
        message="Too many authentication attempts, please try again later.",
        skip_successful_requests=skip_successful,
        clock=clock,
    )


class TestNormalizeIp:
    """Tests for normalize_ip()."""

    def test_ipv4_mapped_collapses(self):
        assert normalize_ip("::ffff:10.0.0.1") == "10.0.0.1"

    def test_plain_ipv4_unchanged(self):
        assert normalize_ip("10.0.0.1") == "10.0.0.1"

    def test_ipv6_unchanged(self):
        assert normalize_ip("2001:db8::1") == "2001:db8::1"

    @pytest.mark.parametrize("ip", [None, ""])
    def test_missing_ip(self, ip):
        assert normalize_ip(ip) == "unknown"


class TestHit:
    """Tests for hit()."""

    async def test_requests_within_limit_pass(self, clock: FakeClock):
        limiter = make_limiter(clock)

        states = [await limiter.hit("10.0.0.1") for _ in range(5)]

        assert [state.remaining for state in states] == [4, 3, 2, 1, 0]

    async def test_request_past_limit_rejected(self, clock: FakeClock):
        """The sixth request in the window is rejected with the window end."""
        limiter = make_limiter(clock)
        for _ in range(5):
            await limiter.hit("10.0.0.1")

        with pytest.raises(RateLimitedError) as exc_info:
            await limiter.hit("10.0.0.1")

        assert exc_info.value.status_code == 429
        assert exc_info.value.reset_at == datetime.fromtimestamp(clock.now + 900, UTC)
        assert exc_info.value.message == "Too many authentication attempts, please try again later."

    async def test_keys_are_independent(self, clock: FakeClock):
        limiter = make_limiter(clock, max_requests=1)
        await limiter.hit("10.0.0.1")

        state = await limiter.hit("10.0.0.2")

        assert state.remaining == 0

    async def test_ipv4_mapped_and_plain_share_a_window(self, clock: FakeClock):
        limiter = make_limiter(clock, max_requests=1)
        await limiter.hit(normalize_ip("::ffff:10.0.0.1"))

        with pytest.raises(RateLimitedError):
            await limiter.hit(normalize_ip("10.0.0.1"))

    async def test_window_expiry_resets_count(self, clock: FakeClock):
        limiter = make_limiter(clock, max_requests=1)
        await limiter.hit("10.0.0.1")

        clock.advance(900)
        state = await limiter.hit("10.0.0.1")

        assert state.remaining == 0

    async def test_window_does_not_slide(self, clock: FakeClock):
        """Rejected requests do not extend the window."""
        limiter = make_limiter(clock, max_requests=1)
        await limiter.hit("10.0.0.1")
        clock.advance(899)
        with pytest.raises(RateLimitedError):
            await limiter.hit("10.0.0.1")

        clock.advance(1)
        await limiter.hit("10.0.0.1")

    def test_invalid_configuration(self, clock: FakeClock):
        with pytest.raises(ValueError):
            make_limiter(clock, max_requests=0)


class TestAttempt:
    """Tests for attempt() with skip_successful_requests."""

    async def test_successful_attempts_do_not_count(self, clock: FakeClock):
        limiter = make_limiter(clock, skip_successful=True)

        for _ in range(10):
            async with limiter.attempt("10.0.0.1"):
                pass

        state = await limiter.hit("10.0.0.1")
        assert state.remaining == 4

    async def test_failed_attempts_count(self, clock: FakeClock):
        """Five failures exhaust the window; the sixth attempt is rejected."""
        limiter = make_limiter(clock, skip_successful=True)

        for _ in range(5):
            with pytest.raises(ValueError):
                async with limiter.attempt("10.0.0.1"):
                    raise ValueError("bad password")

        with pytest.raises(RateLimitedError):
            async with limiter.attempt("10.0.0.1"):
                pass

    async def test_attempt_counts_without_skip(self, clock: FakeClock):
        limiter = make_limiter(clock, max_requests=2)

        async with limiter.attempt("10.0.0.1"):
            pass
        async with limiter.attempt("10.0.0.1"):
            pass

        with pytest.raises(RateLimitedError):
            await limiter.hit("10.0.0.1")


class TestReset:
    """Tests for reset()."""

    async def test_reset_forgets_windows(self, clock: FakeClock):
        limiter = make_limiter(clock, max_requests=1)
        await limiter.hit("10.0.0.1")

        limiter.reset()

        assert (await limiter.hit("10.0.0.1")).remaining == 0
