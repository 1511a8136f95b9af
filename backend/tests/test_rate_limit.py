"""Tests for the login rate limiter."""
from stagebox.auth.rate_limit import InMemoryRateLimiter, RateDecision


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_sixth_attempt_in_window_is_limited():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(max_attempts=5, window_seconds=60, clock=clock)

    decisions = [limiter.check_and_record("10.0.0.1") for _ in range(6)]

    assert decisions[:5] == [RateDecision.ALLOWED] * 5
    assert decisions[5] == RateDecision.LIMITED


def test_fresh_window_allows_again():
    """After the window has passed the first attempt is allowed and starts a new count."""
    clock = FakeClock()
    limiter = InMemoryRateLimiter(max_attempts=5, window_seconds=60, clock=clock)
    for _ in range(7):
        limiter.check_and_record("10.0.0.1")

    clock.now += 60

    assert limiter.allow("10.0.0.1") is True
    for _ in range(4):
        assert limiter.allow("10.0.0.1") is True
    assert limiter.allow("10.0.0.1") is False


def test_identities_are_counted_separately():
    limiter = InMemoryRateLimiter(max_attempts=1, window_seconds=60, clock=FakeClock())

    assert limiter.allow("a") is True
    assert limiter.allow("a") is False
    assert limiter.allow("b") is True


def test_reset_forgets_attempts():
    limiter = InMemoryRateLimiter(max_attempts=1, window_seconds=60, clock=FakeClock())
    limiter.allow("a")
    limiter.allow("a")

    limiter.reset()

    assert limiter.allow("a") is True


class TestExpiredWindowEviction:
    """Windows of identities that never come back are dropped."""

    def test_one_window_left_after_long_idle(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(max_attempts=5, window_seconds=60, clock=clock)
        for i in range(1000):
            limiter.check_and_record(f"10.0.{i // 256}.{i % 256}")

        clock.now += 10_000
        limiter.check_and_record("192.168.1.1")

        assert len(limiter._windows) == 1
        assert "192.168.1.1" in limiter._windows

    def test_live_windows_survive_a_sweep(self):
        """A sweep keeps counts of windows that have not expired yet."""
        clock = FakeClock()
        limiter = InMemoryRateLimiter(max_attempts=2, window_seconds=60, clock=clock)
        limiter.check_and_record("old")
        clock.now += 30
        limiter.check_and_record("recent")
        limiter.check_and_record("recent")

        clock.now += 40
        limiter.check_and_record("other")

        assert "old" not in limiter._windows
        assert limiter.allow("recent") is False
