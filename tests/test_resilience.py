"""Tests for retry, rate limiting and the circuit breaker."""

import pytest

from dispute_resolution.utils.resilience import (
    CircuitBreaker,
    CircuitBreakerOpen,
    RateLimiter,
    RateLimitExceeded,
    RetryError,
    TTLCounterStore,
    with_retry,
)


class TestWithRetry:
    """Tests for the retry decorator."""

    def test_backoff_doubles(self):
        delays = []
        attempts = []

        @with_retry(max_attempts=3, base_delay=0.5, sleep=delays.append)
        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("down")
            return "ok"

        assert flaky() == "ok"
        assert delays == [0.5, 1.0]

    def test_exhausted_attempts(self):
        @with_retry(max_attempts=2, base_delay=0, sleep=lambda _: None)
        def always_fails():
            raise ConnectionError("down")

        with pytest.raises(RetryError) as exc_info:
            always_fails()
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_unlisted_exceptions_propagate(self):
        calls = []

        @with_retry(max_attempts=3, base_delay=0, exceptions=(ConnectionError,))
        def bad_input():
            calls.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            bad_input()
        assert len(calls) == 1


class TestRateLimiter:
    """Tests for the per-actor rate limiter."""

    def test_limit_per_actor(self):
        limiter = RateLimiter(TTLCounterStore(), limit=2, window_seconds=60)
        limiter.hit("user_001")
        limiter.hit("user_001")
        with pytest.raises(RateLimitExceeded):
            limiter.hit("user_001")
        assert limiter.hit("user_002") == 1

    def test_window_expires(self):
        now = [0.0]
        limiter = RateLimiter(TTLCounterStore(clock=lambda: now[0]), limit=1, window_seconds=60)
        limiter.hit("user_001")
        with pytest.raises(RateLimitExceeded):
            limiter.hit("user_001")

        now[0] = 61.0
        assert limiter.hit("user_001") == 1


class TestCircuitBreaker:
    """Tests for the circuit breaker."""

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=3600)

        def fail():
            raise ConnectionError("down")

        for _ in range(2):
            with pytest.raises(ConnectionError):
                breaker.call(fail)

        assert breaker.state == "open"
        with pytest.raises(CircuitBreakerOpen):
            breaker.call(lambda: "ok")

    def test_half_open_after_recovery(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        with pytest.raises(ConnectionError):
            breaker.call(lambda: (_ for _ in ()).throw(ConnectionError("down")))

        assert breaker.state == "half-open"
        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == "closed"

    def test_reset(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=3600)
        with pytest.raises(ConnectionError):
            breaker.call(lambda: (_ for _ in ()).throw(ConnectionError("down")))
        breaker.reset()
        assert breaker.call(lambda: "ok") == "ok"
