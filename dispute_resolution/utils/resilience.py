"""Resilience utilities - retries, per-actor rate limiting, circuit breaker."""

import time
import functools
from typing import Callable, Protocol, TypeVar, ParamSpec
from threading import Lock

from dispute_resolution.utils.logging import get_logger


P = ParamSpec("P")
T = TypeVar("T")

logger = get_logger("resilience")


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


class CircuitBreakerOpen(Exception):
    """Raised when circuit breaker is open."""
    pass


class RateLimitExceeded(Exception):
    """Raised when an actor exceeds the rate limit."""
    pass


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 0.5,
    exceptions: tuple = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator for retry with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        base_delay: Delay before the second attempt, doubled each time (seconds)
        exceptions: Tuple of exceptions to catch and retry
        sleep: Sleep function, replaceable in tests
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            last_exception = None

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        sleep_time = base_delay * (2 ** attempt)
                        logger.warning(
                            f"Attempt {attempt + 1}/{max_attempts} failed for {func.__name__}: {e}. "
                            f"Retrying in {sleep_time:.1f}s"
                        )
                        if sleep_time > 0:
                            sleep(sleep_time)
                    else:
                        logger.error(
                            f"All {max_attempts} attempts failed for {func.__name__}"
                        )

            raise RetryError(
                f"All {max_attempts} attempts failed: {last_exception}"
            ) from last_exception

        return wrapper
    return decorator


class CounterStore(Protocol):
    """Shared counter store with per-key expiry."""

    def incr(self, key: str, ttl_seconds: int) -> int:
        """Increment a counter, starting a new TTL window when the key is absent."""
        ...


class TTLCounterStore:
    """In-process counter store with fixed-window expiry.

    Suitable for a single worker; deployments with several workers inject a
    shared store implementing the same ``incr`` contract.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._counters: dict[str, tuple[int, float]] = {}
        self._lock = Lock()

    def incr(self, key: str, ttl_seconds: int) -> int:
        with self._lock:
            now = self._clock()
            count, expires_at = self._counters.get(key, (0, 0.0))
            if expires_at <= now:
                count, expires_at = 0, now + ttl_seconds
            count += 1
            self._counters[key] = (count, expires_at)
            return count


class RateLimiter:
    """Fixed-window rate limiter keyed by actor."""

    def __init__(
        self,
        store: CounterStore,
        limit: int = 30,
        window_seconds: int = 60,
        prefix: str = "dispute-actions",
    ):
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix

    def hit(self, actor_id: str) -> int:
        """Record one action for an actor.

        Returns:
            The number of actions recorded in the current window

        Raises:
            RateLimitExceeded: If the actor is over the limit
        """
        count = self.store.incr(f"{self.prefix}:{actor_id}", self.window_seconds)
        if count > self.limit:
            raise RateLimitExceeded(
                f"Rate limit of {self.limit} actions per {self.window_seconds}s exceeded"
            )
        return count


class CircuitBreaker:
    """Circuit breaker pattern for fault tolerance."""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        half_open_requests: int = 1,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_requests = half_open_requests

        self._failures = 0
        self._last_failure_time: float | None = None
        self._state = "closed"  # closed, open, half-open
        self._half_open_successes = 0
        self._lock = Lock()

    @property
    def state(self) -> str:
        """Get current circuit breaker state."""
        with self._lock:
            self._check_state_transition()
            return self._state

    def _check_state_transition(self):
        """Check if state should transition."""
        if self._state == "open" and self._last_failure_time:
            if time.time() - self._last_failure_time >= self.recovery_timeout:
                self._state = "half-open"
                self._half_open_successes = 0
                logger.info("Circuit breaker transitioning to half-open")

    def _record_success(self):
        """Record a successful call."""
        with self._lock:
            if self._state == "half-open":
                self._half_open_successes += 1
                if self._half_open_successes >= self.half_open_requests:
                    self._state = "closed"
                    self._failures = 0
                    logger.info("Circuit breaker closed")
            elif self._state == "closed":
                self._failures = 0

    def _record_failure(self):
        """Record a failed call."""
        with self._lock:
            self._failures += 1
            self._last_failure_time = time.time()

            if self._state == "half-open":
                self._state = "open"
                logger.warning("Circuit breaker re-opened from half-open")
            elif self._failures >= self.failure_threshold:
                self._state = "open"
                logger.warning(
                    f"Circuit breaker opened after {self._failures} failures"
                )

    def call(self, func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
        """Execute a function through the circuit breaker."""
        with self._lock:
            self._check_state_transition()
            current_state = self._state

        if current_state == "open":
            raise CircuitBreakerOpen("Circuit breaker is open")

        try:
            result = func(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def reset(self):
        """Manually reset the circuit breaker."""
        with self._lock:
            self._state = "closed"
            self._failures = 0
            self._last_failure_time = None
            self._half_open_successes = 0
        logger.info("Circuit breaker manually reset")
