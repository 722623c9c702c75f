"""
Retry and circuit-breaking helpers for calls to the tracker API.

Only idempotent reads are retried; every remote call passes through a
circuit breaker so a server that is down fails fast instead of stalling
each optimistic mutation on its own timeout.
"""

import time
import functools
from typing import Callable, Type, Tuple, Optional

# Statuses worth another attempt: timeouts, throttling, upstream trouble
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

_TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection refused",
    "connection reset",
    "connection aborted",
    "max retries exceeded",
    "temporary failure",
    "service unavailable",
    "bad gateway",
    "too many requests",
)


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


class CircuitOpenError(Exception):
    """Raised instead of calling a service the breaker considers down."""

    def __init__(self, retry_after: float):
        super().__init__(
            f"Circuit breaker is OPEN. Service unavailable. Retry after {retry_after:.0f}s"
        )
        self.retry_after = retry_after


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Decorator retrying a call with exponentially growing sleeps.

    Args:
        max_retries: Extra attempts after the first one (0 = single attempt)
        base_delay: Sleep before the first retry, in seconds
        max_delay: Upper bound for any single sleep
        exponential_base: Factor applied to the sleep after each retry
        exceptions: Exception types that trigger a retry; others propagate
        on_retry: Optional callback(attempt, exception, delay) before sleeping

    Raises:
        RetryError: every attempt failed; chained to the last exception

    Example:
        @exponential_backoff(max_retries=2, exceptions=(requests.exceptions.Timeout,))
        def fetch_board(session, url):
            return session.get(url, timeout=15)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = base_delay
            attempts = max_retries + 1

            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == attempts:
                        raise RetryError(f"Failed after {attempts} attempts: {e}") from e
                    pause = min(delay, max_delay)
                    if on_retry:
                        on_retry(attempt, e, pause)
                    time.sleep(pause)
                    delay *= exponential_base

        return wrapper
    return decorator


class CircuitBreaker:
    """
    Stops calling a failing service for a while.

    CLOSED lets calls through and counts consecutive failures; reaching
    ``failure_threshold`` moves to OPEN, where calls fail immediately with
    CircuitOpenError. After ``recovery_timeout`` seconds one trial call runs
    in HALF_OPEN: success closes the circuit, failure opens it again.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30,
        expected_exception: Type[Exception] = Exception,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.clock = clock
        self.reset()

    def call(self, func: Callable, *args, **kwargs):
        """
        Run ``func`` unless the circuit is open.

        Raises:
            CircuitOpenError: the circuit is open and not yet due for a trial
            Exception: whatever ``func`` raised
        """
        if self.state == self.OPEN:
            remaining = self.retry_after()
            if remaining > 0:
                raise CircuitOpenError(remaining)
            self.state = self.HALF_OPEN

        try:
            result = func(*args, **kwargs)
        except self.expected_exception:
            self._record_failure()
            raise
        self.reset()
        return result

    def retry_after(self) -> float:
        """Seconds until a trial call is allowed (0 when not open)."""
        if self.opened_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (self.clock() - self.opened_at))

    def _record_failure(self):
        self.failure_count += 1
        # A failed half-open trial re-opens immediately
        if self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.state = self.OPEN
            self.opened_at = self.clock()

    def reset(self):
        """Close the circuit and forget past failures."""
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.state = self.CLOSED


def is_transient_error(exception: Exception) -> bool:
    """True if the error message suggests a network hiccup worth retrying later."""
    message = str(exception).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def should_retry_http_status(status_code: int) -> bool:
    """True for HTTP statuses that may succeed on another attempt."""
    return status_code in RETRYABLE_STATUS_CODES
