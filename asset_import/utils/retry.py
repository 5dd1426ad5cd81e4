"""
Retry with exponential backoff, and a circuit breaker, for object store calls.

Transient store failures (timeouts, 429/5xx, dropped connections) are
retried with jittered exponential backoff. When the store keeps failing the
circuit breaker opens and subsequent uploads fail fast instead of each one
burning its own retry budget.

Usage:
    from asset_import.utils.retry import retry_with_backoff, CircuitBreaker

    breaker = CircuitBreaker(failure_threshold=5, timeout=60)

    @retry_with_backoff(max_attempts=3, retry_if=is_transient_error)
    @breaker
    def write_blob(key, data):
        ...
"""

import functools
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Type

from asset_import.utils.logging import get_logger

logger = get_logger(__name__)


def calculate_backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    multiplier: float,
    jitter: bool,
) -> float:
    """
    Calculate delay for exponential backoff with optional jitter.

    Formula:
        delay = min(base_delay * (multiplier ** attempt), max_delay)
        if jitter:
            delay = delay * random.uniform(0.5, 1.5)

    Example:
        >>> calculate_backoff_delay(2, base_delay=1.0, max_delay=60.0,
        ...                         multiplier=2.0, jitter=False)
        4.0
    """
    delay = min(base_delay * (multiplier ** attempt), max_delay)

    if jitter:
        delay = delay * random.uniform(0.5, 1.5)

    return delay


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_multiplier: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    retry_if: Optional[Callable[[Exception], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (including initial)
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Add randomness to prevent thundering herd
        exceptions: Exception types that are candidates for a retry
        retry_if: Optional predicate; a caught exception for which it
            returns False is re-raised immediately
        sleep: Sleep function (injectable for tests)

    Example:
        >>> @retry_with_backoff(max_attempts=5, base_delay=2.0)
        ... def head_object(key):
        ...     return bucket.get_blob(key)
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(max_attempts):
                if attempt > 0:
                    logger.info(
                        f"Retry attempt {attempt}/{max_attempts - 1} for {func.__name__}"
                    )

                try:
                    result = func(*args, **kwargs)
                except exceptions as e:
                    if retry_if is not None and not retry_if(e):
                        raise

                    if attempt >= max_attempts - 1:
                        logger.error(
                            f"{func.__name__} failed after {max_attempts} attempts. "
                            f"Last error: {e}"
                        )
                        raise

                    delay = calculate_backoff_delay(
                        attempt=attempt,
                        base_delay=base_delay,
                        max_delay=max_delay,
                        multiplier=backoff_multiplier,
                        jitter=jitter,
                    )
                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt + 1}: {e}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                    sleep(delay)
                    continue

                if attempt > 0:
                    logger.info(f"{func.__name__} succeeded on attempt {attempt + 1}")
                return result

            raise RuntimeError(f"{func.__name__} called with max_attempts={max_attempts}")

        return wrapper

    return decorator


class CircuitState(str, Enum):
    """
    Circuit breaker states.

    CLOSED: normal operation, calls pass through
    OPEN: calls fail immediately with CircuitBreakerError
    HALF_OPEN: one trial call decides whether to close again
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerStats:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    last_failure_time: Optional[datetime] = None
    state_changes: int = 0


class CircuitBreakerError(Exception):
    """Raised when a call is refused because the circuit is open."""


class CircuitBreaker:
    """
    Circuit breaker guarding calls to the object store.

    Opens after `failure_threshold` consecutive failures, refuses calls for
    `timeout` seconds, then lets a trial call through (HALF_OPEN). State is
    guarded by a lock because import workers share one breaker.
    `excluded_exceptions` propagate without counting as failures.

    Example:
        >>> breaker = CircuitBreaker(failure_threshold=5, timeout=60)
        >>>
        >>> @breaker
        ... def upload(blob, data):
        ...     blob.upload_from_string(data)
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60.0,
        expected_exception: Type[Exception] = Exception,
        excluded_exceptions: Tuple[Type[Exception], ...] = (),
    ) -> None:
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.expected_exception = expected_exception
        self.excluded_exceptions = excluded_exceptions

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[datetime] = None
        self.stats = CircuitBreakerStats()
        self._lock = threading.Lock()

    def __call__(self, func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return self.call(func, *args, **kwargs)

        return wrapper

    def call(self, func: Callable, *args: Any, **kwargs: Any) -> Any:
        """
        Execute function with circuit breaker protection.

        Raises:
            CircuitBreakerError: If circuit is open
            Exception: Original exception if function fails
        """
        with self._lock:
            self.stats.total_requests += 1
            if self.state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self._set_state(CircuitState.HALF_OPEN)
                    logger.info("Circuit state: HALF_OPEN (testing recovery)")
                else:
                    logger.warning(f"Circuit is OPEN, failing fast for {func.__name__}")
                    raise CircuitBreakerError("Circuit breaker is OPEN")

        try:
            result = func(*args, **kwargs)
        except self.excluded_exceptions:
            # The backend answered; the error is about the request
            self._on_success()
            raise
        except self.expected_exception as e:
            self._on_failure(e)
            raise

        self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        if self.opened_at is None:
            return True
        elapsed = (datetime.now() - self.opened_at).total_seconds()
        return elapsed >= self.timeout

    def _set_state(self, state: CircuitState) -> None:
        self.state = state
        self.stats.state_changes += 1

    def _on_success(self) -> None:
        with self._lock:
            self.stats.successful_requests += 1
            if self.state == CircuitState.HALF_OPEN:
                logger.info("Object store recovered, closing circuit")
                self._close()
            else:
                self.failure_count = 0

    def _on_failure(self, exception: Exception) -> None:
        with self._lock:
            self.stats.failed_requests += 1
            self.failure_count += 1
            self.stats.last_failure_time = datetime.now()

            logger.warning(
                f"Circuit breaker recorded failure "
                f"({self.failure_count}/{self.failure_threshold}): {exception}"
            )

            if self.state == CircuitState.HALF_OPEN or (
                self.state == CircuitState.CLOSED
                and self.failure_count >= self.failure_threshold
            ):
                self._set_state(CircuitState.OPEN)
                self.opened_at = datetime.now()
                logger.error(f"Circuit state: OPEN (will retry in {self.timeout}s)")

    def _close(self) -> None:
        self._set_state(CircuitState.CLOSED)
        self.failure_count = 0
        self.opened_at = None

    def reset(self) -> None:
        """Manually reset circuit breaker to CLOSED state."""
        with self._lock:
            logger.info("Manually resetting circuit breaker")
            self._close()


def is_transient_error(exception: Exception) -> bool:
    """
    Determine if an exception is likely transient (retryable).

    Connection and timeout errors, HTTP 408/429/5xx responses (both
    requests-style `.response.status_code` and google-api-core style
    `.code`) and messages mentioning a temporary condition count as
    transient. An open circuit never does.
    """
    if isinstance(exception, CircuitBreakerError):
        return False

    if isinstance(exception, (ConnectionError, TimeoutError)):
        return True

    transient_codes = {408, 429, 500, 502, 503, 504}

    code = getattr(exception, "code", None)
    if isinstance(code, int) and code in transient_codes:
        return True

    response = getattr(exception, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int) and status_code in transient_codes:
        return True

    message = str(exception).lower()
    transient_keywords = [
        "timeout",
        "timed out",
        "connection reset",
        "temporarily",
        "unavailable",
        "rate limit",
    ]
    return any(keyword in message for keyword in transient_keywords)
