"""Retry with exponential backoff, circuit breaker, and timeouts."""

import asyncio
import enum
import inspect
import logging
import random
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from fnkit.core.errors import CircuitOpenError, OperationTimeoutError
from fnkit.core.options import CircuitBreakerOptions, RetryOptions, build_options

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(options: RetryOptions, attempt: int) -> float:
    """Delay in milliseconds before the retry following ``attempt``.

    Args:
        options: Retry options.
        attempt: 1-based number of the attempt that just failed.

    Returns:
        Delay in milliseconds, jittered into [50%, 100%] when enabled.
    """
    delay = min(
        options.initial_delay_ms * options.backoff_factor ** (attempt - 1),
        options.max_delay_ms,
    )
    if options.jitter:
        delay *= 0.5 + random.random() * 0.5
    return delay


def _should_retry(options: RetryOptions, error: Exception, attempt: int) -> bool:
    if attempt >= options.max_attempts:
        return False
    if options.retry_condition is not None and not options.retry_condition(error):
        return False
    return True


def retry(
    func: Callable[[], T],
    options: RetryOptions | None = None,
    sleep: Callable[[float], Any] = time.sleep,
    **kwargs: Any,
) -> T:
    """Call ``func`` until it succeeds or attempts run out.

    Args:
        func: Zero-argument callable.
        options: Retry options; keyword arguments override it.
        sleep: Sleep function taking seconds.

    Returns:
        The first successful result.

    Raises:
        Exception: The last error raised by ``func``.
    """
    opts = build_options(RetryOptions, options, **kwargs)
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except Exception as e:
            if not _should_retry(opts, e, attempt):
                raise
            delay = backoff_delay(opts, attempt)
            logger.warning(
                "Attempt %d/%d failed: %s (retrying in %.0fms)",
                attempt,
                opts.max_attempts,
                e,
                delay,
            )
            if opts.on_retry is not None:
                opts.on_retry(e, attempt)
            sleep(delay / 1000.0)


async def retry_async(
    func: Callable[[], Awaitable[T] | T],
    options: RetryOptions | None = None,
    **kwargs: Any,
) -> T:
    """Async ``retry``; ``func`` may return a value or an awaitable."""
    opts = build_options(RetryOptions, options, **kwargs)
    attempt = 0
    while True:
        attempt += 1
        try:
            result = func()
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            if not _should_retry(opts, e, attempt):
                raise
            delay = backoff_delay(opts, attempt)
            logger.warning(
                "Attempt %d/%d failed: %s (retrying in %.0fms)",
                attempt,
                opts.max_attempts,
                e,
                delay,
            )
            if opts.on_retry is not None:
                opts.on_retry(e, attempt)
            await asyncio.sleep(delay / 1000.0)


class CircuitState(enum.Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stop calling a failing operation for a while.

    CLOSED: calls pass; ``failure_threshold`` failures open the circuit.
    OPEN: calls fail fast with CircuitOpenError until ``reset_timeout_ms``.
    HALF_OPEN: trial calls; two successes close, one failure reopens.
    Failure counts reset after ``monitoring_period_ms`` without failures.
    """

    HALF_OPEN_SUCCESSES = 2

    def __init__(
        self,
        options: CircuitBreakerOptions | None = None,
        clock: Callable[[], float] | None = None,
        **kwargs: Any,
    ):
        """Initialize circuit breaker.

        Args:
            options: Breaker options; keyword arguments override it.
            clock: Millisecond time source (default: monotonic).
        """
        self._options = build_options(CircuitBreakerOptions, options, **kwargs)
        self._clock = clock or (lambda: time.monotonic() * 1000.0)
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._last_failure_time = 0.0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def _set_state(self, state: CircuitState) -> None:
        if state is not self._state:
            logger.info("Circuit %s -> %s", self._state.value, state.value)
            self._state = state

    def _before_call(self) -> None:
        with self._lock:
            now = self._clock()
            if now - self._last_failure_time > self._options.monitoring_period_ms:
                self._failures = 0
                self._successes = 0
                if self._state is CircuitState.OPEN:
                    self._set_state(CircuitState.CLOSED)

            if self._state is CircuitState.OPEN:
                if now - self._last_failure_time < self._options.reset_timeout_ms:
                    raise CircuitOpenError("Circuit breaker is OPEN")
                self._set_state(CircuitState.HALF_OPEN)

    def _on_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._successes += 1
                if self._successes >= self.HALF_OPEN_SUCCESSES:
                    self._set_state(CircuitState.CLOSED)
                    self._failures = 0
                    self._successes = 0
            elif self._state is CircuitState.CLOSED:
                self._failures = 0
                self._successes = 0

    def _on_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._last_failure_time = self._clock()
            if self._state is CircuitState.HALF_OPEN:
                self._set_state(CircuitState.OPEN)
            elif (
                self._state is CircuitState.CLOSED
                and self._failures >= self._options.failure_threshold
            ):
                self._set_state(CircuitState.OPEN)

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call ``func`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open.
        """
        self._before_call()
        try:
            result = func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    async def call_async(
        self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Await ``func`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open.
        """
        self._before_call()
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def reset(self) -> None:
        """Force the circuit closed and clear counters."""
        with self._lock:
            self._set_state(CircuitState.CLOSED)
            self._failures = 0
            self._successes = 0
            self._last_failure_time = 0.0


def create_circuit_breaker(
    func: Callable[..., Awaitable[T]],
    options: CircuitBreakerOptions | None = None,
    **kwargs: Any,
) -> Callable[..., Awaitable[T]]:
    """Wrap an async function in a fresh CircuitBreaker."""
    breaker = CircuitBreaker(options, **kwargs)

    async def guarded(*args: Any, **kw: Any) -> T:
        return await breaker.call_async(func, *args, **kw)

    guarded.breaker = breaker  # type: ignore[attr-defined]
    return guarded


def create_resilient_function(
    func: Callable[..., Awaitable[T]],
    retry_options: RetryOptions | None = None,
    circuit_options: CircuitBreakerOptions | None = None,
) -> Callable[..., Awaitable[T]]:
    """Retry an async function through a circuit breaker.

    Open-circuit rejections count as failures for the retry loop.
    """
    guarded = create_circuit_breaker(func, circuit_options)

    async def resilient(*args: Any, **kwargs: Any) -> T:
        return await retry_async(lambda: guarded(*args, **kwargs), retry_options)

    return resilient


async def with_timeout(
    awaitable: Awaitable[T],
    timeout_ms: float,
    message: str = "Operation timed out",
) -> T:
    """Await with a deadline.

    Raises:
        OperationTimeoutError: If ``timeout_ms`` elapses first.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout_ms / 1000.0)
    except asyncio.TimeoutError as e:
        raise OperationTimeoutError(message) from e
