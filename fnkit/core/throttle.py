"""Debounce and throttle controllers.

Both wrap an operation and decide, per call, whether it runs now, later,
or not at all:

- Debouncer: runs once input goes quiet for ``wait_ms`` (optionally also on
  the leading edge, and at least every ``max_wait_ms`` under a steady stream).
- Throttler: runs at most once per ``wait_ms`` window.

Only the latest call's arguments survive until the next invocation. Each
controller holds at most one wait timer (plus the debounce ceiling timer)
and exposes ``cancel()``, ``flush()`` and ``pending()`` so owners can settle
outstanding work before teardown.
"""

import functools
import logging
import threading
import types
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from fnkit.core.errors import InvariantViolationError
from fnkit.core.options import DebounceOptions, ThrottleOptions, build_options
from fnkit.core.timers import Scheduler, TimerHandle, default_scheduler

logger = logging.getLogger(__name__)

R = TypeVar("R")


class _RateLimiter(Generic[R]):
    """Shared state and edge handling for debounce/throttle."""

    def __init__(
        self,
        func: Callable[..., R],
        wait_ms: float,
        leading: bool,
        trailing: bool,
        scheduler: Scheduler | None = None,
    ):
        self._func = func
        self._wait = wait_ms
        self._leading = leading
        self._trailing = trailing
        self._scheduler = scheduler if scheduler is not None else default_scheduler()
        # Timer callbacks may arrive on other threads; reentrant so the
        # wrapped operation can call its own controller.
        self._lock = threading.RLock()
        self._attr_name: str | None = None

        self._last_call_time: float | None = None
        self._last_invoke_time = 0.0
        self._pending_args: tuple[tuple, dict] | None = None
        self._result: R | None = None
        self._timer: TimerHandle | None = None
        self._timer_token: object | None = None

        self._name = getattr(func, "__name__", repr(func))
        functools.update_wrapper(self, func, updated=())

    # --- policy (overridden) ---

    def _should_invoke(self, now: float) -> bool:
        raise NotImplementedError

    def _remaining_wait(self, now: float) -> float:
        raise NotImplementedError

    # --- timers ---

    def _start_timer(self, delay_ms: float) -> None:
        """Arm the wait timer, replacing any existing one."""
        self._scheduler.cancel(self._timer)
        token = object()
        self._timer_token = token
        self._timer = self._scheduler.arm(delay_ms, lambda: self._on_timer(token))

    def _clear_timers(self) -> None:
        self._scheduler.cancel(self._timer)
        self._timer = None
        self._timer_token = None

    def _on_timer(self, token: object) -> R | None:
        with self._lock:
            if token is not self._timer_token:
                return self._result  # stale, already cancelled or replaced
            self._timer = None
            self._timer_token = None
            return self._timer_expired()

    def _timer_expired(self) -> R | None:
        now = self._scheduler.now()
        if self._should_invoke(now):
            return self._trailing_edge(now)
        remaining = self._remaining_wait(now)
        logger.debug("%s: re-arming for %.1fms", self._name, remaining)
        self._start_timer(remaining)
        return self._result

    # --- edges ---

    def _invoke(self, now: float) -> R:
        if self._pending_args is None:
            raise InvariantViolationError(
                f"{self._name}: no arguments available for invocation"
            )
        args, kwargs = self._pending_args
        self._pending_args = None
        self._last_invoke_time = now
        logger.debug("%s: invoking at %.1f", self._name, now)
        self._result = self._func(*args, **kwargs)
        return self._result

    def _leading_edge(self, now: float) -> R | None:
        self._last_invoke_time = now
        self._start_timer(self._wait)
        return self._invoke(now) if self._leading else self._result

    def _trailing_edge(self, now: float) -> R | None:
        self._clear_timers()
        if self._trailing and self._pending_args is not None:
            return self._invoke(now)
        self._pending_args = None
        return self._result

    # --- control surface ---

    def cancel(self) -> None:
        """Drop any scheduled invocation and reset timing state.

        Safe to call at any time; the controller stays usable.
        """
        with self._lock:
            self._clear_timers()
            self._last_invoke_time = 0.0
            self._pending_args = None
            self._last_call_time = None

    def flush(self) -> R | None:
        """Run the pending trailing invocation now.

        Returns:
            Result of the invocation, or the last cached result if nothing
            was pending.
        """
        with self._lock:
            if self._timer is None:
                return self._result
            return self._trailing_edge(self._scheduler.now())

    def pending(self) -> bool:
        """Check whether a deferred invocation timer is armed."""
        return self._timer is not None

    @property
    def last_result(self) -> R | None:
        """Result of the most recent invocation, or None."""
        return self._result

    def __call__(self, *args: Any, **kwargs: Any) -> R | None:
        raise NotImplementedError

    # --- method support ---

    def _clone(self, func: Callable[..., R]) -> "_RateLimiter[R]":
        raise NotImplementedError

    def __set_name__(self, owner: type, name: str) -> None:
        self._attr_name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        """Give each instance its own controller when used on a method."""
        if instance is None:
            return self
        if self._attr_name is None:
            return types.MethodType(self, instance)
        bound = self._clone(self._func.__get__(instance, owner))
        instance.__dict__[self._attr_name] = bound
        return bound

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._name}, wait_ms={self._wait})"


class Debouncer(_RateLimiter[R]):
    """Delay invocations until calls stop arriving for ``wait_ms``.

    Every call stores its arguments; the eventual invocation uses the most
    recent ones. With ``leading`` the first call of a burst runs at once.
    ``max_wait_ms`` bounds how long a steady stream can defer the trailing
    invocation.
    """

    def __init__(
        self,
        func: Callable[..., R],
        wait_ms: float | None = None,
        options: DebounceOptions | None = None,
        *,
        leading: bool | None = None,
        trailing: bool | None = None,
        max_wait_ms: float | None = None,
        scheduler: Scheduler | None = None,
    ):
        """Initialize debouncer.

        Args:
            func: Operation to wrap.
            wait_ms: Quiet period in milliseconds.
            options: Full options model; keyword arguments override it.
            leading: Invoke on the first call of a burst (default False).
            trailing: Invoke after the burst settles (default True).
            max_wait_ms: Longest a pending invocation may be deferred.
            scheduler: Timer backend (default: shared threading scheduler).

        Raises:
            ConfigValidationError: If options are invalid.
        """
        self._options = build_options(
            DebounceOptions,
            options,
            wait_ms=wait_ms,
            leading=leading,
            trailing=trailing,
            max_wait_ms=max_wait_ms,
        )
        super().__init__(
            func,
            self._options.wait_ms,
            self._options.leading,
            self._options.trailing,
            scheduler,
        )
        self._max_wait = self._options.max_wait_ms
        self._max_timer: TimerHandle | None = None
        self._max_timer_token: object | None = None

    @property
    def options(self) -> DebounceOptions:
        """Get the validated options."""
        return self._options

    def _should_invoke(self, now: float) -> bool:
        if self._last_call_time is None:
            return True
        since_call = now - self._last_call_time
        since_invoke = now - self._last_invoke_time
        return (
            since_call >= self._wait
            or since_call < 0  # clock went backwards; never stall
            or (self._max_wait is not None and since_invoke >= self._max_wait)
        )

    def _remaining_wait(self, now: float) -> float:
        since_call = now - (self._last_call_time or 0.0)
        since_invoke = now - self._last_invoke_time
        waiting = self._wait - since_call
        if self._max_wait is None:
            return waiting
        return min(waiting, self._max_wait - since_invoke)

    def _start_max_timer(self) -> None:
        self._scheduler.cancel(self._max_timer)
        token = object()
        self._max_timer_token = token
        self._max_timer = self._scheduler.arm(
            self._max_wait, lambda: self._on_max_timer(token)
        )

    def _clear_timers(self) -> None:
        super()._clear_timers()
        self._scheduler.cancel(self._max_timer)
        self._max_timer = None
        self._max_timer_token = None

    def _on_max_timer(self, token: object) -> R | None:
        with self._lock:
            if token is not self._max_timer_token:
                return self._result
            self._max_timer = None
            self._max_timer_token = None
            if self._trailing and self._pending_args is not None:
                logger.debug("%s: max wait reached", self._name)
                return self._trailing_edge(self._scheduler.now())
            self.cancel()
            return self._result

    def _leading_edge(self, now: float) -> R | None:
        if self._max_wait is not None:
            self._start_max_timer()
        return super()._leading_edge(now)

    def __call__(self, *args: Any, **kwargs: Any) -> R | None:
        with self._lock:
            now = self._scheduler.now()
            is_invoking = self._should_invoke(now)
            self._pending_args = (args, kwargs)
            self._last_call_time = now

            if is_invoking:
                if self._timer is None:
                    return self._leading_edge(now)
                if self._max_wait is not None:
                    self._start_timer(self._wait)
                    if self._max_timer is None:
                        self._start_max_timer()
                    if self._leading:
                        return self._invoke(now)
                    return self._result
            if self._timer is None:
                self._start_timer(self._wait)
            return self._result

    def _clone(self, func: Callable[..., R]) -> "Debouncer[R]":
        return Debouncer(func, options=self._options, scheduler=self._scheduler)


class Throttler(_RateLimiter[R]):
    """Invoke at most once per ``wait_ms``.

    Calls inside a window only replace the stored arguments; the window's
    timer is never pushed back.
    """

    def __init__(
        self,
        func: Callable[..., R],
        wait_ms: float | None = None,
        options: ThrottleOptions | None = None,
        *,
        leading: bool | None = None,
        trailing: bool | None = None,
        scheduler: Scheduler | None = None,
    ):
        """Initialize throttler.

        Args:
            func: Operation to wrap.
            wait_ms: Window length in milliseconds.
            options: Full options model; keyword arguments override it.
            leading: Invoke on the first call of a window (default True).
            trailing: Invoke at window end with the latest args (default True).
            scheduler: Timer backend (default: shared threading scheduler).

        Raises:
            ConfigValidationError: If options are invalid.
        """
        self._options = build_options(
            ThrottleOptions,
            options,
            wait_ms=wait_ms,
            leading=leading,
            trailing=trailing,
        )
        super().__init__(
            func,
            self._options.wait_ms,
            self._options.leading,
            self._options.trailing,
            scheduler,
        )

    @property
    def options(self) -> ThrottleOptions:
        """Get the validated options."""
        return self._options

    def _should_invoke(self, now: float) -> bool:
        if self._last_call_time is None:
            return True
        since_call = now - self._last_call_time
        since_invoke = now - self._last_invoke_time
        return (
            since_call >= self._wait
            or since_call < 0  # clock went backwards; never stall
            or since_invoke >= self._wait
        )

    def _remaining_wait(self, now: float) -> float:
        return self._wait - (now - self._last_invoke_time)

    def __call__(self, *args: Any, **kwargs: Any) -> R | None:
        with self._lock:
            now = self._scheduler.now()
            is_invoking = self._should_invoke(now)
            self._pending_args = (args, kwargs)
            self._last_call_time = now

            if self._timer is None:
                if is_invoking:
                    return self._leading_edge(now)
                self._start_timer(self._wait)
            return self._result

    def _clone(self, func: Callable[..., R]) -> "Throttler[R]":
        return Throttler(func, options=self._options, scheduler=self._scheduler)


class SimpleThrottler:
    """Fixed-window throttle: one trailing call per ``delay_ms``.

    The first call arms a timer; when it fires, the latest arguments are
    used once. No leading edge, no result caching.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        delay_ms: float = 16.0,
        scheduler: Scheduler | None = None,
    ):
        """Initialize simple throttler.

        Args:
            func: Operation to wrap.
            delay_ms: Window length in milliseconds (default ~60fps).
            scheduler: Timer backend (default: shared threading scheduler).
        """
        if delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got: {delay_ms}")
        self._func = func
        self._delay = delay_ms
        self._scheduler = scheduler if scheduler is not None else default_scheduler()
        self._lock = threading.RLock()
        self._pending_args: tuple[tuple, dict] | None = None
        self._timer: TimerHandle | None = None
        self._timer_token: object | None = None
        self._name = getattr(func, "__name__", repr(func))
        functools.update_wrapper(self, func, updated=())

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            self._pending_args = (args, kwargs)
            if self._timer is None:
                token = object()
                self._timer_token = token
                self._timer = self._scheduler.arm(
                    self._delay, lambda: self._fire(token)
                )

    def _fire(self, token: object) -> None:
        with self._lock:
            if token is not self._timer_token:
                return
            self._timer = None
            self._timer_token = None
            if self._pending_args is not None:
                args, kwargs = self._pending_args
                self._pending_args = None
                self._func(*args, **kwargs)

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        with self._lock:
            if self._timer is not None:
                self._scheduler.cancel(self._timer)
                self._timer = None
                self._timer_token = None
                self._pending_args = None

    def pending(self) -> bool:
        """Check whether a call is waiting for the window to close."""
        return self._timer is not None


def debounce(
    func: Callable[..., R] | None = None,
    wait_ms: float | None = None,
    options: DebounceOptions | None = None,
    *,
    leading: bool | None = None,
    trailing: bool | None = None,
    max_wait_ms: float | None = None,
    scheduler: Scheduler | None = None,
) -> Any:
    """Debounce a function.

    Works as a wrapper, ``debounce(fn, 100)``, or a decorator,
    ``@debounce(wait_ms=100, leading=True)``.

    Returns:
        A Debouncer, or a decorator producing one.
    """

    def decorator(fn: Callable[..., R]) -> Debouncer[R]:
        return Debouncer(
            fn,
            wait_ms,
            options,
            leading=leading,
            trailing=trailing,
            max_wait_ms=max_wait_ms,
            scheduler=scheduler,
        )

    if func is None:
        return decorator
    return decorator(func)


def throttle(
    func: Callable[..., R] | None = None,
    wait_ms: float | None = None,
    options: ThrottleOptions | None = None,
    *,
    leading: bool | None = None,
    trailing: bool | None = None,
    scheduler: Scheduler | None = None,
) -> Any:
    """Throttle a function.

    Works as a wrapper, ``throttle(fn, 100)``, or a decorator,
    ``@throttle(wait_ms=100, trailing=False)``.

    Returns:
        A Throttler, or a decorator producing one.
    """

    def decorator(fn: Callable[..., R]) -> Throttler[R]:
        return Throttler(
            fn,
            wait_ms,
            options,
            leading=leading,
            trailing=trailing,
            scheduler=scheduler,
        )

    if func is None:
        return decorator
    return decorator(func)


def throttle_simple(
    func: Callable[..., Any],
    delay_ms: float = 16.0,
    scheduler: Scheduler | None = None,
) -> SimpleThrottler:
    """Wrap ``func`` in a SimpleThrottler."""
    return SimpleThrottler(func, delay_ms, scheduler)
