"""Timer scheduling backends for rate-limited wrappers.

Controllers never talk to ``threading.Timer`` or an event loop directly.
They hold a ``Scheduler`` and work in milliseconds:

- ``now()`` returns the current time in ms.
- ``arm(delay_ms, callback)`` schedules ``callback`` once and returns a handle.
- ``cancel(handle)`` releases a handle (idempotent, accepts None).

Three backends are provided: real threads, an asyncio loop, and a manual
virtual clock for deterministic driving (tests, the timeline tool).
"""

import asyncio
import heapq
import itertools
import logging
import threading
import time
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    """A single armed timer."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Millisecond timer source used by controllers."""

    def now(self) -> float: ...

    def arm(self, delay_ms: float, callback: Callable[[], Any]) -> TimerHandle: ...

    def cancel(self, handle: TimerHandle | None) -> None: ...


class ThreadingScheduler:
    """Scheduler backed by ``threading.Timer`` daemons and ``time.monotonic``.

    Callbacks run on timer threads. Exceptions raised there go to
    ``threading.excepthook``.
    """

    def now(self) -> float:
        return time.monotonic() * 1000.0

    def arm(self, delay_ms: float, callback: Callable[[], Any]) -> threading.Timer:
        timer = threading.Timer(max(0.0, delay_ms) / 1000.0, callback)
        timer.daemon = True
        timer.start()
        return timer

    def cancel(self, handle: TimerHandle | None) -> None:
        if handle is not None:
            handle.cancel()


class AsyncioScheduler:
    """Scheduler backed by ``loop.call_later``.

    Must be used from the loop's own thread.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        """Initialize asyncio scheduler.

        Args:
            loop: Event loop to use. Defaults to the running loop at each call.
        """
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """Get the bound loop, or the currently running one."""
        return self._loop if self._loop is not None else asyncio.get_running_loop()

    def now(self) -> float:
        return self.loop.time() * 1000.0

    def arm(self, delay_ms: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000.0, callback)

    def cancel(self, handle: TimerHandle | None) -> None:
        if handle is not None:
            handle.cancel()


class ManualTimer:
    """Handle returned by ``ManualScheduler.arm``."""

    __slots__ = ("deadline", "seq", "callback", "cancelled")

    def __init__(self, deadline: float, seq: int, callback: Callable[[], Any]):
        self.deadline = deadline
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: "ManualTimer") -> bool:
        return (self.deadline, self.seq) < (other.deadline, other.seq)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "armed"
        return f"ManualTimer(deadline={self.deadline}, {state})"


class ManualScheduler:
    """Virtual clock scheduler.

    Nothing fires until ``advance`` or ``run_all`` is called. Due timers
    fire synchronously in deadline order (ties in arm order) and the clock
    is set to each deadline before its callback runs, so callbacks observe
    exact times. Exceptions raised by a callback propagate to the caller of
    ``advance``.
    """

    def __init__(self, start_ms: float = 0.0):
        """Initialize manual scheduler.

        Args:
            start_ms: Initial virtual time in milliseconds.
        """
        self._now = float(start_ms)
        self._queue: list[ManualTimer] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def arm(self, delay_ms: float, callback: Callable[[], Any]) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay_ms), next(self._seq), callback)
        heapq.heappush(self._queue, timer)
        return timer

    def cancel(self, handle: TimerHandle | None) -> None:
        if handle is not None:
            handle.cancel()

    @property
    def pending_count(self) -> int:
        """Number of armed, uncancelled timers."""
        return sum(1 for t in self._queue if not t.cancelled)

    def set_time(self, now_ms: float) -> None:
        """Move the clock without firing anything.

        Moving backwards is allowed; it simulates clock skew.
        """
        self._now = float(now_ms)

    def advance(self, delta_ms: float) -> int:
        """Advance the clock, firing every timer that falls due.

        Args:
            delta_ms: Milliseconds to move forward.

        Returns:
            Number of callbacks fired.
        """
        if delta_ms < 0:
            raise ValueError(f"delta_ms must be >= 0, got: {delta_ms}")
        return self.advance_to(self._now + delta_ms)

    def advance_to(self, target_ms: float) -> int:
        """Advance the clock to an absolute time, firing due timers."""
        fired = 0
        while self._queue and self._queue[0].deadline <= target_ms:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = max(self._now, timer.deadline)
            timer.cancelled = True
            fired += 1
            timer.callback()
        self._now = max(self._now, target_ms)
        return fired

    def run_all(self, limit: int = 10_000) -> int:
        """Fire timers until none remain.

        Args:
            limit: Safety cap on callbacks fired.

        Returns:
            Number of callbacks fired.
        """
        fired = 0
        while fired < limit:
            live = [t for t in self._queue if not t.cancelled]
            if not live:
                break
            fired += self.advance_to(min(t.deadline for t in live))
        return fired


_default_scheduler: ThreadingScheduler | None = None
_default_lock = threading.Lock()


def default_scheduler() -> ThreadingScheduler:
    """Get the shared threading scheduler.

    Returns:
        The process-wide ThreadingScheduler instance.
    """
    global _default_scheduler
    if _default_scheduler is None:
        with _default_lock:
            if _default_scheduler is None:
                _default_scheduler = ThreadingScheduler()
    return _default_scheduler
