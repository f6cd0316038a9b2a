"""Timers for detectors and the snapshot broadcaster.

All monitor callbacks run one at a time: ManualScheduler runs them inline on
`advance()`, ThreadScheduler runs them from timer threads while holding its
`lock`, which external feeders (the CDP bridge) also take.

PUBLIC API:
  - TaskHandle: Cancellable reference to a scheduled call
  - Scheduler: Base class with clock and call_later
  - ManualScheduler: Virtual-time scheduler driven by advance()
  - ThreadScheduler: Real-time scheduler on threading.Timer
  - RetryTask: Bounded polling task with found/exhausted terminal states
"""

import heapq
import itertools
import logging
import threading
import time
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class TaskHandle:
    """Reference to a scheduled call."""

    def __init__(self, due: float):
        self.due = due
        self.cancelled = False
        self.done = False
        self._timer: threading.Timer | None = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._timer:
            self._timer.cancel()


class Scheduler:
    """Clock plus delayed calls, in milliseconds."""

    def __init__(self):
        self.lock = threading.RLock()

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TaskHandle:
        raise NotImplementedError

    def _run(self, handle: TaskHandle, callback: Callable[[], None]) -> None:
        if handle.cancelled:
            return
        with self.lock:
            try:
                callback()
            except Exception as e:
                logger.debug(f"Scheduled callback failed: {e}")
            finally:
                handle.done = True


class ManualScheduler(Scheduler):
    """Virtual clock for tests and offline replays.

    Nothing runs until `advance()` moves time forward; callbacks scheduled by
    other callbacks run in the same advance if they fall due.
    """

    def __init__(self, start: float = 0.0):
        super().__init__()
        self._now = start
        self._queue: list[tuple[float, int, TaskHandle, Callable[[], None]]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TaskHandle:
        handle = TaskHandle(self._now + max(0.0, delay_ms))
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle, callback))
        return handle

    def advance(self, ms: float) -> None:
        """Move the clock forward, running every call that falls due."""
        target = self._now + ms
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            self._run(handle, callback)
        self._now = target

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h, _ in self._queue if not h.cancelled)


class ThreadScheduler(Scheduler):
    """Wall-clock scheduler backed by daemon timer threads."""

    def __init__(self):
        super().__init__()
        self._origin = time.monotonic()
        self._handles: list[TaskHandle] = []

    def now(self) -> float:
        return (time.monotonic() - self._origin) * 1000

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TaskHandle:
        handle = TaskHandle(self.now() + delay_ms)
        timer = threading.Timer(max(0.0, delay_ms) / 1000, self._run, args=(handle, callback))
        timer.daemon = True
        handle._timer = timer
        self._handles = [h for h in self._handles if not h.done and not h.cancelled]
        self._handles.append(handle)
        timer.start()
        return handle

    def shutdown(self) -> None:
        """Cancel every outstanding timer."""
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()


class RetryState(str, Enum):
    """Lifecycle of a RetryTask."""

    PENDING = "pending"
    FOUND = "found"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class RetryTask:
    """Poll for something that may appear late, a bounded number of times.

    The attempt callable returns True once it found what it was waiting for.
    The task then stops in FOUND; after `max_attempts` misses it stops in
    EXHAUSTED and calls `on_exhausted`.

    Attributes:
        attempts: Number of polls made so far.
        state: Current RetryState.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        attempt: Callable[[], bool],
        interval_ms: float,
        max_attempts: int,
        on_exhausted: Callable[[], None] | None = None,
    ):
        self.scheduler = scheduler
        self.attempt = attempt
        self.interval_ms = interval_ms
        self.max_attempts = max_attempts
        self.on_exhausted = on_exhausted
        self.attempts = 0
        self.state = RetryState.PENDING
        self._handle: TaskHandle | None = None

    def start(self) -> "RetryTask":
        """Make the first attempt immediately, then poll on the interval."""
        self._poll()
        return self

    def cancel(self) -> None:
        if self.state == RetryState.PENDING:
            self.state = RetryState.CANCELLED
        if self._handle:
            self._handle.cancel()

    def _poll(self) -> None:
        if self.state != RetryState.PENDING:
            return

        self.attempts += 1
        try:
            found = self.attempt()
        except Exception as e:
            logger.debug(f"Retry attempt {self.attempts} failed: {e}")
            found = False

        if found:
            self.state = RetryState.FOUND
            return

        if self.attempts >= self.max_attempts:
            self.state = RetryState.EXHAUSTED
            if self.on_exhausted:
                try:
                    self.on_exhausted()
                except Exception as e:
                    logger.debug(f"Retry exhaustion handler failed: {e}")
            return

        self._handle = self.scheduler.call_later(self.interval_ms, self._poll)
