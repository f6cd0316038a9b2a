"""Load-phase attribution and per-phase resource accounting.

A resource is attributed to exactly one phase:
  user     - it started inside a live user-interaction window
  subload  - it started at or after the content-loaded signal
  initial  - everything else

PUBLIC API:
  - ResourceObservation: One resource-timing record, deduplicated by identity
  - InteractionWindow: Time span following a user gesture
  - InteractionRing: Bounded, lazily pruned set of recent windows
  - PhaseClassifier: Phase assignment and request/byte accounting
  - is_activation_gesture: Whether an input opens an interaction window
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Callable

from adtap.config import MonitorConfig
from adtap.monitor.context import PerformanceEntry
from adtap.monitor.summary import PHASES, Summary

logger = logging.getLogger(__name__)

POINTER_GESTURES = frozenset({"pointerdown", "mousedown", "touchstart"})
ACTIVATION_KEYS = frozenset({"Enter", " ", "Spacebar", "Space"})


def is_activation_gesture(kind: str, key: str | None = None) -> bool:
    """Pointer press, touch start, or a keyboard key equivalent to activation."""
    if kind in POINTER_GESTURES:
        return True
    return kind == "keydown" and key in ACTIVATION_KEYS


@dataclass(frozen=True)
class ResourceObservation:
    """One resource load as reported by resource timing."""

    name: str
    start_time: float
    size: int = 0

    @property
    def identity(self) -> tuple[str, float]:
        return (self.name, self.start_time)

    @classmethod
    def from_entry(cls, entry: PerformanceEntry) -> "ResourceObservation":
        """Take the best available size: transferred, then encoded, then decoded."""
        size = 0
        for candidate in (entry.transfer_size, entry.encoded_body_size, entry.decoded_body_size):
            if candidate and candidate > 0:
                size = int(candidate)
                break
        return cls(name=entry.name, start_time=entry.start_time, size=size)


@dataclass(frozen=True)
class InteractionWindow:
    start: float
    end: float

    def contains(self, t: float) -> bool:
        return self.start <= t <= self.end


class InteractionRing:
    """The most recent interaction windows."""

    def __init__(self, duration_ms: float, capacity: int, grace_ms: float):
        self.duration_ms = duration_ms
        self.grace_ms = grace_ms
        self._windows: deque[InteractionWindow] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._windows)

    def __iter__(self):
        return iter(self._windows)

    def open(self, at: float) -> InteractionWindow:
        window = InteractionWindow(start=at, end=at + self.duration_ms)
        self._windows.append(window)
        return window

    def prune(self, now: float) -> None:
        """Drop windows whose end plus grace has passed."""
        live = [w for w in self._windows if w.end + self.grace_ms >= now]
        if len(live) != len(self._windows):
            self._windows.clear()
            self._windows.extend(live)

    def covers(self, t: float) -> bool:
        return any(w.contains(t) for w in self._windows)


class PhaseClassifier:
    """Assign resources to load phases and keep the network counters.

    Totals are updated together with the phase counters on every accepted
    observation, so per-phase sums always equal the totals.

    Attributes:
        content_loaded: Content-loaded time in ms, +inf until the first load signal.
        assignments: Identity -> phase for every accepted observation.
    """

    def __init__(self, summary: Summary, config: MonitorConfig, clock: Callable[[], float]):
        self.summary = summary
        self.clock = clock
        self.content_loaded = math.inf
        self.ring = InteractionRing(
            config.interaction_window_ms, config.interaction_ring_size, config.interaction_grace_ms
        )
        self.assignments: dict[tuple[str, float], str] = {}

    def mark_content_loaded(self, at: float) -> bool:
        """Record the first load-completed signal. Later signals are ignored."""
        if not math.isinf(self.content_loaded):
            return False
        self.content_loaded = at
        logger.debug(f"Content loaded at {at:.1f}ms")
        return True

    def record_gesture(self, kind: str, at: float, key: str | None = None) -> bool:
        """Open an interaction window for a primary gesture."""
        if not is_activation_gesture(kind, key):
            return False
        self.ring.prune(self.clock())
        self.ring.open(at)
        return True

    def classify(self, start_time: float) -> str:
        """Phase for a start time given the current windows and load signal."""
        if self.ring.covers(start_time):
            return "user"
        if start_time >= self.content_loaded:
            return "subload"
        return "initial"

    def observe(self, observation: ResourceObservation) -> str | None:
        """Account for one resource.

        Returns:
            Assigned phase, or None if this identity was already counted.
        """
        if observation.identity in self.assignments:
            return None

        self.ring.prune(self.clock())
        phase = self.classify(observation.start_time)
        self.assignments[observation.identity] = phase

        if self.summary.total_requests is None:
            for name in (*PHASES, "total"):
                self.summary.set_once(f"{name}_requests", 0)
                self.summary.set_once(f"{name}_bytes", 0)

        self.summary.bump(f"{phase}_requests")
        self.summary.bump(f"{phase}_bytes", observation.size)
        self.summary.bump("total_requests")
        self.summary.bump("total_bytes", observation.size)
        return phase

    def observe_entry(self, entry: PerformanceEntry) -> str | None:
        return self.observe(ResourceObservation.from_entry(entry))

    def totals(self) -> dict[str, dict[str, int]]:
        """Per-phase and total {requests, bytes}."""
        result = {}
        for name in (*PHASES, "total"):
            requests, size = self.summary.phase(name)
            result[name] = {"requests": requests or 0, "bytes": size or 0}
        return result
