"""Load timing: content-ready, first render, frames and blocking tasks."""

import logging
from typing import Callable

from adtap.monitor.context import MonitorContext, PerformanceEntry

logger = logging.getLogger(__name__)

PAINT_NAMES = ("first-paint", "first-contentful-paint")


class TimingRecorder:
    """Fill the Summary timing fields from document and performance signals.

    first_render_ms prefers paint timing; the first structural mutation is a
    fallback until a paint entry arrives. The long-task observer and the
    frame jitter sample both stop after long_task_window_ms.
    """

    def __init__(self, monitor: MonitorContext):
        self.monitor = monitor
        self.summary = monitor.summary
        self._render_from_paint = False
        self._last_frame: float | None = None
        self._window_frames = 0
        self._slow_frames = 0
        self._sampling = True
        self._disconnect_long_tasks: Callable[[], None] | None = None

    def on_content_ready(self, *args) -> None:
        self.summary.set_once("content_ready_ms", round(self.monitor.now(), 1))

    def on_paint(self, entry: PerformanceEntry) -> None:
        if entry.name not in PAINT_NAMES or self._render_from_paint:
            return
        if self.summary.first_render_ms is None or entry.start_time < self.summary.first_render_ms:
            self.summary.first_render_ms = round(entry.start_time, 1)
        self._render_from_paint = True

    def on_mutation(self, *args) -> None:
        if not self._render_from_paint:
            self.summary.set_once("first_render_ms", round(self.monitor.now(), 1))

    def on_frame(self, entry: PerformanceEntry) -> None:
        self.summary.bump("frames")
        if self._sampling:
            if self._last_frame is not None and entry.start_time - self._last_frame > self.monitor.config.slow_frame_ms:
                self._slow_frames += 1
            self._window_frames += 1
        self._last_frame = entry.start_time

    def on_long_task(self, entry: PerformanceEntry) -> None:
        self.summary.bump("long_tasks_ms", max(0.0, entry.duration))

    def attach_long_tasks(self, disconnect: Callable[[], None] | None) -> None:
        self._disconnect_long_tasks = disconnect
        self.summary.set_once("long_tasks_ms", 0.0)

    def start_window(self) -> None:
        """Close the jitter sample and the long-task observer after the window."""
        self.monitor.scheduler.call_later(self.monitor.config.long_task_window_ms, self.close_window)

    def close_window(self) -> None:
        self._sampling = False
        if self._window_frames:
            self.summary.cpu_score = round(self._slow_frames / self._window_frames, 3)
        else:
            self.summary.set_once("cpu_score", 0.0)
        if self._disconnect_long_tasks:
            self._disconnect_long_tasks()
            self._disconnect_long_tasks = None
            logger.debug("Long-task observer disconnected")
