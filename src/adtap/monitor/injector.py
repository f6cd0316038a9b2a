"""Composition of capabilities and detectors into one monitored load.

PUBLIC API:
  - Injector: Installs the monitor into an execution context, once
  - Probe: Handle on an installed monitor (scans, simulate_click, teardown)
  - SnapshotBroadcaster: Periodic summary-snapshot emission
  - INJECTED_FLAG: Global marking a context as already instrumented
"""

import logging
from typing import Any, Callable

from adtap.monitor.animation import AnimationScanner, TimelineLibraryHooks
from adtap.monitor.capabilities import (
    Capability,
    DialogCapability,
    DocumentWriteCapability,
    ElementReferenceCapability,
    LogCapability,
    NetworkCapability,
    StorageCapability,
    StructuralChangeCapability,
    StyleCapability,
    WindowCapability,
    fail_open,
)
from adtap.monitor.clickexit import ClickExitTracker, ExitApiProbe
from adtap.monitor.context import ElementBox, ExecutionContext, Gesture, MonitorContext
from adtap.monitor.events import SummarySnapshot, UncaughtError
from adtap.monitor.geometry import BorderDetector, DrawingCapability
from adtap.monitor.phases import POINTER_GESTURES, PhaseClassifier
from adtap.monitor.scheduler import TaskHandle
from adtap.monitor.timing import TimingRecorder

logger = logging.getLogger(__name__)

INJECTED_FLAG = "__adtap_injected__"
KNOWN_LIBRARY_GLOBALS = ("jQuery", "$")
ROOT_TAGS = ("BODY", "HTML")


def _guarded(fn: Callable) -> Callable:
    def listener(*args, **kwargs):
        fail_open(fn, *args, **kwargs)

    return listener


class SnapshotBroadcaster:
    """Emit the summary now, then every snapshot_interval_ms, snapshot_count times in all.

    Once the periodic run is over, refresh() re-broadcasts on demand so
    late changes still reach the host.
    """

    def __init__(self, monitor: MonitorContext):
        self.monitor = monitor
        self.sequence = 0
        self.ticks = 0
        self.stopped = False
        self._handle: TaskHandle | None = None

    @property
    def periodic_done(self) -> bool:
        return self.ticks >= self.monitor.config.snapshot_count

    def start(self) -> None:
        self._tick()

    def broadcast(self) -> None:
        if self.stopped:
            return
        self.sequence += 1
        self.monitor.emit(SummarySnapshot(summary=self.monitor.summary.snapshot(), sequence=self.sequence))

    def refresh(self) -> None:
        """Broadcast if the periodic snapshots have already run out."""
        if self.periodic_done:
            self.broadcast()

    def _tick(self) -> None:
        self.ticks += 1
        self.broadcast()
        if not self.periodic_done:
            self._handle = self.monitor.scheduler.call_later(self.monitor.config.snapshot_interval_ms, self._tick)

    def cancel(self) -> None:
        if self._handle:
            self._handle.cancel()

    def finish(self) -> None:
        """Cancel the periodic run and emit one last snapshot."""
        self.cancel()
        self.broadcast()
        self.stopped = True


class Probe:
    """One installed monitor.

    Attributes:
        phases: Phase classifier and resource accountant.
        borders: Border detector fed by canvas strokes and DOM scans.
        animations: CSS timing maxima.
        timelines: gsap/anime hooks.
        clicks: Click-exit tracker.
        exit_probe: Exit-API discovery task.
        timing: Load timing recorder.
        broadcaster: Summary snapshot emitter.
    """

    def __init__(self, monitor: MonitorContext, context: ExecutionContext, exit_discovery: bool = True):
        self.monitor = monitor
        self.context = context
        self.exit_discovery = exit_discovery
        self.summary = monitor.summary
        namespace = context.globals
        config = monitor.config

        self.phases = PhaseClassifier(self.summary, config, monitor.now)
        self.borders = BorderDetector(self.summary, config)
        self.animations = AnimationScanner(self.summary, config.infinite_loop_sentinel, config.animation_scan_limit)
        self.timelines = TimelineLibraryHooks(monitor, self.animations, namespace)
        self.clicks = ClickExitTracker(monitor, namespace, on_report=self._after_click)
        self.exit_probe = ExitApiProbe(monitor, self.clicks, namespace)
        self.timing = TimingRecorder(monitor)
        self.broadcaster = SnapshotBroadcaster(monitor)
        self.structure = StructuralChangeCapability(monitor)

        self.capabilities: list[Capability] = [
            NetworkCapability(monitor),
            StorageCapability(monitor),
            DialogCapability(monitor),
            LogCapability(monitor),
            DocumentWriteCapability(monitor),
            DrawingCapability(monitor, self.borders),
            ElementReferenceCapability(monitor),
            StyleCapability(monitor),
            self.structure,
            WindowCapability(monitor, self.clicks.report, self.clicks.global_destination),
        ]

        self._handles: list[TaskHandle] = []
        self._disconnects: list[Callable[[], None]] = []
        self.torn_down = False

    @property
    def document(self):
        return self.context.document

    def install(self) -> "Probe":
        self._wrap_surfaces()
        self._listen()
        self._observe_performance()
        self._observe_structure()
        self.refresh_known_library()

        if self.exit_discovery:
            self.exit_probe.start()
        self.timelines.discover()
        for offset in self.monitor.config.scan_offsets_ms:
            self._handles.append(self.monitor.scheduler.call_later(offset, _guarded(self.scan)))
        self.timing.start_window()
        self.broadcaster.start()
        return self

    def _wrap_surfaces(self) -> None:
        for capability in self.capabilities:
            original = getattr(self.context, capability.surface)
            if original is None:
                continue
            setattr(self.context, capability.surface, capability.wrap(original))

    def _listen(self) -> None:
        add = getattr(self.document, "add_event_listener", None)
        if add is None:
            return
        add("DOMContentLoaded", _guarded(self.timing.on_content_ready))
        add("load", _guarded(self.on_load))
        add("error", _guarded(self.on_error))
        for kind in (*POINTER_GESTURES, "keydown"):
            add(kind, _guarded(self.on_gesture))
        add("click", _guarded(self.clicks.on_click))

    def _observe_performance(self) -> None:
        observe = getattr(self.context.performance, "observe", None)
        if observe is None:
            return
        for entry_type, callback in (
            ("resource", self.on_resource),
            ("paint", self.timing.on_paint),
            ("frame", self.timing.on_frame),
        ):
            disconnect = fail_open(observe, entry_type, _guarded(callback))
            if callable(disconnect):
                self._disconnects.append(disconnect)

        disconnect = fail_open(observe, "longtask", _guarded(self.timing.on_long_task))
        self.timing.attach_long_tasks(disconnect if callable(disconnect) else None)

    def _observe_structure(self) -> None:
        initial = sum(1 for box in self.element_boxes() if box.tag.upper() == "IFRAME")
        self.summary.set_once("runtime_iframes", initial)
        observers = self.context.observers
        root = getattr(self.document, "root", None)
        if observers is not None and root is not None:
            observers.observe(root, _guarded(self.on_mutations))

    # Listeners

    def on_load(self, *args) -> None:
        self.phases.mark_content_loaded(self.monitor.now())

    def on_error(self, event: Any = None) -> None:
        self.summary.bump("errors")
        message = getattr(event, "message", None) or ("" if event is None else str(event))
        self.monitor.emit(UncaughtError(message=message))

    def on_gesture(self, gesture: Gesture) -> None:
        self.phases.record_gesture(gesture.kind, gesture.timestamp, gesture.key)

    def on_resource(self, entry: Any) -> None:
        if self.phases.observe_entry(entry) is not None:
            self.broadcaster.refresh()

    def _after_click(self, url: str, source: str, name: str | None) -> None:
        self.broadcaster.refresh()

    def on_mutations(self, mutations: Any) -> None:
        self.timing.on_mutation()
        for mutation in mutations or ():
            for node in getattr(mutation, "added_nodes", ()) or ():
                if str(getattr(node, "tag", "")).upper() == "IFRAME":
                    self.summary.bump("runtime_iframes")

    # Scans

    def element_boxes(self) -> list[ElementBox]:
        elements = getattr(self.document, "elements", None)
        return list(fail_open(elements) or ()) if callable(elements) else []

    def refresh_known_library(self) -> None:
        present = any(self.context.globals.get(name) is not None for name in KNOWN_LIBRARY_GLOBALS)
        if present or self.summary.known_library is None:
            self.summary.known_library = present

    def scan(self) -> None:
        """One border/animation pass over the current layout."""
        boxes = self.element_boxes()
        viewport = fail_open(getattr(self.document, "viewport", lambda: None)) or (0, 0)
        root = next((b for b in boxes if b.tag.upper() in ROOT_TAGS), None)

        fail_open(self.borders.scan, boxes, viewport, root)
        fail_open(self.animations.scan, boxes)
        fail_open(self.timelines.poll)
        fail_open(self.refresh_known_library)
        self.broadcaster.broadcast()

    # Host actions

    def simulate_click(self, target: Any = None) -> Gesture:
        """Deliver a press followed by a click on target (default: first anchor)."""
        if target is None:
            query = getattr(self.document, "query_anchor", None)
            target = fail_open(query) if callable(query) else None
        now = self.monitor.now()
        self.on_gesture(Gesture("pointerdown", now, target=target))
        gesture = Gesture("click", now, target=target)
        self.clicks.on_click(gesture)
        return gesture

    def teardown(self) -> None:
        """Stop every timer and observer, send a last snapshot, release asset handles if configured."""
        if self.torn_down:
            return
        self.torn_down = True
        for handle in self._handles:
            handle.cancel()
        self.exit_probe.cancel()
        self.timelines.cancel()
        for disconnect in self._disconnects:
            fail_open(disconnect)
        self.timing.close_window()
        self.broadcaster.finish()
        if self.monitor.config.revoke_on_teardown and self.monitor.assets is not None:
            self.monitor.assets.revoke()
        logger.info("Monitor torn down")


class Injector:
    """Install the monitor into execution contexts."""

    def __init__(self, monitor: MonitorContext):
        self.monitor = monitor

    def inject(self, context: ExecutionContext, exit_discovery: bool = True) -> Probe | None:
        """Instrument a context.

        Args:
            context: Context to instrument.
            exit_discovery: Poll for a late exit API and install the fallback
                shim. Off when the context reports its own shim.

        Returns:
            The installed Probe, or None if the context was already instrumented.
        """
        if context.globals.get(INJECTED_FLAG):
            logger.debug("Context already instrumented, skipping")
            return None
        context.globals[INJECTED_FLAG] = True
        probe = Probe(self.monitor, context, exit_discovery).install()
        logger.info(f"Monitor installed with {len(probe.capabilities)} capabilities")
        return probe
