"""Drive the monitor from a real Chrome page.

The relay script reports raw page activity through a Runtime binding. Each
message is replayed through a RemoteContext, an ExecutionContext whose
original surfaces are no-ops, so the same capabilities and detectors that run
against in-process contexts do the accounting. Bundle files are served from
the asset table's handle origin through Fetch interception.

PUBLIC API:
  - CdpBridge: Wires a CDPSession to a monitor and loads the creative
  - RemoteContext: ExecutionContext fed from relay messages
  - PageClock: Monitor clock following the page's performance.now()
"""

import base64
import json
import logging
import queue
import re
import threading
import time
from collections import defaultdict
from types import SimpleNamespace
from typing import Any, Callable

from adtap.cdp.probe import ANCHOR_CENTER_EXPRESSION, BINDING_NAME, RELAY_SCRIPT, SNAPSHOT_EXPRESSION
from adtap.cdp.session import CDPSession
from adtap.monitor.assets import AssetTable, guess_mime
from adtap.monitor.capabilities import fail_open
from adtap.monitor.context import (
    Element,
    ElementBox,
    ExecutionContext,
    Gesture,
    MonitorContext,
    PerformanceEntry,
    Rect,
    Surface,
)
from adtap.monitor.injector import Injector, Probe

logger = logging.getLogger(__name__)

_ENTRY_FIELDS = ("entry_type", "name", "start_time", "duration", "transfer_size", "encoded_body_size", "decoded_body_size")


def _noop(*args, **kwargs):
    return None


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class PageClock:
    """Page time in ms, extrapolated from the last relay timestamp."""

    def __init__(self):
        self._page = 0.0
        self._at = time.monotonic()
        self._lock = threading.Lock()

    def update(self, page_time: Any) -> None:
        if not isinstance(page_time, (int, float)):
            return
        with self._lock:
            if page_time >= self._page:
                self._page = float(page_time)
                self._at = time.monotonic()

    def now(self) -> float:
        with self._lock:
            return self._page + (time.monotonic() - self._at) * 1000


class RemoteContext:
    """ExecutionContext whose surfaces are fed by relay messages.

    Attributes:
        context: The ExecutionContext handed to the Injector.
        root: Stand-in root element for structural observation.
    """

    def __init__(self, snapshot: Callable[[], dict | None], assets: AssetTable | None = None):
        self._snapshot = snapshot
        self.assets = assets
        self._listeners: dict[str, list[Callable]] = defaultdict(list)
        self._performance: dict[str, list[Callable]] = defaultdict(list)
        self._mutations: list[Callable] = []
        self._canvases: dict[int, SimpleNamespace] = {}
        self._surfaces: dict[int, Surface] = {}
        self._requests: dict[int, object] = {}
        self._layout: dict = {"viewport": [0, 0], "elements": []}
        self.root = Element("BODY")

        self.context = ExecutionContext(
            network=Surface(fetch=_noop, xhr_open=_noop, xhr_send=_noop),
            storage=Surface(set_item=_noop, remove_item=_noop, clear=_noop, set_cookie=_noop),
            dialogs=Surface(alert=_noop, confirm=_noop, prompt=_noop),
            console=Surface(error=_noop, warn=_noop),
            document=Surface(
                write=_noop,
                writeln=_noop,
                add_event_listener=self._add_listener,
                get_context_2d=self._drawing_surface,
                elements=self._elements,
                viewport=self._viewport,
                root=self.root,
                query_anchor=lambda: None,
            ),
            elements=Surface(set_property=_noop, set_attribute=_noop),
            styles=Surface(set_property=_noop, set_css_text=_noop, set_sheet_text=_noop),
            observers=Surface(observe=self._observe),
            performance=Surface(observe=self._observe_performance),
            window=Surface(open=_noop),
        )

    # Original surface implementations

    def _add_listener(self, kind: str, callback: Callable) -> None:
        self._listeners[kind].append(callback)

    def _observe(self, target: Any, callback: Callable) -> None:
        self._mutations.append(callback)

    def _observe_performance(self, entry_type: str, callback: Callable) -> Callable[[], None]:
        self._performance[entry_type].append(callback)

        def disconnect() -> None:
            if callback in self._performance[entry_type]:
                self._performance[entry_type].remove(callback)

        return disconnect

    def _drawing_surface(self, canvas: SimpleNamespace) -> Surface:
        key = id(canvas)
        if key not in self._surfaces:
            ops = {
                _snake(op): _noop
                for op in (
                    "save", "restore", "setTransform", "resetTransform", "transform", "translate", "scale",
                    "rotate", "beginPath", "moveTo", "lineTo", "quadraticCurveTo", "bezierCurveTo", "arc",
                    "rect", "closePath", "stroke", "strokeRect",
                )
            }
            self._surfaces[key] = Surface(canvas=canvas, line_width=1, stroke_style="#000000", **ops)
        return self._surfaces[key]

    def _elements(self) -> list[ElementBox]:
        layout = self._snapshot()
        if layout:
            self._layout = layout
        boxes = []
        for item in self._layout.get("elements", []):
            rect = item.get("rect")
            boxes.append(
                ElementBox(
                    tag=item.get("tag", ""),
                    inline_style=item.get("style", ""),
                    computed=item.get("computed", {}),
                    rect=Rect(*rect) if rect and len(rect) == 4 else None,
                )
            )
        return boxes

    def _viewport(self) -> tuple[float, float]:
        width, height = (self._layout.get("viewport") or [0, 0])[:2]
        return float(width), float(height)

    # Replay

    def replay(self, message: dict) -> bool:
        """Feed one relay message through the (intercepted) surfaces.

        Returns:
            False if the message is not a surface call this context knows.
        """
        surface, op, args = message.get("surface"), message.get("op"), message.get("args") or []
        ctx = self.context
        at = float(message.get("t") or 0.0)

        if surface == "network":
            if op == "fetch":
                ctx.network.fetch(args[0], method=args[1] if len(args) > 1 else "GET")
            elif op == "xhr_open":
                request = self._requests.setdefault(args[0], object())
                ctx.network.xhr_open(request, args[1], args[2])
            elif op == "xhr_send":
                ctx.network.xhr_send(self._requests.pop(args[0], object()))
            else:
                return False
        elif surface in ("storage", "dialogs", "console") or (surface == "document" and op in ("write", "writeln")):
            getattr(getattr(ctx, surface), op)(*args)
        elif surface == "document" and op == "event":
            self._dispatch(args[0], args[1] if len(args) > 1 else {}, at)
        elif surface == "elements":
            tag, name, value = args
            getattr(ctx.elements, op)(Element(tag), name, value)
        elif surface == "styles":
            getattr(ctx.styles, op)(None, *args)
        elif surface == "observers" and op == "mutation":
            mutation = SimpleNamespace(added_nodes=[Element(tag) for tag in (args[0] if args else [])])
            for callback in list(self._mutations):
                callback([mutation])
        elif surface == "performance" and op == "entry":
            self._deliver_entry(args[0])
        elif surface == "canvas" and op == "ops":
            for record in args:
                fail_open(self._replay_canvas, *record)
        elif surface == "window" and op == "open":
            ctx.window.open(args[0] if args and args[0] else None)
        else:
            return False
        return True

    def _dispatch(self, kind: str, detail: dict, at: float) -> None:
        timestamp = detail.get("timestamp", at)
        trusted = detail.get("trusted", True)
        if kind in ("DOMContentLoaded", "load"):
            event = None
        elif kind == "error":
            event = SimpleNamespace(message=detail.get("message", ""))
        elif kind == "click":
            href = detail.get("href")
            target = Element("A", {"href": href}) if href else None
            event = Gesture("click", timestamp, target=target, trusted=trusted)
        else:
            event = Gesture(kind, timestamp, trusted=trusted, key=detail.get("key"))

        args = () if event is None else (event,)
        for callback in list(self._listeners.get(kind, ())):
            callback(*args)

    def _deliver_entry(self, data: dict) -> None:
        entry = PerformanceEntry(**{k: data[k] for k in _ENTRY_FIELDS if data.get(k) is not None})
        if (
            entry.entry_type == "resource"
            and self.assets is not None
            and not (entry.transfer_size or entry.encoded_body_size or entry.decoded_body_size)
        ):
            # Fulfilled responses report no sizes; use the bundle's.
            entry.decoded_body_size = self.assets.size_of(entry.name)
        for callback in list(self._performance.get(entry.entry_type, ())):
            callback(entry)

    def _replay_canvas(self, canvas_id, width, height, op, numbers, line_width, stroke_style) -> None:
        canvas = self._canvases.setdefault(canvas_id, SimpleNamespace(width=width, height=height))
        canvas.width, canvas.height = width, height
        surface = self.context.document.get_context_2d(canvas)
        surface.line_width = line_width
        surface.stroke_style = stroke_style
        getattr(surface, _snake(op))(*numbers)


class CdpBridge:
    """Connect a monitor to a Chrome page through CDP.

    Relay messages arrive on the WebSocket thread and are queued; a worker
    thread feeds them to the monitor under the scheduler lock, so the
    WebSocket thread never waits on monitor work (scans call back into CDP).
    """

    def __init__(self, session: CDPSession, monitor: MonitorContext):
        self.session = session
        self.monitor = monitor
        self.clock = PageClock()
        self.remote = RemoteContext(self.snapshot, monitor.assets)
        self.probe: Probe | None = None
        self._queue: queue.Queue = queue.Queue()
        self._worker: threading.Thread | None = None
        self._off: list[Callable[[], None]] = []

    def attach(self) -> Probe:
        """Install the monitor and the relay. Call before loading the creative."""
        if self.probe is not None:
            raise RuntimeError("Bridge already attached")

        self.monitor.clock = self.clock.now
        self.probe = Injector(self.monitor).inject(self.remote.context, exit_discovery=False)

        self._worker = threading.Thread(target=self._drain, daemon=True)
        self._worker.start()

        self._off.append(self.session.on("Runtime.bindingCalled", self._on_binding))
        self.session.execute("Runtime.enable")
        self.session.execute("Page.enable")
        self.session.execute("Runtime.addBinding", {"name": BINDING_NAME})
        self.session.execute("Page.addScriptToEvaluateOnNewDocument", {"source": RELAY_SCRIPT})

        if self.monitor.assets is not None:
            self._off.append(self.session.on("Fetch.requestPaused", self._on_request_paused))
            self.session.execute(
                "Fetch.enable",
                {"patterns": [{"urlPattern": f"{self.monitor.assets.handle_base}*", "requestStage": "Request"}]},
            )

        logger.info("CDP bridge attached")
        return self.probe

    def load(self, url: str | None = None) -> str:
        """Navigate to url, or to the bundle's primary document."""
        if url is None:
            assets = self.monitor.assets
            if assets is None:
                raise RuntimeError("No bundle loaded and no URL given")
            url = assets.entries[assets.primary_path]
        self.session.execute("Page.navigate", {"url": url})
        logger.info(f"Navigated to {url}")
        return url

    def snapshot(self) -> dict | None:
        """Viewport and element layout of the current page."""
        try:
            return self.session.evaluate(SNAPSHOT_EXPRESSION, timeout=10)
        except (RuntimeError, TimeoutError) as e:
            logger.debug(f"Layout snapshot failed: {e}")
            return None

    def simulate_click(self) -> bool:
        """Dispatch a trusted mouse click on the first anchor (or body)."""
        point = self.session.evaluate(ANCHOR_CENTER_EXPRESSION)
        if not point:
            return False
        x, y = point
        for kind in ("mousePressed", "mouseReleased"):
            self.session.execute(
                "Input.dispatchMouseEvent", {"type": kind, "x": x, "y": y, "button": "left", "clickCount": 1}
            )
        return True

    def detach(self) -> None:
        """Tear down the monitor and stop serving the bundle."""
        for off in self._off:
            off()
        self._off.clear()

        if self.probe is not None:
            with self.monitor.scheduler.lock:
                self.probe.teardown()

        if self.monitor.assets is not None and self.session.is_connected:
            try:
                self.session.execute("Fetch.disable")
            except (RuntimeError, TimeoutError) as e:
                logger.debug(f"Fetch.disable failed: {e}")

        self._queue.put(None)
        if self._worker and self._worker.is_alive():
            self._worker.join(timeout=2)
        logger.info("CDP bridge detached")

    # WebSocket thread

    def _on_binding(self, params: dict) -> None:
        if params.get("name") != BINDING_NAME:
            return
        try:
            message = json.loads(params.get("payload", ""))
        except ValueError:
            logger.debug("Dropping malformed relay payload")
            return
        if isinstance(message, dict):
            self._queue.put(message)

    def _on_request_paused(self, params: dict) -> None:
        """Serve a bundle file. Uses send() since this runs on the WebSocket thread."""
        request_id = params.get("requestId")
        url = params.get("request", {}).get("url", "")
        assets = self.monitor.assets
        body = assets.content(url) if assets is not None else None

        if body is None:
            logger.debug(f"Bundle has no file for {url}")
            self.session.send(
                "Fetch.fulfillRequest",
                {"requestId": request_id, "responseCode": 404, "responseHeaders": [], "body": ""},
            )
            return

        path = assets.handle_path(url) or url
        self.session.send(
            "Fetch.fulfillRequest",
            {
                "requestId": request_id,
                "responseCode": 200,
                "responseHeaders": [
                    {"name": "Content-Type", "value": guess_mime(path)},
                    {"name": "Content-Length", "value": str(len(body))},
                ],
                "body": base64.b64encode(body).decode("ascii"),
            },
        )

    # Worker thread

    def _drain(self) -> None:
        while True:
            message = self._queue.get()
            if message is None:
                return
            with self.monitor.scheduler.lock:
                self.clock.update(message.get("t"))
                fail_open(self.feed, message)

    def feed(self, message: dict) -> None:
        """Apply one relay message to the monitor."""
        probe = self.probe
        surface, op, args = message.get("surface"), message.get("op"), message.get("args") or []

        if probe is not None and surface == "window" and op == "exit":
            method, name, url = (list(args) + [None, None, None])[:3]
            probe.clicks.report(url or probe.clicks.global_destination(), f"Enabler.{method}", name)
        elif surface == "window" and op == "exit_shim":
            self.monitor.summary.exit_shim_installed = True
            logger.info("Page installed the fallback exit shim")
        elif probe is not None and surface == "timeline" and op == "tween":
            duration, repeat = (list(args) + [None, None])[:2]
            if isinstance(duration, (int, float)):
                probe.animations.fold_duration(float(duration))
            if isinstance(repeat, (int, float)):
                if repeat < 0:
                    probe.animations.mark_infinite()
                else:
                    probe.animations.fold_loops(repeat + 1)
        elif surface == "globals" and op == "update":
            self._update_globals(args[0] if args else {})
        elif not self.remote.replay(message):
            logger.debug(f"Unknown relay message {surface}.{op}")

    def _update_globals(self, values: dict) -> None:
        namespace = self.remote.context.globals
        if values.get("jQuery"):
            namespace["jQuery"] = True
        if values.get("clickTag"):
            namespace["clickTag"] = values["clickTag"]
