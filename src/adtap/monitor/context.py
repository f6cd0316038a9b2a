"""Execution-context model and the per-load monitor context.

The monitored content reaches the outside world only through the surfaces of
an ExecutionContext. A surface is an attribute bag of callables; capabilities
replace those callables with intercepted versions. The MonitorContext is the
explicit state every wrapper and detector is handed at injection time.

Surfaces and their entry points:
  network:     fetch(url, ...), xhr_open(request, method, url, ...), xhr_send(request, body=None)
  storage:     set_item(key, value), remove_item(key), clear(), set_cookie(value)
  dialogs:     alert(message), confirm(message), prompt(message, default)
  console:     error(*args), warn(*args)
  document:    write(*text), writeln(*text), add_event_listener(kind, callback),
               get_context_2d(canvas), elements(), viewport(), root, query_anchor()
  elements:    set_property(element, name, value), set_attribute(element, name, value)
  styles:      set_property(style, prop, value, priority=None), set_css_text(style, text),
               set_sheet_text(node, text)
  observers:   observe(target, callback)
  performance: observe(entry_type, callback) -> disconnect
  window:      open(url, ...)

PUBLIC API:
  - Surface: Attribute bag of capability callables
  - ExecutionContext: The monitored context as a set of surfaces
  - MonitorContext: Summary, channel, scheduler, clock and config for one load
  - Element: Minimal element reference (tag, attributes, parent)
  - Gesture: User input delivered to the context
  - Rect, ElementBox: Layout snapshot types used by scans
  - PerformanceEntry: Timing record (resource, paint, longtask, frame)
"""

from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from adtap.config import MonitorConfig
from adtap.monitor.channel import EventChannel
from adtap.monitor.events import Event
from adtap.monitor.scheduler import Scheduler
from adtap.monitor.summary import Summary

if TYPE_CHECKING:
    from adtap.monitor.assets import AssetTable


class Surface(SimpleNamespace):
    """Attribute bag of one capability surface's callables."""


@dataclass
class ExecutionContext:
    """The monitored context, reachable only through its surfaces.

    Attributes:
        globals: The context's global namespace (clickTag, Enabler, gsap, ...).
    """

    network: Surface | None = None
    storage: Surface | None = None
    dialogs: Surface | None = None
    console: Surface | None = None
    document: Surface | None = None
    elements: Surface | None = None
    styles: Surface | None = None
    observers: Surface | None = None
    performance: Surface | None = None
    window: Surface | None = None
    globals: dict = field(default_factory=dict)


@dataclass
class Element:
    """Element reference as seen by hooks."""

    tag: str
    attributes: dict = field(default_factory=dict)
    parent: Optional["Element"] = None

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    @property
    def tag_name(self) -> str:
        return self.tag.upper()


@dataclass
class Gesture:
    """User input event.

    Attributes:
        kind: pointerdown, mousedown, touchstart, keydown or click.
        timestamp: Context clock time of the input, in ms.
        trusted: False for script-synthesized events.
        key: Key name for keyboard input.
    """

    kind: str
    timestamp: float
    target: Element | None = None
    trusted: bool = True
    key: str | None = None
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


@dataclass
class Rect:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass
class ElementBox:
    """Layout snapshot of one element.

    Attributes:
        inline_style: Raw style attribute text.
        computed: Computed style, keyed by CSS property name.
        rect: Bounding client rect, if laid out.
    """

    tag: str
    inline_style: str = ""
    computed: Mapping[str, str] = field(default_factory=dict)
    rect: Rect | None = None


@dataclass
class PerformanceEntry:
    """Timing record delivered by the performance surface."""

    entry_type: str
    name: str = ""
    start_time: float = 0.0
    duration: float = 0.0
    transfer_size: int = 0
    encoded_body_size: int = 0
    decoded_body_size: int = 0


@dataclass
class MonitorContext:
    """State threaded into every wrapper and detector of one load."""

    summary: Summary
    channel: EventChannel
    scheduler: Scheduler
    config: MonitorConfig = field(default_factory=MonitorConfig)
    assets: Optional["AssetTable"] = None
    clock: Callable[[], float] | None = None

    def now(self) -> float:
        """Current context time in ms."""
        return self.clock() if self.clock else self.scheduler.now()

    def emit(self, event: Event) -> None:
        self.channel.post(event)

    def rewrite(self, url: Any) -> Any:
        """Map a declared reference to its local handle, or return it unchanged."""
        if self.assets is None or not isinstance(url, str):
            return url
        return self.assets.rewrite(url)
