"""Capability interposition layer.

Each Capability owns one surface of the execution context. `wrap(surface)`
returns a copy of the surface whose entry points first run the capability's
hook and then call the original. Hooks may rewrite arguments; they never stop
the call (the observer target guard is the one exception) and any failure
inside a hook is discarded.

PUBLIC API:
  - Capability: Base class with wrap(original) -> intercepted
  - SKIP: Hook return value that turns the call into a no-op
  - fail_open: Run a callable and discard its failure
  - NetworkCapability, StorageCapability, DialogCapability, LogCapability,
    DocumentWriteCapability, ElementReferenceCapability, StyleCapability,
    StructuralChangeCapability, WindowCapability: Surface capabilities
"""

import functools
import logging
from typing import Any, Callable, ClassVar

from adtap.monitor.context import MonitorContext, Surface
from adtap.monitor.events import Dialog, LogEntry, NetworkActivity, StorageWrite

logger = logging.getLogger(__name__)

SKIP = object()

_SRC_TAGS = {"IMG", "VIDEO", "AUDIO", "SCRIPT", "SOURCE"}
_MEDIA_TAGS = {"VIDEO", "AUDIO", "SOURCE"}


def fail_open(fn: Callable, *args, **kwargs) -> Any:
    """Call fn, returning None instead of raising."""
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        logger.debug(f"Discarded failure in {getattr(fn, '__name__', fn)}: {e}")
        return None


def _message(args: tuple) -> str:
    return " ".join(str(a) for a in args)


def _tag(element: Any) -> str:
    tag = getattr(element, "tag", None) or getattr(element, "tag_name", "")
    return str(tag).upper()


class Capability:
    """Interposition on one execution-context surface.

    Subclasses set `surface` and `entry_points` and define `on_<entry>` hooks.
    A hook returns None to pass the call through unchanged, an (args, kwargs)
    pair to rewrite it, or SKIP to drop it.
    """

    surface: ClassVar[str] = ""
    entry_points: ClassVar[tuple[str, ...]] = ()

    def __init__(self, monitor: MonitorContext):
        self.monitor = monitor

    @property
    def summary(self):
        return self.monitor.summary

    def wrap(self, original: Surface) -> Surface:
        """Build the intercepted surface. The original is left untouched."""
        intercepted = Surface(**vars(original))
        for name in self.entry_points:
            fn = getattr(original, name, None)
            if callable(fn):
                setattr(intercepted, name, self._intercept(name, fn))
        return intercepted

    def _intercept(self, name: str, original: Callable) -> Callable:
        hook = getattr(self, f"on_{name}")

        @functools.wraps(original)
        def intercepted(*args, **kwargs):
            result = fail_open(hook, *args, **kwargs)
            if result is SKIP:
                return None
            if isinstance(result, tuple) and len(result) == 2:
                args, kwargs = result
            return original(*args, **kwargs)

        intercepted.__adtap_original__ = original
        return intercepted


class NetworkCapability(Capability):
    """Network issuance: one-shot fetch plus the stateful open/send pair.

    Relative URLs are remapped to local handles. fetch is reported when
    called; an XHR is reported on send, with the URL remembered from open.
    """

    surface = "network"
    entry_points = ("fetch", "xhr_open", "xhr_send")

    def __init__(self, monitor: MonitorContext):
        super().__init__(monitor)
        self._open: dict[int, tuple[str, str]] = {}

    def on_fetch(self, url, *args, **kwargs):
        method = str(kwargs.get("method", "GET")).upper()
        self.summary.bump("network_calls")
        self.monitor.emit(NetworkActivity(kind="fetch", url=str(url), method=method))
        return (self.monitor.rewrite(url), *args), kwargs

    def on_xhr_open(self, request, method, url, *args, **kwargs):
        self._open[id(request)] = (str(method).upper(), str(url))
        return (request, method, self.monitor.rewrite(url), *args), kwargs

    def on_xhr_send(self, request, *args, **kwargs):
        method, url = self._open.pop(id(request), ("GET", ""))
        self.summary.bump("network_calls")
        self.monitor.emit(NetworkActivity(kind="xhr", url=url, method=method))


class StorageCapability(Capability):
    """Persistent key-value storage and cookie writes."""

    surface = "storage"
    entry_points = ("set_item", "remove_item", "clear", "set_cookie")

    def on_set_item(self, key, value, *args, **kwargs):
        self.summary.bump("storage_writes")
        self.monitor.emit(StorageWrite(op="set", key=str(key), value=str(value)))

    def on_remove_item(self, key, *args, **kwargs):
        self.monitor.emit(StorageWrite(op="remove", key=str(key)))

    def on_clear(self, *args, **kwargs):
        self.monitor.emit(StorageWrite(op="clear"))

    def on_set_cookie(self, value, *args, **kwargs):
        self.summary.bump("cookie_writes")
        self.monitor.emit(StorageWrite(op="cookie", value=str(value)))


class DialogCapability(Capability):
    """The three blocking prompt shapes."""

    surface = "dialogs"
    entry_points = ("alert", "confirm", "prompt")

    def _record(self, kind: str, message: Any) -> None:
        self.summary.bump("dialogs")
        self.monitor.emit(Dialog(kind=kind, text="" if message is None else str(message)))

    def on_alert(self, message=None, *args, **kwargs):
        self._record("alert", message)

    def on_confirm(self, message=None, *args, **kwargs):
        self._record("confirm", message)

    def on_prompt(self, message=None, *args, **kwargs):
        self._record("prompt", message)


class LogCapability(Capability):
    """Error and warning log channels."""

    surface = "console"
    entry_points = ("error", "warn")

    def on_error(self, *args, **kwargs):
        self.summary.bump("console_errors")
        self.monitor.emit(LogEntry(level="error", message=_message(args)))

    def on_warn(self, *args, **kwargs):
        self.summary.bump("console_warnings")
        self.monitor.emit(LogEntry(level="warn", message=_message(args)))


class DocumentWriteCapability(Capability):
    """Legacy whole-document text insertion."""

    surface = "document"
    entry_points = ("write", "writeln")

    def on_write(self, *args, **kwargs):
        self.summary.bump("document_writes")

    def on_writeln(self, *args, **kwargs):
        self.summary.bump("document_writes")


class ElementReferenceCapability(Capability):
    """Reference writes on image, media, script and stylesheet elements.

    Covers direct property assignment (src/href) and generic attribute
    assignment, including url(...) tokens inside style attributes.
    """

    surface = "elements"
    entry_points = ("set_property", "set_attribute")

    _PROPERTY_COUNTERS = {
        ("IMG", "src"): "img_rewrites",
        ("VIDEO", "src"): "media_rewrites",
        ("AUDIO", "src"): "media_rewrites",
        ("SOURCE", "src"): "media_rewrites",
        ("SCRIPT", "src"): "script_rewrites",
        ("LINK", "href"): "link_rewrites",
    }

    def _swap(self, value: Any) -> Any:
        rewritten = self.monitor.rewrite(value)
        if rewritten != value:
            self.summary.bump("rewrites")
        return rewritten

    def on_set_property(self, element, name, value, *args, **kwargs):
        counter = self._PROPERTY_COUNTERS.get((_tag(element), str(name).lower()))
        if counter is None:
            return None
        rewritten = self._swap(value)
        if rewritten != value:
            self.summary.bump(counter)
        return (element, name, rewritten, *args), kwargs

    def on_set_attribute(self, element, name, value, *args, **kwargs):
        tag = _tag(element)
        attr = str(name).lower()

        if (attr == "src" and tag in _SRC_TAGS) or (attr == "href" and tag == "LINK"):
            rewritten = self._swap(value)
            if rewritten != value:
                self.summary.bump("set_attr_rewrites")
            return (element, name, rewritten, *args), kwargs

        if attr == "srcset" and tag in ("IMG", "SOURCE") and self.monitor.assets is not None:
            rewritten = self.monitor.assets.rewrite_srcset(str(value))
            if rewritten != value:
                self.summary.bump("set_attr_rewrites")
            return (element, name, rewritten, *args), kwargs

        if attr == "style" and self.monitor.assets is not None and "url(" in str(value).lower():
            rewritten, count = self.monitor.assets.rewrite_css(str(value))
            if count:
                self.summary.bump("style_attr_rewrites", count)
                self.summary.bump("rewrites", count)
            return (element, name, rewritten, *args), kwargs

        return None


class StyleCapability(Capability):
    """Style property, cssText and style-sheet text writes."""

    surface = "styles"
    entry_points = ("set_property", "set_css_text", "set_sheet_text")

    def _rewrite(self, text: Any) -> Any:
        if self.monitor.assets is None or not isinstance(text, str) or "url(" not in text.lower():
            return text
        rewritten, count = self.monitor.assets.rewrite_css(text)
        if count:
            self.summary.bump("style_url_rewrites", count)
            self.summary.bump("rewrites", count)
        return rewritten

    def on_set_property(self, style, prop, value, *args, **kwargs):
        return (style, prop, self._rewrite(value), *args), kwargs

    def on_set_css_text(self, style, text, *args, **kwargs):
        return (style, self._rewrite(text), *args), kwargs

    def on_set_sheet_text(self, node, text, *args, **kwargs):
        return (node, self._rewrite(text), *args), kwargs


class StructuralChangeCapability(Capability):
    """Geometry/structure observation registration with a target guard.

    Registrations on anything that is not an element are dropped before they
    reach the original. Each offending target class is logged once.
    """

    surface = "observers"
    entry_points = ("observe",)

    def __init__(self, monitor: MonitorContext):
        super().__init__(monitor)
        self.rejected: dict[str, int] = {}

    @staticmethod
    def is_element(target: Any) -> bool:
        tag = getattr(target, "tag", None)
        return isinstance(tag, str) and bool(tag)

    def on_observe(self, target, *args, **kwargs):
        if self.is_element(target):
            return None
        kind = type(target).__name__
        if kind not in self.rejected:
            logger.warning(f"Rejected observer registration on non-element target ({kind})")
        self.rejected[kind] = self.rejected.get(kind, 0) + 1
        return SKIP

    def _intercept(self, name: str, original: Callable) -> Callable:
        intercepted = super()._intercept(name, original)

        # The guard must hold even if the hook itself breaks.
        @functools.wraps(original)
        def guarded(target, *args, **kwargs):
            if not self.is_element(target):
                fail_open(self.on_observe, target)
                return None
            return intercepted(target, *args, **kwargs)

        return guarded


class WindowCapability(Capability):
    """New-window navigation, reported as a click-exit candidate."""

    surface = "window"
    entry_points = ("open",)

    def __init__(self, monitor: MonitorContext, report: Callable[[str, str], None], fallback: Callable[[], str]):
        """Initialize with click-exit callbacks.

        Args:
            monitor: Monitor context.
            report: Called with (url, source) for each open.
            fallback: Supplies the global destination when open has no URL.
        """
        super().__init__(monitor)
        self.report = report
        self.fallback = fallback

    def on_open(self, url=None, *args, **kwargs):
        destination = url if isinstance(url, str) and url else self.fallback()
        self.report(destination, "window.open")
