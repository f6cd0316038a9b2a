"""Click-exit tracking in the context and destination resolution on the host.

In-context, a trusted click is resolved to a destination (nearest anchor,
else the global clickTag), default navigation is suppressed and the
destination is reported. Exit-API calls (Enabler.exit and friends) and
window.open are reported the same way with their own provenance.

On the host, ClickResolver checks a reported destination with one bodyless
request that follows a single redirect.

PUBLIC API:
  - ClickExitTracker: Gesture handling and candidate reporting
  - ExitApiProbe: Bounded discovery of a late exit API, with fallback shim
  - ExitShim: No-op exit API installed when none appears
  - normalize_destination: Absolute form of a reported destination
  - ClickResolver: HEAD-based ok / http-error / unknown check
  - ClickResolution: Result of a resolution
"""

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urljoin, urlsplit

import httpx

from adtap.monitor.capabilities import fail_open
from adtap.monitor.context import Gesture, MonitorContext
from adtap.monitor.events import ClickCandidate
from adtap.monitor.scheduler import RetryState, RetryTask, TaskHandle

logger = logging.getLogger(__name__)

CLICK_TAG_NAMES = ("clickTag", "clickTAG", "clicktag")
EXIT_METHODS = ("exit", "exitOverride", "dynamicExit")
SHIM_EVENTS = ("init", "page_loaded", "visible")


class ClickExitTracker:
    """Resolve and report click-exit destinations.

    Attributes:
        candidates: (url, source, name) for every report, in order.
    """

    def __init__(self, monitor: MonitorContext, namespace: dict, on_report: Callable | None = None):
        self.monitor = monitor
        self.namespace = namespace
        self.on_report = on_report
        self.candidates: list[tuple[str, str, str | None]] = []

    def global_destination(self) -> str:
        for name in CLICK_TAG_NAMES:
            value = self.namespace.get(name)
            if isinstance(value, str) and value:
                return value
        return ""

    @staticmethod
    def anchor_destination(target: Any) -> str:
        """Walk up from target to the nearest anchor carrying an href."""
        node = target
        while node is not None:
            if str(getattr(node, "tag", "")).upper() == "A":
                href = node.get_attribute("href") if hasattr(node, "get_attribute") else None
                if href:
                    return href
            node = getattr(node, "parent", None)
        return ""

    def report(self, url: str, source: str, name: str | None = None) -> None:
        self.candidates.append((url, source, name))
        if url:
            self.monitor.summary.click_url = url
        self.monitor.emit(ClickCandidate(url=url, source=source, name=name))
        if self.on_report is not None:
            fail_open(self.on_report, url, source, name)

    def on_click(self, gesture: Gesture) -> None:
        """Gesture listener for click events."""
        if not gesture.trusted:
            return
        destination = self.anchor_destination(gesture.target) or self.global_destination()
        if not destination:
            return
        gesture.prevent_default()
        self.report(destination, "user")

    def hook_exit_api(self, api: Any) -> bool:
        """Wrap the exit entry points of an Enabler-like object.

        Returns:
            True if at least one entry point was wrapped.
        """
        wrapped = False
        for method in EXIT_METHODS:
            original = getattr(api, method, None)
            if not callable(original) or hasattr(original, "__adtap_original__"):
                continue
            setattr(api, method, self._wrap_exit(method, original))
            wrapped = True
        return wrapped

    def _wrap_exit(self, method: str, original: Callable) -> Callable:
        @functools.wraps(original)
        def exit_call(name=None, url=None, *args, **kwargs):
            destination = url if isinstance(url, str) and url else self.global_destination()
            fail_open(self.report, destination, f"Enabler.{method}", None if name is None else str(name))
            return original(name, url, *args, **kwargs)

        exit_call.__adtap_original__ = original
        return exit_call


class ExitShim:
    """Stand-in exit API with listener support.

    Exit calls do nothing themselves; the tracker's hooks report them.
    """

    def __init__(self, namespace: dict):
        self.namespace = namespace
        self.initialized = True
        self.listeners: dict[str, list[Callable]] = {}

    def is_initialized(self) -> bool:
        return self.initialized

    def is_visible(self) -> bool:
        return True

    def add_event_listener(self, kind: str, callback: Callable) -> None:
        if kind and callable(callback):
            self.listeners.setdefault(str(kind).lower(), []).append(callback)

    def remove_event_listener(self, kind: str, callback: Callable) -> None:
        listeners = self.listeners.get(str(kind or "").lower(), [])
        if callback in listeners:
            listeners.remove(callback)

    def dispatch_event(self, kind: str, detail: Any = None) -> None:
        for callback in list(self.listeners.get(str(kind).lower(), [])):
            fail_open(callback, detail)

    def get_url(self, path: str | None = None) -> str:
        if not path or str(path).lower().startswith("clicktag"):
            return next((self.namespace[n] for n in CLICK_TAG_NAMES if self.namespace.get(n)), "")
        return str(path)

    def exit(self, name=None, url=None, *args):
        return None

    def exitOverride(self, name=None, url=None, *args):  # noqa: N802
        return None

    def dynamicExit(self, name=None, url=None, *args):  # noqa: N802
        return None


class ExitApiProbe:
    """Wait for a late exit API; install ExitShim if it never shows up.

    Polls the context globals for `Enabler` every exit_probe_interval_ms, up
    to exit_probe_attempts times.
    """

    def __init__(self, monitor: MonitorContext, tracker: ClickExitTracker, namespace: dict):
        self.monitor = monitor
        self.tracker = tracker
        self.namespace = namespace
        self.shim: ExitShim | None = None
        self.task: RetryTask | None = None
        self._lifecycle: TaskHandle | None = None

    @property
    def state(self) -> RetryState | None:
        return self.task.state if self.task else None

    def start(self) -> RetryTask:
        config = self.monitor.config
        self.task = RetryTask(
            self.monitor.scheduler,
            self._attempt,
            config.exit_probe_interval_ms,
            config.exit_probe_attempts,
            on_exhausted=self._install_shim,
        ).start()
        return self.task

    def cancel(self) -> None:
        if self.task:
            self.task.cancel()
        if self._lifecycle:
            self._lifecycle.cancel()

    def _attempt(self) -> bool:
        api = self.namespace.get("Enabler")
        if api is None:
            return False
        self.tracker.hook_exit_api(api)
        logger.debug("Exit API found and hooked")
        return True

    def _install_shim(self) -> None:
        self.shim = ExitShim(self.namespace)
        self.tracker.hook_exit_api(self.shim)
        self.namespace["Enabler"] = self.shim
        self.monitor.summary.exit_shim_installed = True
        logger.info("Exit API never appeared, installed fallback shim")

        def dispatch():
            for kind in SHIM_EVENTS:
                self.shim.dispatch_event(kind)

        self._lifecycle = self.monitor.scheduler.call_later(self.monitor.config.exit_shim_delay_ms, dispatch)


def normalize_destination(url: str, base: str | None = None) -> str:
    """Absolute form of a destination.

    Scheme-less hosts get https, protocol-relative URLs get https, and
    relative paths are joined onto base when one is given.
    """
    url = url.strip()
    if url.startswith("//"):
        return "https:" + url
    parts = urlsplit(url)
    if parts.scheme:
        return url
    if base:
        return urljoin(base, url)
    return "https://" + url.lstrip("/")


@dataclass
class ClickResolution:
    """Outcome of checking one destination.

    Attributes:
        status: ok, http-error or unknown.
        code: Final HTTP status code, if a response arrived.
        final_url: URL of the final response.
    """

    url: str
    status: str
    code: int | None = None
    final_url: str | None = None
    error: str | None = None


class ClickResolver:
    """Check a click destination with one redirect-following HEAD request."""

    def __init__(self, client: httpx.Client | None = None, timeout: float = 5.0):
        self.client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    def resolve(self, url: str, base: str | None = None) -> ClickResolution:
        target = normalize_destination(url, base)
        try:
            response = self.client.head(target, follow_redirects=False)
            if response.is_redirect and "location" in response.headers:
                next_url = urljoin(str(response.url), response.headers["location"])
                response = self.client.head(next_url, follow_redirects=False)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.debug(f"Click destination {target} unreachable: {e}")
            return ClickResolution(url=target, status="unknown", error=str(e))

        status = "ok" if response.status_code < 400 else "http-error"
        return ClickResolution(url=target, status=status, code=response.status_code, final_url=str(response.url))

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
