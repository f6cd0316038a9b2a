"""Animation duration and loop bounds from CSS timing and timeline libraries.

PUBLIC API:
  - parse_duration_s: CSS time value to seconds
  - split_layers: Split a comma-separated CSS value outside parentheses
  - AnimationScanner: Folds computed-style timing into the Summary maxima
  - TimelineLibraryHooks: Hooks gsap/anime construction entry points
"""

import functools
import logging
import re
from typing import Any, Iterable, Mapping

from adtap.monitor.capabilities import fail_open
from adtap.monitor.context import ElementBox, MonitorContext
from adtap.monitor.scheduler import RetryTask
from adtap.monitor.summary import Summary

logger = logging.getLogger(__name__)

_TIME = re.compile(r"^(-?\d*\.?\d+)(ms|s)$", re.IGNORECASE)
_NUMBER = re.compile(r"^\d*\.?\d+$")
_TIMING_KEYWORDS = {"ease", "linear", "ease-in", "ease-out", "ease-in-out", "step-start", "step-end"}


def parse_duration_s(value: Any) -> float | None:
    """Parse '1.5s' or '300ms' into seconds. None for anything else."""
    if not isinstance(value, str):
        return None
    match = _TIME.match(value.strip())
    if not match:
        return None
    amount = float(match.group(1))
    return amount / 1000 if match.group(2).lower() == "ms" else amount


def split_layers(value: str) -> list[str]:
    """Split on commas that are not inside parentheses."""
    layers, depth, current = [], 0, []
    for char in value:
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(0, depth - 1)
        elif char == "," and depth == 0:
            layers.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    tail = "".join(current).strip()
    if tail:
        layers.append(tail)
    return [layer for layer in layers if layer]


def _style(computed: Mapping[str, str], name: str) -> str:
    return computed.get(name) or computed.get(f"-webkit-{name}") or ""


class AnimationScanner:
    """Raise-only maxima of animation duration and iteration count.

    The first scan initializes the fields to 0 / 1 / False so a measured
    "no animation" differs from "not yet measured".
    """

    def __init__(self, summary: Summary, sentinel: int = 9999, limit: int = 3000):
        self.summary = summary
        self.sentinel = sentinel
        self.limit = limit
        self.scans = 0

    def fold_duration(self, seconds: float | None) -> None:
        if seconds is not None and seconds >= 0:
            self.summary.raise_to("anim_max_duration_s", seconds)

    def fold_loops(self, loops: float | None) -> None:
        if loops is not None and loops >= 0:
            self.summary.raise_to("anim_max_loops", int(loops) if float(loops).is_integer() else loops)

    def mark_infinite(self) -> None:
        self.summary.anim_infinite = True
        self.summary.raise_to("anim_max_loops", self.sentinel)

    def _fold_count(self, value: str) -> None:
        value = value.strip().lower()
        if value == "infinite":
            self.mark_infinite()
        elif _NUMBER.match(value):
            self.fold_loops(float(value))

    def _fold_shorthand(self, layer: str) -> None:
        # First time token is the duration, a second one is the delay.
        duration_seen = False
        for token in layer.split():
            seconds = parse_duration_s(token)
            if seconds is not None:
                if not duration_seen:
                    self.fold_duration(seconds)
                    duration_seen = True
                continue
            self._fold_count(token)

    def scan_element(self, computed: Mapping[str, str]) -> None:
        for layer in split_layers(_style(computed, "animation-duration")):
            self.fold_duration(parse_duration_s(layer))
        for layer in split_layers(_style(computed, "animation-iteration-count")):
            self._fold_count(layer)
        for layer in split_layers(_style(computed, "animation")):
            self._fold_shorthand(layer)

    def scan(self, elements: Iterable[ElementBox]) -> None:
        """Fold one pass over element computed styles into the maxima."""
        if self.scans == 0:
            self.summary.set_once("anim_max_duration_s", 0.0)
            self.summary.set_once("anim_max_loops", 1)
            self.summary.set_once("anim_infinite", False)
        self.scans += 1

        for index, box in enumerate(elements):
            if index >= self.limit:
                break
            fail_open(self.scan_element, box.computed or {})


class TimelineLibraryHooks:
    """Hook gsap and anime construction calls found in the context globals.

    gsap: `timeline()` results are kept and re-read through `duration()` on
    every poll; `to`/`from`/`fromTo` fold the declared tween duration.
    anime: the callable is replaced; `duration` is in milliseconds.
    """

    def __init__(self, monitor: MonitorContext, scanner: AnimationScanner, namespace: dict):
        self.monitor = monitor
        self.scanner = scanner
        self.namespace = namespace
        self.timelines: list[Any] = []
        self.hooked: set[str] = set()
        self.task: RetryTask | None = None

    def discover(self) -> RetryTask:
        """Poll the globals until both libraries are hooked or attempts run out."""
        config = self.monitor.config
        self.task = RetryTask(
            self.monitor.scheduler,
            self._attempt,
            config.library_probe_interval_ms,
            config.library_probe_attempts,
        ).start()
        return self.task

    def _attempt(self) -> bool:
        if "gsap" not in self.hooked and self.namespace.get("gsap") is not None:
            fail_open(self.hook_gsap, self.namespace["gsap"])
        if "anime" not in self.hooked and callable(self.namespace.get("anime")):
            fail_open(self.hook_anime)
        return self.hooked >= {"gsap", "anime"}

    def _fold_vars(self, tween_vars: Any, scale: float = 1.0) -> None:
        if not isinstance(tween_vars, Mapping):
            return
        duration = tween_vars.get("duration")
        if isinstance(duration, (int, float)):
            self.scanner.fold_duration(duration * scale)
        repeat = tween_vars.get("repeat")
        if isinstance(repeat, (int, float)):
            if repeat < 0:
                self.scanner.mark_infinite()
            else:
                self.scanner.fold_loops(repeat + 1)

    def hook_gsap(self, gsap: Any) -> None:
        scanner_hooks = {
            "timeline": self._wrap_timeline,
            "to": functools.partial(self._wrap_tween, vars_index=1),
            "from": functools.partial(self._wrap_tween, vars_index=1),
            "fromTo": functools.partial(self._wrap_tween, vars_index=2),
        }
        for name, make in scanner_hooks.items():
            original = getattr(gsap, name, None)
            if callable(original) and not hasattr(original, "__adtap_original__"):
                setattr(gsap, name, make(original))
        self.hooked.add("gsap")
        logger.debug("Hooked gsap timeline entry points")

    def _wrap_timeline(self, original):
        @functools.wraps(original)
        def timeline(*args, **kwargs):
            result = original(*args, **kwargs)
            self.timelines.append(result)
            if args:
                fail_open(self._fold_vars, args[0])
            return result

        timeline.__adtap_original__ = original
        return timeline

    def _wrap_tween(self, original, vars_index: int):
        @functools.wraps(original)
        def tween(*args, **kwargs):
            if len(args) > vars_index:
                fail_open(self._fold_vars, args[vars_index])
            return original(*args, **kwargs)

        tween.__adtap_original__ = original
        return tween

    def hook_anime(self) -> None:
        original = self.namespace["anime"]
        if hasattr(original, "__adtap_original__"):
            self.hooked.add("anime")
            return

        @functools.wraps(original)
        def anime(*args, **kwargs):
            if args:
                fail_open(self._fold_vars, args[0], 0.001)
            return original(*args, **kwargs)

        anime.__adtap_original__ = original
        self.namespace["anime"] = anime
        self.hooked.add("anime")
        logger.debug("Hooked anime entry point")

    def poll(self) -> None:
        """Re-read the total duration of every timeline created so far."""
        for timeline in self.timelines:
            duration = fail_open(getattr(timeline, "duration", lambda: None))
            if isinstance(duration, (int, float)):
                self.scanner.fold_duration(float(duration))

    def cancel(self) -> None:
        if self.task:
            self.task.cancel()
