"""Border detection from drawing-surface strokes and DOM geometry.

There is no single authoritative "has a border" signal, so two heuristics are
OR-combined:

  canvas - transform-tracked path/rectangle strokes whose bounding box spans
           the whole drawing surface
  DOM    - edge bars (absolutely positioned, 1-16px thick, flush with the
           viewport) and container borders aligned with the viewport edges

PUBLIC API:
  - TransformState: 2x3 affine matrix with save/restore stack
  - visible_color: Whether a CSS colour would paint anything
  - DrawingCapability: Instruments 2D drawing surfaces as they are created
  - BorderDetector: Combines canvas and DOM evidence into an edge count
"""

import functools
import logging
import math
import re
from typing import Any, Callable, Iterable, Mapping

from adtap.config import MonitorConfig
from adtap.monitor.capabilities import Capability, fail_open
from adtap.monitor.context import ElementBox, MonitorContext
from adtap.monitor.summary import Summary

logger = logging.getLogger(__name__)

SIDES = ("top", "bottom", "left", "right")

Matrix = tuple[float, float, float, float, float, float]
IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)

_COLOR_FN = re.compile(r"^(?:rgba?|hsla?)\(([^)]*)\)$")
_NUMBER = re.compile(r"(-?[\d.]+)")
_ZERO = re.compile(r"^-?0+(?:\.0+)?(?:px)?$")

# Segments used to sample curves into points
_CURVE_STEPS = 8
_ARC_STEPS = 16


def multiply(a: Matrix, b: Matrix) -> Matrix:
    """Compose two affine matrices (a applied after b)."""
    return (
        a[0] * b[0] + a[2] * b[1],
        a[1] * b[0] + a[3] * b[1],
        a[0] * b[2] + a[2] * b[3],
        a[1] * b[2] + a[3] * b[3],
        a[0] * b[4] + a[2] * b[5] + a[4],
        a[1] * b[4] + a[3] * b[5] + a[5],
    )


class TransformState:
    """Current transform of one drawing surface."""

    def __init__(self):
        self.matrix: Matrix = IDENTITY
        self._stack: list[Matrix] = []

    def map(self, x: float, y: float) -> tuple[float, float]:
        m = self.matrix
        return (m[0] * x + m[2] * y + m[4], m[1] * x + m[3] * y + m[5])

    def save(self) -> None:
        self._stack.append(self.matrix)

    def restore(self) -> None:
        if self._stack:
            self.matrix = self._stack.pop()

    def set_transform(self, a=1.0, b=0.0, c=0.0, d=1.0, e=0.0, f=0.0) -> None:
        self.matrix = (float(a), float(b), float(c), float(d), float(e), float(f))

    def reset_transform(self) -> None:
        self.matrix = IDENTITY

    def transform(self, a, b, c, d, e, f) -> None:
        self.matrix = multiply(self.matrix, (float(a), float(b), float(c), float(d), float(e), float(f)))

    def translate(self, x, y) -> None:
        self.transform(1, 0, 0, 1, x, y)

    def scale(self, x, y) -> None:
        self.transform(x, 0, 0, y, 0, 0)

    def rotate(self, angle) -> None:
        c, s = math.cos(angle), math.sin(angle)
        self.transform(c, s, -s, c, 0, 0)


def visible_color(value: Any) -> bool:
    """Whether a CSS colour string paints something.

    Transparent, 'none', and zero-alpha rgba/hsla/hex colours are invisible.
    Non-string values (gradients, patterns) are not judged visible.
    """
    if not isinstance(value, str):
        return False
    color = value.strip().lower()
    if not color or color in ("transparent", "none"):
        return False

    try:
        if match := _COLOR_FN.match(color):
            parts = [p for p in re.split(r"[,\s/]+", match.group(1)) if p]
            if len(parts) >= 4:
                alpha = parts[3]
                value_ = float(alpha[:-1]) / 100 if alpha.endswith("%") else float(alpha)
                return value_ > 0
            return True
        if color.startswith("#"):
            digits = color[1:]
            if len(digits) == 4:
                return digits[3] != "0"
            if len(digits) == 8:
                return digits[6:] != "00"
    except ValueError:
        return False
    return True


def px(value: Any) -> float:
    """Leading number of a CSS length, 0 when absent."""
    if value is None:
        return 0.0
    match = _NUMBER.search(str(value))
    return float(match.group(1)) if match else 0.0


def parse_declarations(style: str) -> dict[str, str]:
    """Split inline style text into lower-cased property -> value."""
    declarations = {}
    for chunk in style.split(";"):
        name, sep, value = chunk.partition(":")
        if sep:
            declarations[name.strip().lower()] = value.strip()
    return declarations


class CanvasBorderTracker:
    """Transform and path bookkeeping for one drawing surface."""

    def __init__(self, surface: Any, on_border: Callable[[], None], tolerance: float):
        self.surface = surface
        self.on_border = on_border
        self.tolerance = tolerance
        self.transform = TransformState()
        self.points: list[tuple[float, float]] = []
        self._current: tuple[float, float] | None = None
        self._start: tuple[float, float] | None = None

    # Transform primitives

    def on_save(self, *args):
        self.transform.save()

    def on_restore(self, *args):
        self.transform.restore()

    def on_set_transform(self, *args):
        self.transform.set_transform(*args[:6])

    def on_reset_transform(self, *args):
        self.transform.reset_transform()

    def on_transform(self, a, b, c, d, e, f, *args):
        self.transform.transform(a, b, c, d, e, f)

    def on_translate(self, x, y, *args):
        self.transform.translate(x, y)

    def on_scale(self, x, y, *args):
        self.transform.scale(x, y)

    def on_rotate(self, angle, *args):
        self.transform.rotate(angle)

    # Path construction

    def _add(self, x: float, y: float) -> None:
        self.points.append(self.transform.map(float(x), float(y)))
        self._current = (float(x), float(y))

    def on_begin_path(self, *args):
        self.points = []
        self._current = None
        self._start = None

    def on_move_to(self, x, y, *args):
        self._add(x, y)
        self._start = self._current

    def on_line_to(self, x, y, *args):
        self._add(x, y)

    def on_quadratic_curve_to(self, cpx, cpy, x, y, *args):
        x0, y0 = self._current or (cpx, cpy)
        for i in range(1, _CURVE_STEPS + 1):
            t = i / _CURVE_STEPS
            u = 1 - t
            self._add(u * u * x0 + 2 * u * t * cpx + t * t * x, u * u * y0 + 2 * u * t * cpy + t * t * y)

    def on_bezier_curve_to(self, c1x, c1y, c2x, c2y, x, y, *args):
        x0, y0 = self._current or (c1x, c1y)
        for i in range(1, _CURVE_STEPS + 1):
            t = i / _CURVE_STEPS
            u = 1 - t
            self._add(
                u**3 * x0 + 3 * u * u * t * c1x + 3 * u * t * t * c2x + t**3 * x,
                u**3 * y0 + 3 * u * u * t * c1y + 3 * u * t * t * c2y + t**3 * y,
            )

    def on_arc(self, x, y, radius, start, end, counterclockwise=False, *args):
        sweep = end - start
        if not counterclockwise and sweep < 0:
            sweep = sweep % (2 * math.pi)
        elif counterclockwise and sweep > 0:
            sweep = -((-sweep) % (2 * math.pi))
        sweep = max(-2 * math.pi, min(2 * math.pi, sweep))
        for i in range(_ARC_STEPS + 1):
            angle = start + sweep * i / _ARC_STEPS
            self._add(x + radius * math.cos(angle), y + radius * math.sin(angle))

    def on_rect(self, x, y, w, h, *args):
        for cx, cy in ((x, y), (x + w, y), (x + w, y + h), (x, y + h)):
            self._add(cx, cy)
        self._current = (float(x), float(y))
        self._start = self._current

    def on_close_path(self, *args):
        self._current = self._start

    # Commit

    def on_stroke(self, *args):
        self._commit(self.points)

    def on_stroke_rect(self, x, y, w, h, *args):
        corners = [self.transform.map(cx, cy) for cx, cy in ((x, y), (x + w, y), (x + w, y + h), (x, y + h))]
        self._commit(corners)

    def _surface_size(self) -> tuple[float, float]:
        canvas = getattr(self.surface, "canvas", None)
        return float(getattr(canvas, "width", 0) or 0), float(getattr(canvas, "height", 0) or 0)

    def _commit(self, points: list[tuple[float, float]]) -> None:
        width = getattr(self.surface, "line_width", 1)
        if width is None or float(width) <= 0:
            return
        if not visible_color(getattr(self.surface, "stroke_style", None)):
            return
        if len(points) < 2:
            return

        cw, ch = self._surface_size()
        if cw <= 0 or ch <= 0:
            return

        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        tol = self.tolerance
        if min(xs) <= tol and min(ys) <= tol and max(xs) >= cw - tol and max(ys) >= ch - tol:
            self.on_border()


_TRACKED_OPS = frozenset(
    name[3:] for name in vars(CanvasBorderTracker) if name.startswith("on_") and name != "on_border"
)


class InstrumentedSurface:
    """Proxy over a 2D drawing surface that feeds its tracker before delegating."""

    def __init__(self, original: Any, tracker: CanvasBorderTracker):
        object.__setattr__(self, "_original", original)
        object.__setattr__(self, "_tracker", tracker)

    def __getattr__(self, name: str) -> Any:
        value = getattr(self._original, name)
        if name not in _TRACKED_OPS or not callable(value):
            return value
        hook = getattr(self._tracker, f"on_{name}")

        @functools.wraps(value)
        def call(*args, **kwargs):
            fail_open(hook, *args, **kwargs)
            return value(*args, **kwargs)

        return call

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._original, name, value)


class DrawingCapability(Capability):
    """Wrap every 2D drawing surface handed out by the document."""

    surface = "document"
    entry_points = ("get_context_2d",)

    def __init__(self, monitor: MonitorContext, detector: "BorderDetector"):
        super().__init__(monitor)
        self.detector = detector
        self._surfaces: dict[int, InstrumentedSurface] = {}

    def instrument(self, surface: Any) -> Any:
        """Return the instrumented proxy for a surface, creating it once."""
        if surface is None or isinstance(surface, InstrumentedSurface):
            return surface
        key = id(surface)
        if key not in self._surfaces:
            tracker = CanvasBorderTracker(
                surface, self.detector.record_canvas_border, self.monitor.config.canvas_tolerance_px
            )
            self._surfaces[key] = InstrumentedSurface(surface, tracker)
        return self._surfaces[key]

    def _intercept(self, name: str, original: Callable) -> Callable:
        @functools.wraps(original)
        def intercepted(*args, **kwargs):
            surface = original(*args, **kwargs)
            instrumented = fail_open(self.instrument, surface)
            return surface if instrumented is None else instrumented

        return intercepted


class BorderDetector:
    """Edge-count from canvas strokes OR'd with DOM geometry.

    Sides found by any scan stay found. The CSS-rule count is diagnostic:
    elements carrying a visible border, plus full-surface canvas strokes.

    Attributes:
        canvas_sides: Sides established by full-surface strokes.
        dom_sides: Sides established by DOM scans.
    """

    def __init__(self, summary: Summary, config: MonitorConfig):
        self.summary = summary
        self.config = config
        self.canvas_sides: set[str] = set()
        self.canvas_hits = 0
        self.dom_sides: set[str] = set()
        self.dom_rules = 0

    @property
    def sides(self) -> set[str]:
        return self.canvas_sides | self.dom_sides

    def record_canvas_border(self) -> None:
        self.canvas_sides.update(SIDES)
        self.canvas_hits += 1
        self._publish()

    def _publish(self) -> None:
        self.summary.border_sides = len(self.sides)
        self.summary.border_css_rules = self.dom_rules + self.canvas_hits

    def _thickness_ok(self, value: float | None) -> bool:
        return value is not None and self.config.border_min_px <= value <= self.config.border_max_px

    def scan(
        self, elements: Iterable[ElementBox], viewport: tuple[float, float], root: ElementBox | None = None
    ) -> int:
        """Run the DOM pass and publish the combined edge count.

        Args:
            elements: Element snapshots in document order.
            viewport: (width, height) of the rendering context.
            root: Snapshot of the body/root element.

        Returns:
            Number of sides found so far by either path.
        """
        vw, vh = float(viewport[0] or 0), float(viewport[1] or 0)
        sides: set[str] = set()
        rules = 0

        if root is not None:
            found, has_rule = self._root_borders(root.computed)
            sides |= found
            rules += has_rule

        for index, box in enumerate(elements):
            if index >= self.config.border_scan_limit:
                break
            sides |= fail_open(self._edge_bar, box, vw, vh) or set()
            result = fail_open(self._box_edges, box, vw, vh)
            if result:
                found, has_rule = result
                sides |= found
                rules += has_rule

        self.dom_sides |= sides
        self.dom_rules = max(self.dom_rules, rules)
        self._publish()
        return len(self.sides)

    def _root_borders(self, cs: Mapping[str, str]) -> tuple[set[str], int]:
        found = set()
        has_rule = 0
        for side in SIDES:
            width = px(cs.get(f"border-{side}-width"))
            visible = visible_color(cs.get(f"border-{side}-color"))
            if width > 0 and visible:
                has_rule = 1
                if self._thickness_ok(width):
                    found.add(side)
        return found, has_rule

    def _edge_bar(self, box: ElementBox, vw: float, vh: float) -> set[str]:
        """Absolutely positioned bar flush with one edge."""
        decls = parse_declarations(box.inline_style or "")
        cs = box.computed or {}
        position = decls.get("position") or cs.get("position", "")
        if position.strip().lower() != "absolute":
            return set()

        def get(name: str) -> str | None:
            return decls.get(name) or cs.get(name)

        def zero(name: str) -> bool:
            value = get(name)
            return value is not None and bool(_ZERO.match(value.strip()))

        def full(name: str, extent: float) -> bool:
            value = (get(name) or "").strip()
            if value == "100%":
                return True
            return value.endswith("px") and extent > 0 and px(value) >= extent - 2 * self.config.edge_tolerance_px

        def length(name: str) -> float | None:
            value = (get(name) or "").strip()
            return px(value) if value.endswith("px") else None

        fill = decls.get("background-color") or decls.get("background") or cs.get("background-color")
        if not (visible_color(fill) or visible_color(get("border-color"))):
            return set()

        top, bottom, left, right = zero("top"), zero("bottom"), zero("left"), zero("right")
        found = set()
        if top and (left or right) and full("width", vw) and self._thickness_ok(length("height")):
            found.add("top")
        if bottom and (left or right) and full("width", vw) and self._thickness_ok(length("height")):
            found.add("bottom")
        if left and (top or bottom) and full("height", vh) and self._thickness_ok(length("width")):
            found.add("left")
        if right and (top or bottom) and full("height", vh) and self._thickness_ok(length("width")):
            found.add("right")
        return found

    def _box_edges(self, box: ElementBox, vw: float, vh: float) -> tuple[set[str], int]:
        """Bounding-box comparison against the viewport edges."""
        rect = box.rect
        cs = box.computed or {}
        if rect is None:
            return set(), 0

        tol = self.config.edge_tolerance_px
        spans_w = rect.width >= max(0.0, vw - 2 * tol)
        spans_h = rect.height >= max(0.0, vh - 2 * tol)
        at = {
            "top": abs(rect.top) <= tol,
            "bottom": vh > 0 and abs(rect.bottom - vh) <= tol,
            "left": abs(rect.left) <= tol,
            "right": vw > 0 and abs(rect.right - vw) <= tol,
        }
        found = set()

        if visible_color(cs.get("background-color")):
            for side in ("top", "bottom"):
                if at[side] and spans_w and self._thickness_ok(rect.height):
                    found.add(side)
            for side in ("left", "right"):
                if at[side] and spans_h and self._thickness_ok(rect.width):
                    found.add(side)

        has_rule = 0
        for side in SIDES:
            width = px(cs.get(f"border-{side}-width"))
            if width <= 0 or not visible_color(cs.get(f"border-{side}-color")):
                continue
            has_rule = 1
            spans = spans_w if side in ("top", "bottom") else spans_h
            if at[side] and spans and self._thickness_ok(width):
                found.add(side)

        return found, has_rule
