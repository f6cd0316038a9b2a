import pytest

from adtap.config import MonitorConfig
from adtap.monitor.context import ElementBox, Rect
from adtap.monitor.geometry import BorderDetector, TransformState, visible_color
from adtap.monitor.injector import Injector
from adtap.monitor.summary import Summary

BLACK = "rgb(0, 0, 0)"


@pytest.fixture
def detector():
    return BorderDetector(Summary(), MonitorConfig())


@pytest.fixture
def drawing(monitor, page):
    Injector(monitor).inject(page.context)
    return page.context.document.get_context_2d()


def test_full_surface_stroke_rect_counts_four_sides(monitor, page, drawing):
    drawing.line_width = 2
    drawing.stroke_rect(0, 0, 300, 250)

    assert page.drawing.line_width == 2
    assert ("stroke_rect", (0, 0, 300, 250)) in page.drawing.ops
    assert monitor.summary.border_sides == 4
    assert monitor.summary.border_css_rules == 1


def test_transformed_path_is_mapped_before_the_extent_check(monitor, drawing):
    drawing.translate(150, 125)
    drawing.scale(1, 1)
    drawing.begin_path()
    drawing.move_to(-149, -124)
    drawing.line_to(149, -124)
    drawing.line_to(149, 124)
    drawing.line_to(-149, 124)
    drawing.close_path()
    drawing.stroke()

    assert monitor.summary.border_sides == 4


def test_restore_undoes_transform(monitor, drawing):
    drawing.save()
    drawing.translate(100, 100)
    drawing.restore()
    drawing.stroke_rect(0, 0, 300, 250)

    assert monitor.summary.border_sides == 4


def test_same_surface_is_instrumented_once(page, drawing):
    assert page.context.document.get_context_2d() is drawing


@pytest.mark.parametrize(
    "attrs",
    [
        {"stroke_style": "rgba(0, 0, 0, 0)"},
        {"stroke_style": "transparent"},
        {"line_width": 0},
    ],
)
def test_invisible_strokes_are_ignored(monitor, drawing, attrs):
    for name, value in attrs.items():
        setattr(drawing, name, value)
    drawing.stroke_rect(0, 0, 300, 250)
    assert monitor.summary.border_sides is None


def test_partial_stroke_is_ignored(monitor, drawing):
    drawing.stroke_rect(20, 20, 100, 50)
    assert monitor.summary.border_sides is None


def test_transform_state_rotate():
    state = TransformState()
    state.translate(10, 0)
    state.rotate(3.141592653589793 / 2)
    x, y = state.map(1, 0)
    assert x == pytest.approx(10)
    assert y == pytest.approx(1)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("#000", True),
        ("red", True),
        ("rgb(0, 0, 0)", True),
        ("rgba(0, 0, 0, 0.5)", True),
        ("rgba(0,0,0,0)", False),
        ("hsla(0 0% 0% / 0%)", False),
        ("#0000", False),
        ("#00000000", False),
        ("#000000ff", True),
        ("transparent", False),
        ("none", False),
        ("", False),
        (None, False),
    ],
)
def test_visible_color(value, expected):
    assert visible_color(value) is expected


def test_edge_bar_from_inline_style(detector):
    bar = ElementBox("DIV", inline_style="position:absolute; top:0; left:0; width:100%; height:2px; background:#c00")
    assert detector.scan([bar], (300, 250)) == 1
    assert detector.dom_sides == {"top"}


def test_edge_bar_thicker_than_limit_is_ignored(detector):
    bar = ElementBox("DIV", inline_style="position:absolute; bottom:0; left:0; width:300px; height:40px; background:#c00")
    assert detector.scan([bar], (300, 250)) == 0


def test_container_border_aligned_with_viewport(detector):
    computed = {}
    for side in ("top", "bottom", "left", "right"):
        computed[f"border-{side}-width"] = "1px"
        computed[f"border-{side}-color"] = BLACK
    box = ElementBox("DIV", computed=computed, rect=Rect(0, 0, 300, 250))

    assert detector.scan([box], (300, 250)) == 4
    assert detector.summary.border_css_rules == 1


def test_offset_container_only_counts_rule(detector):
    computed = {"border-top-width": "1px", "border-top-color": BLACK}
    box = ElementBox("DIV", computed=computed, rect=Rect(40, 40, 100, 100))

    assert detector.scan([box], (300, 250)) == 0
    assert detector.summary.border_sides == 0
    assert detector.summary.border_css_rules == 1


def test_root_border_thickness_bounds(detector):
    root = ElementBox("BODY", computed={"border-left-width": "20px", "border-left-color": BLACK})
    assert detector.scan([], (300, 250), root) == 0
    assert detector.summary.border_css_rules == 1


def test_sides_accumulate_across_scans_and_paths(detector):
    top = ElementBox("DIV", inline_style="position:absolute;top:0;left:0;width:100%;height:1px;background:#000")
    left = ElementBox("DIV", inline_style="position:absolute;top:0;left:0;height:100%;width:1px;background:#000")

    detector.scan([top], (300, 250))
    detector.scan([left], (300, 250))
    assert detector.sides == {"top", "left"}

    detector.record_canvas_border()
    assert detector.summary.border_sides == 4
