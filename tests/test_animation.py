from types import SimpleNamespace

import pytest

from adtap.monitor.animation import AnimationScanner, TimelineLibraryHooks, parse_duration_s, split_layers
from adtap.monitor.context import ElementBox
from adtap.monitor.summary import Summary


@pytest.fixture
def scanner():
    return AnimationScanner(Summary())


def box(**computed):
    return ElementBox("DIV", computed={k.replace("_", "-"): v for k, v in computed.items()})


@pytest.mark.parametrize(
    "value, expected",
    [("1.5s", 1.5), ("300ms", 0.3), (".5s", 0.5), ("0s", 0.0), ("fast", None), ("", None), (None, None)],
)
def test_parse_duration(value, expected):
    assert parse_duration_s(value) == expected


def test_split_layers_respects_parentheses():
    assert split_layers("a 1s cubic-bezier(0.1, 0.7, 1, 0.1), b 2s") == ["a 1s cubic-bezier(0.1, 0.7, 1, 0.1)", "b 2s"]


def test_first_scan_measures_no_animation(scanner):
    scanner.scan([])
    summary = scanner.summary
    assert (summary.anim_max_duration_s, summary.anim_max_loops, summary.anim_infinite) == (0.0, 1, False)


def test_longest_layer_wins(scanner):
    scanner.scan([box(animation_duration="1s, 3s, 2s")])
    assert scanner.summary.anim_max_duration_s == 3


def test_maxima_never_decrease(scanner):
    scanner.scan([box(animation_duration="4s", animation_iteration_count="5")])
    scanner.scan([box(animation_duration="1s", animation_iteration_count="2")])
    assert scanner.summary.anim_max_duration_s == 4
    assert scanner.summary.anim_max_loops == 5


def test_infinite_persists(scanner):
    scanner.scan([box(animation_iteration_count="infinite")])
    scanner.scan([box(animation_iteration_count="1")])
    assert scanner.summary.anim_infinite is True
    assert scanner.summary.anim_max_loops == 9999


def test_shorthand_ignores_delay(scanner):
    scanner.scan([box(animation="fade 2s ease 500ms 3, spin 800ms linear infinite")])
    summary = scanner.summary
    assert summary.anim_max_duration_s == 2
    assert summary.anim_max_loops == 9999
    assert summary.anim_infinite is True


def test_prefixed_properties(scanner):
    scanner.scan([ElementBox("DIV", computed={"-webkit-animation-duration": "7s"})])
    assert scanner.summary.anim_max_duration_s == 7


class FakeTimeline:
    def __init__(self, total):
        self.total = total

    def duration(self):
        return self.total


def make_gsap(created):
    def timeline(options=None):
        created.append(FakeTimeline(12.0))
        return created[-1]

    return SimpleNamespace(
        timeline=timeline,
        to=lambda target, tween_vars: "to",
        fromTo=lambda target, from_vars, to_vars: "fromTo",
        **{"from": lambda target, tween_vars: "from"},
    )


def test_gsap_tweens_and_timelines(monitor):
    created = []
    namespace = {"gsap": make_gsap(created)}
    scanner = AnimationScanner(monitor.summary)
    hooks = TimelineLibraryHooks(monitor, scanner, namespace)
    hooks.discover()
    gsap = namespace["gsap"]

    assert gsap.to("#a", {"duration": 4, "repeat": 2}) == "to"
    assert monitor.summary.anim_max_duration_s == 4
    assert monitor.summary.anim_max_loops == 3

    gsap.fromTo("#a", {"duration": 99}, {"duration": 1, "repeat": -1})
    assert monitor.summary.anim_infinite is True
    assert monitor.summary.anim_max_duration_s == 4

    gsap.timeline({"repeat": 0})
    hooks.poll()
    assert monitor.summary.anim_max_duration_s == 12


def test_late_anime_is_hooked_and_scaled(monitor, scheduler):
    namespace = {}
    hooks = TimelineLibraryHooks(monitor, AnimationScanner(monitor.summary), namespace)
    hooks.discover()

    scheduler.advance(300)
    namespace["anime"] = lambda params: params["targets"]
    scheduler.advance(100)

    assert "anime" in hooks.hooked
    assert namespace["anime"]({"targets": ".x", "duration": 1500}) == ".x"
    assert monitor.summary.anim_max_duration_s == 1.5


def test_discovery_gives_up(monitor, scheduler):
    hooks = TimelineLibraryHooks(monitor, AnimationScanner(monitor.summary), {})
    task = hooks.discover()
    scheduler.advance(10_000)
    assert task.state.value == "exhausted"
    assert task.attempts == monitor.config.library_probe_attempts
