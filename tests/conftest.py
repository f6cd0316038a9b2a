"""Shared fakes: an in-process execution context and a virtual clock."""

from collections import defaultdict
from types import SimpleNamespace

import pytest

from adtap.config import MonitorConfig
from adtap.monitor.channel import EventChannel
from adtap.monitor.context import Element, ExecutionContext, MonitorContext, PerformanceEntry, Surface
from adtap.monitor.scheduler import ManualScheduler
from adtap.monitor.summary import Summary


class FakeDrawing:
    """2D drawing surface that records every call."""

    def __init__(self, width=300, height=250):
        self.canvas = SimpleNamespace(width=width, height=height)
        self.line_width = 1.0
        self.stroke_style = "#000"
        self.ops = []

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)

        def op(*args):
            self.ops.append((name, args))

        return op


class FakePage:
    """Execution context whose original surfaces record calls."""

    def __init__(self):
        self.calls = []
        self.listeners = defaultdict(list)
        self.performance = defaultdict(list)
        self.mutation_callbacks = []
        self.boxes = []
        self.viewport_size = (300, 250)
        self.root = Element("BODY")
        self.anchor = None
        self.drawing = FakeDrawing()

        rec = self._recorder
        self.context = ExecutionContext(
            network=Surface(fetch=rec("fetch"), xhr_open=rec("xhr_open"), xhr_send=rec("xhr_send")),
            storage=Surface(
                set_item=rec("set_item"), remove_item=rec("remove_item"), clear=rec("clear"), set_cookie=rec("set_cookie")
            ),
            dialogs=Surface(alert=rec("alert"), confirm=rec("confirm"), prompt=rec("prompt")),
            console=Surface(error=rec("error"), warn=rec("warn")),
            document=Surface(
                write=rec("write"),
                writeln=rec("writeln"),
                add_event_listener=lambda kind, cb: self.listeners[kind].append(cb),
                get_context_2d=lambda canvas=None: self.drawing,
                elements=lambda: list(self.boxes),
                viewport=lambda: self.viewport_size,
                root=self.root,
                query_anchor=lambda: self.anchor,
            ),
            elements=Surface(set_property=rec("set_property"), set_attribute=rec("set_attribute")),
            styles=Surface(
                set_property=rec("style_set_property"),
                set_css_text=rec("set_css_text"),
                set_sheet_text=rec("set_sheet_text"),
            ),
            observers=Surface(observe=self._observe),
            performance=Surface(observe=self._observe_performance),
            window=Surface(open=rec("open")),
        )

    def _recorder(self, name):
        def call(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return f"{name}-result"

        return call

    def _observe(self, target, callback):
        self.mutation_callbacks.append(callback)

    def _observe_performance(self, entry_type, callback):
        self.performance[entry_type].append(callback)

        def disconnect():
            self.performance[entry_type].remove(callback)

        return disconnect

    def called(self, name):
        return [c for c in self.calls if c[0] == name]

    def fire(self, kind, *args):
        for callback in list(self.listeners[kind]):
            callback(*args)

    def entry(self, entry_type, **fields):
        entry = PerformanceEntry(entry_type=entry_type, **fields)
        for callback in list(self.performance[entry_type]):
            callback(entry)

    def mutate(self, *tags):
        mutation = SimpleNamespace(added_nodes=[Element(tag) for tag in tags])
        for callback in list(self.mutation_callbacks):
            callback([mutation])


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def config():
    return MonitorConfig()


@pytest.fixture
def monitor(scheduler, config):
    return MonitorContext(summary=Summary(), channel=EventChannel(), scheduler=scheduler, config=config)


@pytest.fixture
def messages(monitor):
    received = []
    monitor.channel.subscribe(received.append)
    return received


@pytest.fixture
def page():
    return FakePage()
