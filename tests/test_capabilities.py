import logging

from adtap.monitor.assets import AssetTable
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
)
from adtap.monitor.context import Element, Surface


def test_network_fetch_counts_rewrites_and_forwards(monitor, messages, page):
    monitor.assets = AssetTable("index.html", {"data/feed.json": b"{}"}, handle_base="https://h.invalid/t/")
    network = NetworkCapability(monitor).wrap(page.context.network)

    result = network.fetch("data/feed.json", method="post")

    assert result == "fetch-result"
    assert page.called("fetch")[0][1] == ("https://h.invalid/t/data/feed.json",)
    assert monitor.summary.network_calls == 1
    assert messages[-1] == {
        "channelTag": 1,
        "type": "network-activity",
        "kind": "fetch",
        "url": "data/feed.json",
        "method": "POST",
    }


def test_xhr_is_reported_on_send(monitor, messages, page):
    network = NetworkCapability(monitor).wrap(page.context.network)
    request = object()

    network.xhr_open(request, "get", "https://api.test/x")
    assert monitor.summary.network_calls is None

    network.xhr_send(request)
    assert monitor.summary.network_calls == 1
    assert messages[-1]["kind"] == "xhr"
    assert messages[-1]["url"] == "https://api.test/x"


def test_original_surface_is_untouched(monitor, page):
    original = page.context.network.fetch
    NetworkCapability(monitor).wrap(page.context.network)
    assert page.context.network.fetch is original


def test_failing_hook_still_forwards(monitor, page):
    class Broken(Capability):
        surface = "dialogs"
        entry_points = ("alert",)

        def on_alert(self, *args, **kwargs):
            raise RuntimeError("hook bug")

    dialogs = Broken(monitor).wrap(page.context.dialogs)
    assert dialogs.alert("hi") == "alert-result"
    assert page.called("alert")


def test_original_errors_propagate(monitor):
    def failing(*args):
        raise ValueError("subject error")

    storage = StorageCapability(monitor).wrap(Surface(set_item=failing))
    try:
        storage.set_item("k", "v")
    except ValueError as e:
        assert str(e) == "subject error"
    else:
        raise AssertionError("expected the subject's own error")
    assert monitor.summary.storage_writes == 1


def test_storage_and_cookies(monitor, messages, page):
    storage = StorageCapability(monitor).wrap(page.context.storage)
    storage.set_item("k", "v")
    storage.remove_item("k")
    storage.clear()
    storage.set_cookie("a=1")

    assert monitor.summary.storage_writes == 1
    assert monitor.summary.cookie_writes == 1
    assert [m["op"] for m in messages] == ["set", "remove", "clear", "cookie"]


def test_dialogs_logs_and_document_writes(monitor, messages, page):
    dialogs = DialogCapability(monitor).wrap(page.context.dialogs)
    console = LogCapability(monitor).wrap(page.context.console)
    document = DocumentWriteCapability(monitor).wrap(page.context.document)

    dialogs.alert("a")
    dialogs.confirm("b")
    dialogs.prompt()
    console.error("bad", 42)
    console.warn("careful")
    document.write("<p>")
    document.writeln("<p>")

    summary = monitor.summary
    assert (summary.dialogs, summary.console_errors, summary.console_warnings, summary.document_writes) == (3, 1, 1, 2)
    assert {"channelTag": 1, "type": "log-entry", "level": "error", "message": "bad 42"} in messages
    assert messages[2]["text"] == ""


def test_element_reference_writes(monitor, page):
    monitor.assets = AssetTable("index.html", {"img/a.png": b"1", "v.mp4": b"2"}, handle_base="https://h.invalid/t/")
    elements = ElementReferenceCapability(monitor).wrap(page.context.elements)

    elements.set_property(Element("img"), "src", "img/a.png")
    elements.set_property(Element("video"), "src", "v.mp4")
    elements.set_property(Element("img"), "src", "https://cdn.test/x.png")
    elements.set_attribute(Element("source"), "srcset", "img/a.png 2x")
    elements.set_attribute(Element("div"), "style", "background:url(img/a.png)")
    elements.set_attribute(Element("div"), "title", "img/a.png")

    summary = monitor.summary
    assert summary.img_rewrites == 1
    assert summary.media_rewrites == 1
    assert summary.set_attr_rewrites == 1
    assert summary.style_attr_rewrites == 1
    assert summary.rewrites == 3
    assert page.called("set_attribute")[-1][1][2] == "img/a.png"
    assert page.called("set_property")[0][1][2] == "https://h.invalid/t/img/a.png"


def test_style_writes_rewrite_urls(monitor, page):
    monitor.assets = AssetTable("index.html", {"bg.jpg": b"1"}, handle_base="https://h.invalid/t/")
    styles = StyleCapability(monitor).wrap(page.context.styles)

    styles.set_css_text(None, "background:url(bg.jpg)")
    styles.set_property(None, "color", "red")

    assert page.called("set_css_text")[0][1][1] == "background:url(https://h.invalid/t/bg.jpg)"
    assert monitor.summary.style_url_rewrites == 1


def test_structural_guard_rejects_non_elements(monitor, page, caplog):
    capability = StructuralChangeCapability(monitor)
    observers = capability.wrap(page.context.observers)

    with caplog.at_level(logging.WARNING):
        assert observers.observe(None, print) is None
        assert observers.observe("text node", print) is None
        assert observers.observe("another string", print) is None
    observers.observe(Element("div"), print)

    assert len(page.mutation_callbacks) == 1
    assert capability.rejected == {"NoneType": 1, "str": 2}
    assert caplog.text.count("Rejected observer registration") == 2


def test_window_open_reports_candidate(monitor, page):
    reports = []
    window = WindowCapability(monitor, lambda url, source: reports.append((url, source)), lambda: "https://tag.test")
    opened = window.wrap(page.context.window)

    opened.open("https://dest.test", "_blank")
    opened.open()

    assert reports == [("https://dest.test", "window.open"), ("https://tag.test", "window.open")]
    assert len(page.called("open")) == 2
