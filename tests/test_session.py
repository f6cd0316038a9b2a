import json
from concurrent.futures import Future

import pytest

from adtap.cdp.session import CDPSession


def test_event_callbacks_can_be_removed():
    session = CDPSession()
    received = []
    off = session.on("Runtime.bindingCalled", received.append)

    session._on_message(None, json.dumps({"method": "Runtime.bindingCalled", "params": {"name": "x"}}))
    off()
    session._on_message(None, json.dumps({"method": "Runtime.bindingCalled", "params": {"name": "y"}}))

    assert received == [{"name": "x"}]


def test_failing_callback_does_not_stop_others():
    session = CDPSession()
    received = []

    def broken(params):
        raise ValueError("bad")

    session.on("Page.loadEventFired", broken)
    session.on("Page.loadEventFired", received.append)
    session._on_message(None, json.dumps({"method": "Page.loadEventFired", "params": {"timestamp": 1}}))

    assert received == [{"timestamp": 1}]


def test_responses_resolve_pending_futures():
    session = CDPSession()
    ok, failed = Future(), Future()
    session._waiting.update({1: ok, 2: failed})

    session._on_message(None, json.dumps({"id": 1, "result": {"value": 3}}))
    session._on_message(None, json.dumps({"id": 2, "error": {"message": "nope"}}))

    assert ok.result() == {"value": 3}
    with pytest.raises(RuntimeError):
        failed.result()


def test_close_fails_pending_commands():
    session = CDPSession()
    pending = Future()
    session._waiting[7] = pending
    session._on_close(None, 1000, "bye")

    with pytest.raises(RuntimeError, match="Connection closed"):
        pending.result()
    assert not session.is_connected


def test_send_requires_connection():
    with pytest.raises(RuntimeError, match="Not connected"):
        CDPSession().send("Page.enable")


def test_evaluate_returns_value_or_raises(monkeypatch):
    session = CDPSession()
    replies = iter(
        [
            {"result": {"type": "number", "value": 42}},
            {"result": {"type": "object"}, "exceptionDetails": {"text": "Uncaught"}},
        ]
    )
    monkeypatch.setattr(session, "execute", lambda method, params=None, timeout=None: next(replies))

    assert session.evaluate("6 * 7") == 42
    with pytest.raises(RuntimeError, match="Uncaught"):
        session.evaluate("throw 1")


def test_connect_without_pages(monkeypatch):
    session = CDPSession()
    monkeypatch.setattr(session, "list_pages", lambda: [])
    with pytest.raises(RuntimeError, match="No Chrome pages"):
        session.connect()


def test_pick_page_by_url(monkeypatch):
    session = CDPSession()
    pages = [
        {"url": "about:blank", "webSocketDebuggerUrl": "ws://a"},
        {"url": "https://adtap.invalid/x/index.html", "webSocketDebuggerUrl": "ws://b"},
    ]
    monkeypatch.setattr(session, "list_pages", lambda: pages)

    assert session._pick("adtap.invalid")["webSocketDebuggerUrl"] == "ws://b"
    assert session._pick(0)["webSocketDebuggerUrl"] == "ws://a"
    with pytest.raises(IndexError):
        session._pick(5)
    with pytest.raises(IndexError):
        session._pick("missing")
