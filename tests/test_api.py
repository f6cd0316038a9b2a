import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import adtap.api.app as app_module
from adtap.api.app import DaemonState
from adtap.api.routes import include_routes
from adtap.client import DaemonClient
from adtap.config import MonitorConfig
from adtap.monitor.clickexit import ClickResolver
from adtap.monitor.context import Element, Gesture
from adtap.service import MonitorService


@pytest.fixture
def service():
    def handler(request):
        return httpx.Response(404 if "gone" in request.url.path else 200)

    service = MonitorService(MonitorConfig(), ClickResolver(client=httpx.Client(transport=httpx.MockTransport(handler))))
    yield service
    service.cleanup()


@pytest.fixture
def client(monkeypatch, service):
    api = FastAPI()
    include_routes(api)
    monkeypatch.setattr(app_module, "app_state", DaemonState(service))
    return TestClient(api)


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_not_initialized(monkeypatch, client):
    monkeypatch.setattr(app_module, "app_state", None)
    assert client.get("/status").json() == {"active": False, "error": "adtap not initialized"}
    assert client.get("/summary").json()["summary"] is None


def test_summary_unknown_until_first_snapshot(client):
    assert client.get("/summary").json() == {"summary": None, "sequence": 0}
    assert client.get("/phases").json()["phases"]["total"] is None


def test_monitored_load_end_to_end(client, service, page, scheduler):
    service.monitor_context(page.context, scheduler)
    page.entry("resource", name="a.js", start_time=10, transfer_size=100)
    scheduler.advance(1000)
    page.fire("load")
    page.fire("pointerdown", Gesture("pointerdown", 1200))
    page.entry("resource", name="b.json", start_time=1300, transfer_size=40)
    page.context.dialogs.alert("hi")
    scheduler.advance(500)

    summary = client.get("/summary").json()
    assert summary["summary"]["dialogs"] == 1
    assert summary["summary"]["total_bytes"] == 140

    phases = client.get("/phases").json()["phases"]
    assert phases["initial"] == {"requests": 1, "bytes": 100}
    assert phases["user"] == {"requests": 1, "bytes": 40}
    assert phases["subload"] == {"requests": 0, "bytes": 0}

    dialogs = client.get("/events", params={"type": "dialog"}).json()["events"]
    assert [(e["kind"], e["text"]) for e in dialogs] == [("alert", "hi")]
    assert len(client.get("/events", params={"limit": 2}).json()["events"]) == 2

    status = client.get("/status").json()
    assert status["active"] is True
    assert status["events"] >= 4


def test_click_endpoints(client, service, page, scheduler):
    page.anchor = Element("a", attributes={"href": "https://brand.test/landing"})
    service.monitor_context(page.context, scheduler)

    assert client.post("/click/resolve", json={}).json() == {"error": "No click destination reported"}
    assert client.post("/click/simulate").json() == {"clicked": True}

    resolution = client.post("/click/resolve", json={}).json()["resolution"]
    assert resolution["status"] == "ok"
    assert resolution["code"] == 200

    gone = client.post("/click/resolve", json={"url": "https://brand.test/gone"}).json()["resolution"]
    assert gone["status"] == "http-error"


def test_load_validation_and_stop(client, service, page, scheduler):
    assert "error" in client.post("/load", json={}).json()
    assert "error" in client.post("/load", json={"source": "a.zip", "url": "https://x.test"}).json()
    assert "not found" in client.post("/load", json={"source": "/nonexistent/bundle.zip"}).json()["error"]

    service.monitor_context(page.context, scheduler)
    assert client.post("/stop").json() == {"stopped": True}
    assert client.post("/stop").json() == {"stopped": False}
    assert client.post("/click/simulate").json() == {"error": "No active load"}


def test_daemon_client_against_routes(client, service, page, scheduler):
    service.monitor_context(page.context, scheduler)
    def forward(request):
        response = client.request(request.method, request.url.path, params=request.url.params, content=request.content)
        return httpx.Response(response.status_code, json=response.json())

    daemon = DaemonClient(base_url="http://testserver", transport=httpx.MockTransport(forward))

    assert daemon.status()["active"] is True
    assert daemon.summary()["sequence"] == 1
    assert daemon.events(limit=1, event_type="summary-snapshot")[0]["sequence"] == 1
    assert daemon.stop() == {"stopped": True}


def test_daemon_client_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    daemon = DaemonClient(transport=httpx.MockTransport(handler))
    with pytest.raises(RuntimeError, match="adtap daemon"):
        daemon.status()
