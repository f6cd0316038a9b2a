import logging

import pytest

from adtap.monitor.aggregator import HostAggregator
from adtap.monitor.assets import AssetTable
from adtap.monitor.context import Element, ElementBox, Rect
from adtap.monitor.injector import INJECTED_FLAG, Injector


@pytest.fixture
def probe(monitor, page):
    return Injector(monitor).inject(page.context)


def test_injection_is_idempotent(monitor, page, probe):
    assert page.context.globals[INJECTED_FLAG] is True
    wrapped = page.context.network
    assert Injector(monitor).inject(page.context) is None
    assert page.context.network is wrapped


def test_snapshots_are_broadcast_repeatedly(monitor, messages, scheduler, probe):
    monitor.summary.bump("network_calls")
    scheduler.advance(60_000)

    snapshots = [m for m in messages if m["type"] == "summary-snapshot"]
    assert probe.broadcaster.ticks == monitor.config.snapshot_count
    # Ten periodic snapshots plus one after each of the five scans.
    assert [s["sequence"] for s in snapshots] == list(range(1, 16))
    assert snapshots[-1]["summary"]["network_calls"] == 1


def test_scans_run_at_configured_offsets(monitor, page, scheduler, probe):
    page.boxes = [
        ElementBox("BODY", rect=Rect(0, 0, 300, 250)),
        ElementBox("DIV", computed={"animation-duration": "2s"}),
    ]
    scheduler.advance(599)
    assert monitor.summary.anim_max_duration_s is None

    scheduler.advance(1)
    assert monitor.summary.anim_max_duration_s == 2
    assert monitor.summary.border_sides == 0


def test_known_library_flag(monitor, page, scheduler, probe):
    assert monitor.summary.known_library is False
    page.context.globals["jQuery"] = object()
    scheduler.advance(600)
    assert monitor.summary.known_library is True


def test_uncaught_errors(monitor, messages, page, probe):
    class ErrorEvent:
        message = "boom"

    page.fire("error", ErrorEvent())
    assert monitor.summary.errors == 1
    assert messages[-1]["type"] == "runtime-error"
    assert messages[-1]["message"] == "boom"


def test_simulate_click_opens_window_and_reports(monitor, page, probe):
    page.anchor = Element("a", attributes={"href": "https://brand.test"})
    gesture = probe.simulate_click()

    assert gesture.default_prevented
    assert monitor.summary.click_url == "https://brand.test"
    assert len(probe.phases.ring) == 1


def test_failing_listener_does_not_escape(monitor, page, probe):
    page.fire("pointerdown", None)
    assert monitor.summary.errors is None


def test_teardown_stops_everything(monitor, messages, page, scheduler):
    monitor.assets = AssetTable("index.html", {"a.png": b"1"})
    probe = Injector(monitor).inject(page.context)

    probe.teardown()
    probe.teardown()
    count = len(messages)
    scheduler.advance(60_000)

    assert len(messages) == count
    assert monitor.assets.revoked
    assert page.performance["resource"] == []
    assert "Enabler" not in page.context.globals


def test_install_logs(monitor, page, caplog):
    with caplog.at_level(logging.INFO, logger="adtap"):
        Injector(monitor).inject(page.context)
    assert "Monitor installed with 10 capabilities" in caplog.text


@pytest.fixture
def aggregator(monitor):
    aggregator = HostAggregator()
    aggregator.attach(monitor.channel)
    yield aggregator
    aggregator.store.close()


def test_late_changes_reach_the_host(monitor, page, scheduler, probe, aggregator):
    page.fire("load")
    page.anchor = Element("a", attributes={"href": "https://brand.test"})
    scheduler.advance(6000)

    probe.simulate_click()
    assert aggregator.summary["click_url"] == "https://brand.test"

    page.entry("resource", name="https://ads.test/click.gif", start_time=6050, transfer_size=200)
    assert aggregator.summary.phase("user") == {"requests": 1, "bytes": 200}
    assert aggregator.summary.phase("total") == {"requests": 1, "bytes": 200}

    page.boxes = [ElementBox("DIV", computed={"animation-duration": "12s"})]
    scheduler.advance(40_000)
    assert aggregator.summary["anim_max_duration_s"] == 12


def test_periodic_window_does_not_rebroadcast_on_resources(monitor, messages, page, probe):
    page.entry("resource", name="a.js", start_time=1, transfer_size=10)
    assert len([m for m in messages if m["type"] == "summary-snapshot"]) == 1


def test_teardown_sends_final_snapshot(monitor, page, scheduler, probe, aggregator):
    scheduler.advance(60_000)
    page.fire("error", None)
    assert aggregator.summary["errors"] is None

    probe.teardown()
    assert aggregator.summary["errors"] == 1
