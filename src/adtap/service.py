"""Monitored-load orchestration shared by the API daemon and tests.

PUBLIC API:
  - MonitorService: Owns the channel, aggregator and the current monitored load
  - ActiveLoad: Everything belonging to one monitored load
"""

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from adtap.bundle import CreativeBundle, load_bundle
from adtap.cdp.bridge import CdpBridge
from adtap.cdp.session import CDPSession
from adtap.config import MonitorConfig, load_config
from adtap.monitor.aggregator import HostAggregator, SummaryView
from adtap.monitor.channel import EventChannel
from adtap.monitor.clickexit import ClickResolution, ClickResolver
from adtap.monitor.context import ExecutionContext, MonitorContext
from adtap.monitor.injector import Injector, Probe
from adtap.monitor.scheduler import Scheduler, ThreadScheduler
from adtap.monitor.summary import Summary

logger = logging.getLogger(__name__)


@dataclass
class ActiveLoad:
    """One monitored load."""

    monitor: MonitorContext
    probe: Probe
    bundle: CreativeBundle | None = None
    bridge: CdpBridge | None = None
    cdp: CDPSession | None = None
    url: str | None = None
    started_at: float = 0.0


class MonitorService:
    """Run one monitored load at a time and expose its results.

    Attributes:
        config: Monitor configuration applied to new loads.
        aggregator: Host-side sink, reset at the start of every load.
        resolver: Click destination checker.
        load: Current load, if any.
    """

    def __init__(self, config: MonitorConfig | None = None, resolver: ClickResolver | None = None):
        self.config = config or load_config()
        self.aggregator = HostAggregator()
        self.resolver = resolver or ClickResolver()
        self.load: ActiveLoad | None = None
        self._lock = threading.RLock()

    def _new_monitor(self, scheduler: Scheduler, bundle: CreativeBundle | None) -> MonitorContext:
        channel = EventChannel()
        self.aggregator.reset()
        self.aggregator.attach(channel)
        return MonitorContext(
            summary=Summary(),
            channel=channel,
            scheduler=scheduler,
            config=self.config,
            assets=bundle.asset_table() if bundle else None,
        )

    def monitor_context(
        self, context: ExecutionContext, scheduler: Scheduler, bundle: CreativeBundle | None = None
    ) -> Probe:
        """Instrument an in-process execution context.

        Raises:
            RuntimeError: If a load is already active or the context was already instrumented.
        """
        with self._lock:
            if self.load is not None:
                raise RuntimeError("A load is already being monitored. Call stop() first")
            monitor = self._new_monitor(scheduler, bundle)
            probe = Injector(monitor).inject(context)
            if probe is None:
                self.aggregator.detach()
                raise RuntimeError("Context is already instrumented")
            self.load = ActiveLoad(monitor=monitor, probe=probe, bundle=bundle, started_at=time.time())
            return probe

    def monitor_page(
        self, source: str | Path | None = None, url: str | None = None, port: int = 9222, page: int = 0
    ) -> dict:
        """Load a creative in Chrome and monitor it.

        Args:
            source: Bundle zip or directory, served from a local handle origin.
            url: Page URL to monitor instead of a bundle.
            port: Chrome debugging port.
            page: Page index to attach to.

        Returns:
            Status dict of the new load.
        """
        if (source is None) == (url is None):
            raise ValueError("Give exactly one of source or url")

        with self._lock:
            if self.load is not None:
                raise RuntimeError("A load is already being monitored. Call stop() first")

            bundle = load_bundle(source) if source is not None else None
            scheduler = ThreadScheduler()
            monitor = self._new_monitor(scheduler, bundle)

            cdp = CDPSession(port=port)
            try:
                cdp.connect(page)
                bridge = CdpBridge(cdp, monitor)
                probe = bridge.attach()

                size = bundle.ad_size() if bundle else None
                if size:
                    cdp.execute(
                        "Emulation.setDeviceMetricsOverride",
                        {"width": size.width, "height": size.height, "deviceScaleFactor": 1, "mobile": False},
                    )
                target = bridge.load(url)
            except Exception:
                scheduler.shutdown()
                self.aggregator.detach()
                cdp.disconnect()
                raise

            self.load = ActiveLoad(
                monitor=monitor,
                probe=probe,
                bundle=bundle,
                bridge=bridge,
                cdp=cdp,
                url=target,
                started_at=time.time(),
            )
            logger.info(f"Monitoring {target}")
            return self.status()

    def simulate_click(self) -> bool:
        """Click the creative: a real mouse event in Chrome, else a synthetic gesture."""
        with self._lock:
            if self.load is None:
                raise RuntimeError("No active load")
            if self.load.bridge is not None:
                return self.load.bridge.simulate_click()
            with self.load.monitor.scheduler.lock:
                self.load.probe.simulate_click()
            return True

    def stop(self) -> dict:
        """Tear down the current load. The aggregator keeps its last snapshot."""
        with self._lock:
            load = self.load
            if load is None:
                return {"stopped": False}
            self.load = None

            if load.bridge is not None:
                load.bridge.detach()
            else:
                with load.monitor.scheduler.lock:
                    load.probe.teardown()
            if load.cdp is not None:
                load.cdp.disconnect()
            if isinstance(load.monitor.scheduler, ThreadScheduler):
                load.monitor.scheduler.shutdown()
            self.aggregator.detach()
            logger.info("Load stopped")
            return {"stopped": True}

    def status(self) -> dict[str, Any]:
        load = self.load
        summary = self.aggregator.summary
        status: dict[str, Any] = {
            "active": load is not None,
            "snapshot": summary.sequence,
            "events": self.aggregator.store.count(),
        }
        if load is not None:
            status["url"] = load.url
            status["started_at"] = load.started_at
            if load.bundle is not None:
                status["bundle"] = load.bundle.name
                status["files"] = len(load.bundle.files)
                status["primary"] = load.bundle.primary_path
        return status

    def summary(self) -> SummaryView:
        return self.aggregator.summary

    def phases(self) -> dict[str, dict | None]:
        return self.aggregator.summary.phases()

    def events(self, limit: int = 50, event_type: str | None = None) -> list[dict]:
        return self.aggregator.events(limit, event_type)

    def resolve_click(self, url: str | None = None) -> ClickResolution | None:
        return self.aggregator.resolve_click(self.resolver, url)

    def cleanup(self) -> None:
        self.stop()
        self.resolver.close()
        self.aggregator.store.close()
