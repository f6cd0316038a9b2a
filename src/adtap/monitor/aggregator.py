"""Host-side sink for the event channel.

PUBLIC API:
  - HostAggregator: Retains the latest summary snapshot, click candidates and the event log
  - SummaryView: Read-only summary where missing fields mean "unknown"
"""

import logging
import threading
from types import MappingProxyType
from typing import Any

from adtap.monitor.channel import EventChannel
from adtap.monitor.clickexit import ClickResolution, ClickResolver
from adtap.monitor.events import ClickCandidate, SummarySnapshot, from_wire
from adtap.monitor.store import EventStore
from adtap.monitor.summary import PHASES

logger = logging.getLogger(__name__)


class SummaryView:
    """Immutable view over one summary snapshot.

    Collaborators (rule engine, report builder) read through this and must
    treat None as "not measured", never as zero.
    """

    def __init__(self, data: dict | None = None, sequence: int = 0):
        self._data = MappingProxyType(dict(data or {}))
        self.measured = data is not None
        self.sequence = sequence

    def get(self, name: str) -> Any:
        return self._data.get(name)

    def __getitem__(self, name: str) -> Any:
        return self._data.get(name)

    def known(self, name: str) -> bool:
        return name in self._data

    def phase(self, phase: str) -> dict | None:
        """{requests, bytes} for a phase or 'total', None while unknown."""
        requests = self._data.get(f"{phase}_requests")
        size = self._data.get(f"{phase}_bytes")
        if requests is None or size is None:
            return None
        return {"requests": requests, "bytes": size}

    def phases(self) -> dict[str, dict | None]:
        return {name: self.phase(name) for name in (*PHASES, "total")}

    def to_dict(self) -> dict:
        return dict(self._data)


class HostAggregator:
    """The single subscriber of a monitor's event channel.

    Every snapshot replaces the retained summary wholesale (last write wins).
    All tagged events are appended to the event store.
    """

    def __init__(self, store: EventStore | None = None):
        self.store = store or EventStore()
        self.click_candidates: list[ClickCandidate] = []
        self.received = 0
        self.ignored = 0
        self._snapshot: dict | None = None
        self._sequence = 0
        self._lock = threading.Lock()
        self._unsubscribe = None

    def attach(self, channel: EventChannel) -> None:
        if self._unsubscribe is not None:
            raise RuntimeError("Aggregator already attached to a channel")
        self._unsubscribe = channel.subscribe(self.receive)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def receive(self, message: dict) -> None:
        """Channel listener. Untagged or unknown messages are ignored."""
        event = from_wire(message)
        if event is None:
            self.ignored += 1
            return

        self.received += 1
        self.store.append(message)

        if isinstance(event, SummarySnapshot):
            with self._lock:
                self._snapshot = dict(event.summary)
                self._sequence = event.sequence
        elif isinstance(event, ClickCandidate):
            with self._lock:
                self.click_candidates.append(event)

    @property
    def summary(self) -> SummaryView:
        with self._lock:
            return SummaryView(self._snapshot, self._sequence)

    def events(self, limit: int = 50, event_type: str | None = None) -> list[dict]:
        return self.store.recent(limit, event_type)

    def click_destination(self) -> str | None:
        """Most recent reported destination, else the summary's click URL."""
        with self._lock:
            for candidate in reversed(self.click_candidates):
                if candidate.url:
                    return candidate.url
        return self.summary.get("click_url")

    def resolve_click(self, resolver: ClickResolver, url: str | None = None) -> ClickResolution | None:
        """Check a destination (default: the latest reported one)."""
        target = url or self.click_destination()
        if not target:
            return None
        result = resolver.resolve(target)
        logger.info(f"Click destination {result.url}: {result.status}")
        return result

    def reset(self) -> None:
        with self._lock:
            self._snapshot = None
            self._sequence = 0
            self.click_candidates.clear()
        self.store.clear()
