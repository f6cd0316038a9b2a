"""Event variants carried from the monitored context to the host.

Events hold only scalar and record data. `to_wire` produces the dict that
actually crosses the boundary; `from_wire` is the tolerant reverse used by the
host, which ignores unknown fields and untagged messages.

PUBLIC API:
  - CHANNEL_TAG: Marker distinguishing monitor messages from other traffic
  - Event: Base class for all variants
  - LogEntry, Dialog, StorageWrite, NetworkActivity, UncaughtError,
    SummarySnapshot, ClickCandidate: Event variants
  - to_wire: Serialize an event to its wire dict
  - from_wire: Parse a wire dict back into an event (or None)
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, ClassVar

CHANNEL_TAG = 1


@dataclass
class Event:
    """Base event. Subclasses set `type` to their wire tag."""

    type: ClassVar[str] = ""


@dataclass
class LogEntry(Event):
    type: ClassVar[str] = "log-entry"
    level: str = "error"  # error | warn
    message: str = ""


@dataclass
class Dialog(Event):
    type: ClassVar[str] = "dialog"
    kind: str = "alert"  # alert | confirm | prompt
    text: str = ""


@dataclass
class StorageWrite(Event):
    type: ClassVar[str] = "storage-write"
    op: str = "set"  # set | remove | clear | cookie
    key: str | None = None
    value: str | None = None


@dataclass
class NetworkActivity(Event):
    type: ClassVar[str] = "network-activity"
    kind: str = "fetch"  # fetch | xhr
    url: str = ""
    method: str = "GET"


@dataclass
class UncaughtError(Event):
    type: ClassVar[str] = "runtime-error"
    message: str = ""


@dataclass
class SummarySnapshot(Event):
    type: ClassVar[str] = "summary-snapshot"
    summary: dict = field(default_factory=dict)
    sequence: int = 0


@dataclass
class ClickCandidate(Event):
    type: ClassVar[str] = "click-candidate"
    url: str = ""
    source: str = "user"  # user | window.open | Enabler.<method>
    name: str | None = None


EVENT_TYPES: dict[str, type[Event]] = {
    cls.type: cls
    for cls in (LogEntry, Dialog, StorageWrite, NetworkActivity, UncaughtError, SummarySnapshot, ClickCandidate)
}


def to_wire(event: Event) -> dict[str, Any]:
    """Serialize an event into its tagged wire shape."""
    return {"channelTag": CHANNEL_TAG, "type": event.type, **asdict(event)}


def from_wire(data: Any) -> Event | None:
    """Parse a wire message.

    Returns None for anything that is not a tagged monitor message of a known
    type. Unknown fields are dropped.
    """
    if not isinstance(data, dict) or data.get("channelTag") != CHANNEL_TAG:
        return None

    cls = EVENT_TYPES.get(data.get("type", ""))
    if cls is None:
        return None

    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})
