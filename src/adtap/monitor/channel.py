"""One-directional event transport from the monitored context to the host.

PUBLIC API:
  - EventChannel: Fire-and-forget, best-effort delivery of wire messages
"""

import json
import logging
import threading
from typing import Callable

from adtap.monitor.events import Event, to_wire

logger = logging.getLogger(__name__)

Listener = Callable[[dict], None]


class EventChannel:
    """Best-effort transport of serialized events.

    The sending side only ever calls `post`. Every message is round-tripped
    through JSON so nothing but plain data reaches the listeners. A failing
    listener or an unserializable event drops that message and nothing else.

    Attributes:
        delivered: Messages handed to at least one listener.
        dropped: Messages lost to serialization or listener failures.
    """

    def __init__(self):
        """Initialize channel with no listeners."""
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self.delivered = 0
        self.dropped = 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Called with each wire dict.

        Returns:
            Function that removes the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def post(self, event: Event) -> None:
        """Send an event. Never raises."""
        try:
            message = json.loads(json.dumps(to_wire(event)))
        except (TypeError, ValueError) as e:
            logger.debug(f"Dropping unserializable {event.type} event: {e}")
            self.dropped += 1
            return

        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(message)
            except Exception as e:
                logger.debug(f"Listener failed on {event.type}: {e}")
                self.dropped += 1
                continue

        if listeners:
            self.delivered += 1
