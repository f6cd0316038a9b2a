"""Chrome DevTools Protocol session for one page.

The WebSocket runs on its own thread. Command responses resolve futures;
events are handed to callbacks registered per method, on that same thread.

PUBLIC API:
  - CDPSession: Connect to a page, issue commands, subscribe to events
"""

import json
import logging
import threading
from collections import defaultdict
from concurrent.futures import Future, TimeoutError
from typing import Any, Callable

import requests
import websocket

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict], None]


class CDPSession:
    """One debugging connection to a Chrome page.

    Attributes:
        port: Chrome remote debugging port.
        timeout: Default seconds execute() waits for a response.
        target: /json entry of the connected page.
    """

    def __init__(self, port: int = 9222, host: str = "localhost", timeout: float = 30):
        self.port = port
        self.host = host
        self.timeout = timeout
        self.target: dict | None = None

        self._ws: websocket.WebSocketApp | None = None
        self._thread: threading.Thread | None = None
        self._open = threading.Event()
        self._ids = 0
        self._waiting: dict[int, Future] = {}
        self._callbacks: dict[str, list[EventCallback]] = defaultdict(list)
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self._open.is_set()

    def list_pages(self) -> list[dict]:
        """Debuggable pages reported by Chrome, empty if Chrome is unreachable."""
        try:
            response = requests.get(f"http://{self.host}:{self.port}/json", timeout=2)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Chrome not reachable on port {self.port}: {e}")
            return []
        return [t for t in response.json() if t.get("type") == "page" and t.get("webSocketDebuggerUrl")]

    def _pick(self, page: int | str) -> dict:
        pages = self.list_pages()
        if not pages:
            raise RuntimeError(f"No Chrome pages on port {self.port}. Start Chrome with --remote-debugging-port")
        if isinstance(page, str):
            for target in pages:
                if page in target.get("url", ""):
                    return target
            raise IndexError(f"No page with URL containing {page!r}")
        if not 0 <= page < len(pages):
            raise IndexError(f"Page {page} out of range ({len(pages)} pages)")
        return pages[page]

    def connect(self, page: int | str = 0) -> None:
        """Attach to a page by index or by a substring of its URL.

        Raises:
            RuntimeError: If already connected or Chrome has no pages.
            IndexError: If no page matches.
            TimeoutError: If the WebSocket does not open within 5s.
        """
        if self._ws is not None:
            raise RuntimeError("Already connected")

        self.target = self._pick(page)
        self._ws = websocket.WebSocketApp(
            self.target["webSocketDebuggerUrl"],
            on_open=lambda ws: self._open.set(),
            on_message=self._on_message,
            on_error=lambda ws, error: logger.error(f"WebSocket error: {error}"),
            on_close=self._on_close,
        )
        self._thread = threading.Thread(
            target=self._ws.run_forever,
            kwargs={"ping_interval": 30, "ping_timeout": 10, "skip_utf8_validation": True},
            daemon=True,
        )
        self._thread.start()

        if not self._open.wait(timeout=5):
            self.disconnect()
            raise TimeoutError("Chrome page did not accept the WebSocket")
        logger.info(f"Connected to {self.target.get('url', '')}")

    def disconnect(self) -> None:
        if self._ws is not None:
            self._ws.close()
            self._ws = None
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=2)
        self._thread = None
        self._open.clear()
        self.target = None

    def on(self, method: str, callback: EventCallback) -> Callable[[], None]:
        """Call callback with the params of every `method` event.

        Returns:
            Function that unregisters the callback.
        """
        with self._lock:
            self._callbacks[method].append(callback)

        def off() -> None:
            with self._lock:
                if callback in self._callbacks[method]:
                    self._callbacks[method].remove(callback)

        return off

    def send(self, method: str, params: dict | None = None) -> Future:
        """Issue a command without waiting. Safe to call from event callbacks."""
        if self._ws is None:
            raise RuntimeError("Not connected")

        future: Future = Future()
        with self._lock:
            self._ids += 1
            command_id = self._ids
            self._waiting[command_id] = future

        payload: dict[str, Any] = {"id": command_id, "method": method}
        if params:
            payload["params"] = params
        self._ws.send(json.dumps(payload))
        return future

    def execute(self, method: str, params: dict | None = None, timeout: float | None = None) -> Any:
        """Issue a command and wait for its result.

        Must not be called from an event callback: the response arrives on
        the thread that runs callbacks.

        Raises:
            RuntimeError: On a protocol error or a closed connection.
            TimeoutError: If no response arrives in time.
        """
        future = self.send(method, params)
        try:
            return future.result(timeout=timeout or self.timeout)
        except TimeoutError:
            with self._lock:
                stale = [i for i, f in self._waiting.items() if f is future]
                for command_id in stale:
                    del self._waiting[command_id]
            raise TimeoutError(f"{method} got no response") from None

    def evaluate(self, expression: str, timeout: float | None = None) -> Any:
        """Evaluate an expression in the page and return its value by value.

        Raises:
            RuntimeError: If the expression threw.
        """
        result = self.execute("Runtime.evaluate", {"expression": expression, "returnByValue": True}, timeout)
        if details := result.get("exceptionDetails"):
            raise RuntimeError(f"Page evaluation failed: {details.get('text', 'exception')}")
        return result.get("result", {}).get("value")

    # WebSocket thread

    def _on_message(self, ws, raw: str) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.error("Unparseable CDP message")
            return

        if "id" in message:
            self._resolve(message)
        elif "method" in message:
            self._dispatch(message["method"], message.get("params", {}))

    def _resolve(self, message: dict) -> None:
        with self._lock:
            future = self._waiting.pop(message["id"], None)
        if future is None:
            return
        if "error" in message:
            future.set_exception(RuntimeError(message["error"]))
        else:
            future.set_result(message.get("result", {}))

    def _dispatch(self, method: str, params: dict) -> None:
        with self._lock:
            callbacks = list(self._callbacks.get(method, ()))
        for callback in callbacks:
            try:
                callback(params)
            except Exception as e:
                logger.error(f"{method} callback failed: {e}")

    def _on_close(self, ws, code, reason) -> None:
        logger.info(f"WebSocket closed: {code} {reason}")
        self._open.clear()
        with self._lock:
            waiting = list(self._waiting.values())
            self._waiting.clear()
        for future in waiting:
            future.set_exception(RuntimeError("Connection closed"))
