"""HTTP client for adtap daemon communication.

PUBLIC API:
  - DaemonClient: HTTP client wrapper for daemon API
"""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_DAEMON_URL = "http://localhost:8767"


class DaemonClient:
    """HTTP client for the adtap daemon API.

    Attributes:
        base_url: Base URL of the daemon
    """

    def __init__(self, base_url: str = DEFAULT_DAEMON_URL, timeout: float = 30.0, transport: httpx.BaseTransport | None = None):
        """Initialize daemon client.

        Args:
            base_url: Base URL of the daemon
            timeout: Request timeout in seconds
            transport: Optional transport, for tests
        """
        self.base_url = base_url
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.ConnectError as e:
            logger.error(f"Failed to connect to daemon at {self.base_url}: {e}")
            raise RuntimeError("Cannot connect to daemon. Is it running? Try 'adtap daemon' to start it.") from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error from daemon: {e}")
            raise

    def get(self, path: str, **kwargs) -> dict[str, Any]:
        """Make GET request to daemon.

        Raises:
            RuntimeError: If the daemon is unreachable
            httpx.HTTPError: On HTTP error
        """
        return self._request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> dict[str, Any]:
        """Make POST request to daemon.

        Raises:
            RuntimeError: If the daemon is unreachable
            httpx.HTTPError: On HTTP error
        """
        return self._request("POST", path, **kwargs)

    def close(self):
        self._client.close()

    def status(self) -> dict[str, Any]:
        return self.get("/status")

    def load(self, source: str | None = None, url: str | None = None, port: int = 9222, page: int = 0) -> dict[str, Any]:
        return self.post("/load", json={"source": source, "url": url, "port": port, "page": page})

    def stop(self) -> dict[str, Any]:
        return self.post("/stop")

    def summary(self) -> dict[str, Any]:
        return self.get("/summary")

    def phases(self) -> dict[str, Any]:
        return self.get("/phases")

    def events(self, limit: int = 50, event_type: str | None = None) -> list[dict]:
        params: dict[str, Any] = {"limit": limit}
        if event_type:
            params["type"] = event_type
        return self.get("/events", params=params).get("events", [])

    def simulate_click(self) -> dict[str, Any]:
        return self.post("/click/simulate")

    def resolve_click(self, url: str | None = None) -> dict[str, Any]:
        return self.post("/click/resolve", json={"url": url})
