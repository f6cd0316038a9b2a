"""FastAPI application and shared daemon state.

PUBLIC API:
  - api: FastAPI instance
  - app_state: DaemonState set by the server at startup
  - DaemonState: Holds the MonitorService behind the routes
"""

import logging

from fastapi import FastAPI

from adtap.service import MonitorService

logger = logging.getLogger(__name__)

api = FastAPI(title="adtap daemon")


class DaemonState:
    """State shared by all routes."""

    def __init__(self, service: MonitorService | None = None):
        self.service = service or MonitorService()

    def cleanup(self) -> None:
        try:
            self.service.cleanup()
        except Exception as e:
            logger.error(f"Cleanup failed: {e}")


app_state: DaemonState | None = None
