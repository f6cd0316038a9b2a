"""Daemon server lifecycle management.

PUBLIC API:
  - run_daemon_server: Run daemon server in foreground (blocking)
"""

import logging

import uvicorn

from adtap.api.app import DaemonState, api
from adtap.api.routes import include_routes

logger = logging.getLogger(__name__)


def run_daemon_server(host: str = "127.0.0.1", port: int = 8767):
    """Run daemon server in foreground (blocking).

    Args:
        host: Host to bind to
        port: Port to bind to
    """
    import adtap.api.app as app_module

    include_routes(api)
    app_module.app_state = DaemonState()
    logger.info(f"Daemon listening on {host}:{port}")

    try:
        uvicorn.run(api, host=host, port=port, log_level="warning", access_log=False)
    except (SystemExit, KeyboardInterrupt):
        pass
    except Exception as e:
        logger.error(f"Daemon server failed: {e}")
    finally:
        if app_module.app_state:
            app_module.app_state.cleanup()
        logger.info("Daemon cleanup complete")
