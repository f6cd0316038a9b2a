"""HTTP daemon exposing the monitor read-only, plus load control.

PUBLIC API:
  - run_daemon_server: Run the daemon in the foreground
"""

from adtap.api.server import run_daemon_server

__all__ = ["run_daemon_server"]
