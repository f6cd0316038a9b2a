"""adtap - runtime monitor for HTML5 ad creatives.

Instruments a creative's execution context, attributes its network activity
to load phases and derives border, animation and click-exit facts. Provides
a REPL/MCP front end over an HTTP daemon that drives Chrome through CDP.

PUBLIC API:
  - app: Main ReplKit2 App instance
  - main: Entry point function for CLI
  - __version__: Package version string
"""

import atexit
import logging
import os
import sys
from importlib.metadata import version

from adtap.app import app

__version__ = version("adtap")

atexit.register(lambda: app.state.cleanup() if hasattr(app, "state") and app.state else None)


def _handle_daemon():
    """Run the daemon in the foreground (adtap daemon [port])."""
    from adtap.api import run_daemon_server

    port = int(sys.argv[2]) if len(sys.argv) > 2 else 8767
    run_daemon_server(port=port)


CLI_SUBCOMMANDS = {
    "daemon": _handle_daemon,
}


def main():
    """Entry point for adtap.

    Modes are auto-detected:
    - Subcommand (`adtap daemon`): Runs the HTTP daemon
    - Interactive terminal (TTY): Starts REPL mode
    - Pipe/redirect (no TTY): Starts MCP server mode
    """
    logging.basicConfig(level=os.environ.get("ADTAP_LOG_LEVEL", "WARNING").upper())

    if len(sys.argv) > 1 and sys.argv[1] in CLI_SUBCOMMANDS:
        CLI_SUBCOMMANDS[sys.argv[1]]()
        return

    if sys.stdin.isatty():
        app.run(title="adtap - Ad creative runtime monitor")
    else:
        app.mcp.run()


__all__ = ["app", "main", "__version__"]
