"""Main application entry point for adtap.

Provides dual REPL/MCP functionality on top of the adtap daemon, which owns
the monitored load and its aggregated results.
"""

import os
from dataclasses import dataclass, field

from replkit2 import App

from adtap.client import DEFAULT_DAEMON_URL, DaemonClient


@dataclass
class AdTapState:
    """Application state for adtap.

    Attributes:
        client: HTTP client for the daemon.
    """

    client: DaemonClient = field(default_factory=lambda: DaemonClient(os.environ.get("ADTAP_DAEMON_URL", DEFAULT_DAEMON_URL)))

    def cleanup(self):
        self.client.close()


# Must be created before command imports for decorator registration
app = App(
    "adtap",
    AdTapState,
    uri_scheme="adtap",
    fastmcp={
        "description": "Ad creative runtime monitor",
        "tags": {"ads", "creative", "browser", "compliance"},
    },
)


# Command imports trigger @app.command decorator registration
from adtap.commands import load  # noqa: E402, F401
from adtap.commands import summary  # noqa: E402, F401
from adtap.commands import events  # noqa: E402, F401
from adtap.commands import click  # noqa: E402, F401
