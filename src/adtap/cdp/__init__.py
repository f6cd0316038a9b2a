"""Chrome DevTools Protocol side of the monitor.

PUBLIC API:
  - CDPSession: Minimal CDP client with event callbacks
  - CdpBridge: Drives a monitor from a Chrome page
  - RemoteContext: Execution context fed by the in-page relay
"""

from adtap.cdp.bridge import CdpBridge, RemoteContext
from adtap.cdp.session import CDPSession

__all__ = ["CDPSession", "CdpBridge", "RemoteContext"]
