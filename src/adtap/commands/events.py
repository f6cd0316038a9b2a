"""Event log display.

PUBLIC API:
  - events: Show recent monitor events
"""

from adtap.app import app
from adtap.commands._builders import error_response, table_response, truncate_string

_SKIP = {"seq", "channelTag", "type"}


@app.command(display="markdown", fastmcp={"type": "resource", "mime_type": "text/markdown"})
def events(state, limit: int = 50, type: str = "") -> dict:
    """Show recent events from the monitored creative.

    Args:
        limit: Max results (default: 50)
        type: Only this event type (log-entry, dialog, storage-write,
              network-activity, runtime-error, summary-snapshot, click-candidate)
    """
    try:
        items = state.client.events(limit=limit, event_type=type or None)
    except RuntimeError as e:
        return error_response(str(e))

    rows = [
        {
            "ID": str(e.get("seq", "")),
            "Type": e.get("type", ""),
            "Data": truncate_string(", ".join(f"{k}={v}" for k, v in e.items() if k not in _SKIP and k != "summary"), 100),
        }
        for e in items
    ]

    warnings = []
    if limit and len(items) == limit:
        warnings.append(f"Showing last {limit} events (use limit parameter to see more)")

    return table_response("Events", ["ID", "Type", "Data"], rows, summary=f"{len(rows)} events", warnings=warnings)
