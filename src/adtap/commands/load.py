"""Load control commands.

PUBLIC API:
  - load: Start monitoring a creative bundle or URL
  - stop: Tear down the current load
  - status: Show the daemon's current load
"""

from adtap.app import app
from adtap.commands._builders import error_response, info_response

_DAEMON_HELP = ["Start the daemon with `adtap daemon`", "Start Chrome with `--remote-debugging-port=9222`"]


@app.command(display="markdown", fastmcp={"type": "tool", "mime_type": "text/markdown"})
def load(state, source: str = "", url: str = "", port: int = 9222, page: int = 0) -> dict:
    """Start monitoring a creative in Chrome.

    Args:
        source: Bundle zip or directory (served locally)
        url: Page URL to monitor instead of a bundle
        port: Chrome debugging port (default: 9222)
        page: Chrome page index (default: 0)

    Examples:
        load("creative.zip")
        load(url="https://example.com/ad.html")
    """
    if bool(source) == bool(url):
        return error_response("Specify exactly one of source or url")

    try:
        result = state.client.load(source=source or None, url=url or None, port=port, page=page)
    except RuntimeError as e:
        return error_response(str(e), help_items=_DAEMON_HELP)

    if error := result.get("error"):
        return error_response(error, help_items=_DAEMON_HELP)

    return info_response(
        "Monitoring",
        {"URL": result.get("url"), "Bundle": result.get("bundle"), "Files": result.get("files")},
    )


@app.command(display="markdown", fastmcp={"type": "tool", "mime_type": "text/markdown"})
def stop(state) -> dict:
    """Stop monitoring. The last summary stays available."""
    try:
        result = state.client.stop()
    except RuntimeError as e:
        return error_response(str(e))
    return info_response("Stopped", {"Stopped": result.get("stopped", False)})


@app.command(display="markdown", fastmcp={"type": "resource", "mime_type": "text/markdown"})
def status(state) -> dict:
    """Show the current load."""
    try:
        result = state.client.status()
    except RuntimeError as e:
        return error_response(str(e), help_items=_DAEMON_HELP)

    return info_response(
        "Status",
        {
            "Active": result.get("active", False),
            "URL": result.get("url"),
            "Bundle": result.get("bundle"),
            "Snapshots": result.get("snapshot", 0),
            "Events": result.get("events", 0),
        },
    )
