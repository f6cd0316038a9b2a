"""Click-exit commands.

PUBLIC API:
  - click: Click the creative
  - resolve: Check the reported click destination
"""

from adtap.app import app
from adtap.commands._builders import error_response, info_response


@app.command(display="markdown", fastmcp={"type": "tool", "mime_type": "text/markdown"})
def click(state) -> dict:
    """Click the creative (first link, else page body)."""
    try:
        result = state.client.simulate_click()
    except RuntimeError as e:
        return error_response(str(e))

    if error := result.get("error"):
        return error_response(error)
    return info_response("Click", {"Dispatched": result.get("clicked", False)})


@app.command(display="markdown", fastmcp={"type": "tool", "mime_type": "text/markdown"})
def resolve(state, url: str = "") -> dict:
    """Check a click destination: ok, http-error or unknown.

    Args:
        url: Destination to check (default: latest reported by the creative)
    """
    try:
        result = state.client.resolve_click(url or None)
    except RuntimeError as e:
        return error_response(str(e))

    if error := result.get("error"):
        return error_response(error, "Click the creative with `click()` first")

    resolution = result["resolution"]
    return info_response(
        "Click Destination",
        {
            "URL": resolution["url"],
            "Status": resolution["status"],
            "HTTP": resolution.get("code"),
            "Final URL": resolution.get("final_url"),
        },
    )
