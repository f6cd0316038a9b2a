"""Summary and phase accounting display.

PUBLIC API:
  - summary: Show the latest summary snapshot
  - phases: Show requests/bytes per load phase
"""

from adtap.app import app
from adtap.commands._builders import error_response, format_size, info_response, table_response

_SECTIONS = {
    "Timing": ("content_ready_ms", "first_render_ms", "frames", "long_tasks_ms", "cpu_score"),
    "Counters": (
        "console_errors", "console_warnings", "dialogs", "storage_writes", "cookie_writes",
        "errors", "document_writes", "network_calls", "runtime_iframes",
    ),
    "Capabilities": ("known_library", "exit_shim_installed", "click_url"),
    "Border": ("border_sides", "border_css_rules"),
    "Animation": ("anim_max_duration_s", "anim_max_loops", "anim_infinite"),
}


@app.command(display="markdown", fastmcp={"type": "resource", "mime_type": "text/markdown"})
def summary(state) -> dict:
    """Show the latest summary. Unmeasured fields are shown as unknown."""
    try:
        result = state.client.summary()
    except RuntimeError as e:
        return error_response(str(e))

    data = result.get("summary")
    if data is None:
        return error_response("No summary received yet", "Load a creative with `load()` and wait a moment")

    fields = {}
    for section, names in _SECTIONS.items():
        for name in names:
            fields[f"{section} / {name}"] = data.get(name)
    return info_response(f"Summary (snapshot {result.get('sequence', 0)})", fields)


@app.command(display="markdown", fastmcp={"type": "resource", "mime_type": "text/markdown"})
def phases(state) -> dict:
    """Show requests and bytes per load phase (initial, subload, user, total)."""
    try:
        result = state.client.phases()
    except RuntimeError as e:
        return error_response(str(e))

    rows = []
    for phase, values in result.get("phases", {}).items():
        if values is None:
            rows.append({"Phase": phase, "Requests": "unknown", "Bytes": "unknown"})
        else:
            rows.append({"Phase": phase, "Requests": str(values["requests"]), "Bytes": format_size(values["bytes"])})

    return table_response("Load Phases", ["Phase", "Requests", "Bytes"], rows)
