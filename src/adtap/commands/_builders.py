"""Response builders shared by adtap commands.

PUBLIC API:
  - table_response: Markdown table with title, warnings and summary line
  - info_response: Markdown key/value display
  - error_response: Markdown error alert
  - format_size: Human-readable byte count
  - truncate_string: Single-line truncation for table cells
"""

from replkit2.textkit import markdown


def truncate_string(text: str, max_length: int) -> str:
    """Collapse whitespace and truncate with an ellipsis."""
    if not text:
        return "-"
    text = text.replace("\n", " ").replace("\t", " ")
    if len(text) <= max_length:
        return text
    return f"{text[: max_length - 3]}..."


def format_size(size_bytes: int | None) -> str:
    """Format byte size as human-readable string (e.g. "1.2K")."""
    if size_bytes is None:
        return "unknown"
    if size_bytes < 1024:
        return f"{size_bytes}B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f}K"
    return f"{size_bytes / (1024 * 1024):.1f}M"


def table_response(
    title: str, headers: list[str], rows: list[dict], summary: str | None = None, warnings: list[str] | None = None
) -> dict:
    """Build consistent table response in markdown format."""
    builder = markdown().heading(title, level=2)

    for warning in warnings or []:
        builder.element("alert", message=warning, level="warning")

    if rows:
        builder.element("table", headers=headers, rows=rows)
    else:
        builder.text("_No data available_")

    if summary:
        builder.text(f"_{summary}_")

    return builder.build()


def info_response(title: str, fields: dict, extra: str | None = None) -> dict:
    """Build info display response. None values are shown as unknown."""
    builder = markdown().heading(title, level=2)

    for key, value in fields.items():
        builder.text(f"**{key}:** {'_unknown_' if value is None else value}")

    if extra:
        builder.raw(extra)

    return builder.build()


def error_response(message: str, details: str | None = None, help_items: list[str] | None = None) -> dict:
    """Build error response in markdown."""
    builder = markdown().element("alert", message=message, level="error")
    if details:
        builder.text(details)
    if help_items:
        builder.text("**How to fix:**")
        builder.list(help_items)
    return builder.build()
