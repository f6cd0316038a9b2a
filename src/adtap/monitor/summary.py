"""Cumulative record of everything observed for one monitored load.

PUBLIC API:
  - Summary: Mutable per-load record, every field optional until observed
  - PHASES: Load phases in attribution order
"""

from dataclasses import asdict, dataclass, fields

PHASES = ("initial", "subload", "user")


@dataclass
class Summary:
    """Per-load observations.

    A field left at None has not been measured yet. Consumers must read that
    as "unknown", never as zero.
    """

    # Timing
    content_ready_ms: float | None = None
    first_render_ms: float | None = None
    frames: int | None = None
    long_tasks_ms: float | None = None
    cpu_score: float | None = None

    # Counters
    console_errors: int | None = None
    console_warnings: int | None = None
    dialogs: int | None = None
    storage_writes: int | None = None
    cookie_writes: int | None = None
    errors: int | None = None
    document_writes: int | None = None
    network_calls: int | None = None
    runtime_iframes: int | None = None

    # Reference rewriting diagnostics
    rewrites: int | None = None
    img_rewrites: int | None = None
    media_rewrites: int | None = None
    script_rewrites: int | None = None
    link_rewrites: int | None = None
    set_attr_rewrites: int | None = None
    style_url_rewrites: int | None = None
    style_attr_rewrites: int | None = None

    # Capability flags
    known_library: bool | None = None
    exit_shim_installed: bool | None = None
    click_url: str | None = None

    # Geometry
    border_sides: int | None = None
    border_css_rules: int | None = None

    # Temporal
    anim_max_duration_s: float | None = None
    anim_max_loops: int | None = None
    anim_infinite: bool | None = None

    # Network, partitioned by load phase
    initial_requests: int | None = None
    initial_bytes: int | None = None
    subload_requests: int | None = None
    subload_bytes: int | None = None
    user_requests: int | None = None
    user_bytes: int | None = None
    total_requests: int | None = None
    total_bytes: int | None = None

    def bump(self, name: str, amount: int | float = 1) -> None:
        """Add to a counter, treating an unmeasured counter as zero."""
        setattr(self, name, (getattr(self, name) or 0) + amount)

    def raise_to(self, name: str, value: int | float) -> bool:
        """Raise a maximum. Returns True if the stored value changed."""
        current = getattr(self, name)
        if current is None or value > current:
            setattr(self, name, value)
            return True
        return False

    def set_once(self, name: str, value) -> bool:
        """Set a field only if it has not been measured yet."""
        if getattr(self, name) is None:
            setattr(self, name, value)
            return True
        return False

    def phase(self, phase: str) -> tuple[int | None, int | None]:
        """Get (requests, bytes) for a phase or 'total'."""
        return getattr(self, f"{phase}_requests"), getattr(self, f"{phase}_bytes")

    def snapshot(self) -> dict:
        """Serializable copy holding only measured fields."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_snapshot(cls, data: dict) -> "Summary":
        """Rebuild from a snapshot, ignoring fields this version does not know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
