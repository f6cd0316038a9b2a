"""Monitor configuration for adtap.

Every heuristic threshold and timing constant lives here so it can be tuned
from an adtap.toml file instead of being baked into the detectors.

PUBLIC API:
  - MonitorConfig: Tunable heuristics and timing constants
  - load_config: Build MonitorConfig from the nearest adtap.toml
"""

import logging
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class MonitorConfig:
    """Tunable parameters for one monitored load.

    Attributes:
        interaction_window_ms: Lifetime of a user-interaction window after a gesture.
        interaction_ring_size: Number of recent interaction windows retained.
        interaction_grace_ms: Extra time a window survives past its end before pruning.
        border_min_px: Thinnest edge bar counted as a border.
        border_max_px: Thickest edge bar counted as a border.
        edge_tolerance_px: Allowed distance between an element edge and the viewport edge.
        canvas_tolerance_px: Allowed gap between a stroked path and the drawing surface edge.
        border_scan_limit: Maximum elements inspected by the bounding-box border pass.
        animation_scan_limit: Maximum elements inspected per animation scan.
        scan_offsets_ms: Delays after injection at which border/animation scans run.
        snapshot_interval_ms: Delay between summary re-broadcasts.
        snapshot_count: Number of periodic summary broadcasts after injection.
        long_task_window_ms: Collection window for blocking-task accounting.
        slow_frame_ms: Frame delta above which a frame counts towards the CPU score.
        exit_probe_interval_ms: Polling interval while waiting for a late exit API.
        exit_probe_attempts: Polls before the fallback exit shim is installed.
        exit_shim_delay_ms: Delay before the fallback exit shim dispatches its lifecycle events.
        library_probe_interval_ms: Polling interval while waiting for animation libraries.
        library_probe_attempts: Polls before animation-library discovery gives up.
        infinite_loop_sentinel: Loop count reported for unbounded animations.
        revoke_on_teardown: Release local asset handles when a load is torn down.
    """

    interaction_window_ms: float = 2500
    interaction_ring_size: int = 20
    interaction_grace_ms: float = 250
    border_min_px: float = 1
    border_max_px: float = 16
    edge_tolerance_px: float = 1
    canvas_tolerance_px: float = 6
    border_scan_limit: int = 2000
    animation_scan_limit: int = 3000
    scan_offsets_ms: tuple[float, ...] = (600, 2000, 5000, 10000, 30000)
    snapshot_interval_ms: float = 500
    snapshot_count: int = 10
    long_task_window_ms: float = 3000
    slow_frame_ms: float = 50
    exit_probe_interval_ms: float = 200
    exit_probe_attempts: int = 20
    exit_shim_delay_ms: float = 1500
    library_probe_interval_ms: float = 100
    library_probe_attempts: int = 50
    infinite_loop_sentinel: int = 9999
    revoke_on_teardown: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "MonitorConfig":
        """Build config from a mapping, ignoring unknown keys."""
        known = {f.name: f for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown monitor setting: {key}")
                continue
            if key == "scan_offsets_ms":
                value = tuple(float(v) for v in value)
            values[key] = value
        return cls(**values)


def _find_config_file() -> Optional[Path]:
    """Find adtap.toml in current or parent directories."""
    current = Path.cwd()

    for parent in [current] + list(current.parents):
        config_file = parent / "adtap.toml"
        if config_file.exists():
            return config_file

    return None


def load_config(path: Optional[Path] = None) -> MonitorConfig:
    """Load monitor configuration.

    Args:
        path: Explicit config file. Defaults to the nearest adtap.toml.

    Returns:
        MonitorConfig with the [monitor] table applied over the defaults.
    """
    if path is None:
        path = _find_config_file()

    if path is None or not path.exists():
        return MonitorConfig()

    with open(path, "rb") as f:
        data = tomllib.load(f)

    logger.info(f"Loaded monitor config from {path}")
    return MonitorConfig.from_dict(data.get("monitor", {}))
