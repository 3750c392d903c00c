"""Runtime configuration for shinemap."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger(__name__)


@dataclass
class ShineConfig:
    # Classification
    resting_threshold_ms: int = 10_000
    stationary_radius: float = 100.0  # metres
    speed_threshold: float = 0.5  # m/s, 0 disables the speed gate
    max_accuracy: float = 80.0  # metres, worse fixes are ignored
    metres_per_floor: float = 3.0

    # Energy per pulse
    path_intensity: int = 1
    resting_intensity: int = 5

    # Timers
    heartbeat_interval: float = 1.0  # seconds
    flush_interval_ms: int = 60_000

    # Remote store
    base_url: str = "http://localhost:3000"
    token: str | None = None
    request_timeout: float = 10.0
    flush_on_stop: bool = True

    # UI
    ui_enabled: bool = False
    ui_refresh: float = 1.0

    # Paths
    data_dir: Path = field(default_factory=lambda: Path.home() / ".shinemap")

    @property
    def flush_interval(self) -> float:
        """Flush period in seconds."""
        return self.flush_interval_ms / 1000.0


# Remote keys that map straight onto a config attribute.
_REMOTE_KEYS = {
    "restingThresholdMs": "resting_threshold_ms",
    "stationaryRadius": "stationary_radius",
    "speedThreshold": "speed_threshold",
    "flushInterval": "flush_interval_ms",
    "altitudeSensitivity": "metres_per_floor",
}

_REMOTE_PHYSICS_KEYS = {
    "baseWeightPassing": "path_intensity",
    "baseWeightResting": "resting_intensity",
}

_INT_FIELDS = {"resting_threshold_ms", "flush_interval_ms", "path_intensity", "resting_intensity"}
# Periods and thresholds; zero or less means "not set".
_POSITIVE_FIELDS = {"resting_threshold_ms", "flush_interval_ms"}


def load_config_file(path: Path) -> dict:
    """Load config overrides from a TOML file. Returns empty dict if not found."""
    if not path.exists():
        return {}
    import tomllib
    return tomllib.loads(path.read_text())


def apply_overrides(config: ShineConfig, overrides: dict) -> ShineConfig:
    """Apply dict overrides (from TOML or CLI) onto a config."""
    for key, value in overrides.items():
        if key in ("flush_interval", "heartbeat_interval") and isinstance(value, str):
            seconds = parse_interval(value)
            if key == "flush_interval":
                config.flush_interval_ms = int(seconds * 1000)
            else:
                config.heartbeat_interval = seconds
        elif key == "flush_interval":
            if isinstance(value, int | float):
                config.flush_interval_ms = int(value * 1000)
            else:
                log.warning("ignoring flush_interval=%r", value)
        elif key == "data_dir" and isinstance(value, str):
            config.data_dir = Path(value)
        elif hasattr(config, key):
            setattr(config, key, value)
    return config


def apply_remote(config: ShineConfig, payload: Mapping[str, object]) -> list[str]:
    """Apply a remote config document (camelCase keys) onto a config.

    Absent or non-numeric fields keep their current value. Returns the names of
    the attributes that changed.
    """
    updates: dict[str, object] = {}
    for remote_key, attr in _REMOTE_KEYS.items():
        if remote_key in payload:
            updates[attr] = payload[remote_key]
    physics = payload.get("physics")
    if isinstance(physics, Mapping):
        for remote_key, attr in _REMOTE_PHYSICS_KEYS.items():
            if remote_key in physics:
                updates[attr] = physics[remote_key]

    changed: list[str] = []
    for attr, value in updates.items():
        if isinstance(value, bool) or not isinstance(value, int | float):
            log.warning("ignoring remote config %s=%r", attr, value)
            continue
        if attr in _POSITIVE_FIELDS and value <= 0:
            log.warning("ignoring remote config %s=%r", attr, value)
            continue
        if attr in _INT_FIELDS:
            value = max(int(round(value)), 1)
        elif value < 0:
            log.warning("ignoring negative remote config %s=%r", attr, value)
            continue
        if getattr(config, attr) != value:
            setattr(config, attr, value)
            changed.append(attr)
    return changed


def parse_interval(s: str) -> float:
    """Parse interval string like '500ms', '30s', '10m' or '1h' into seconds."""
    s = s.lower().strip()
    if s.endswith("ms"):
        return float(s[:-2]) / 1000.0
    if s.endswith("m"):
        return float(s[:-1]) * 60
    if s.endswith("h"):
        return float(s[:-1]) * 3600
    if s.endswith("s"):
        return float(s[:-1])
    return float(s)
