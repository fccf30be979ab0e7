"""Watcher configuration — what to watch, how often, and what to report.

A ``WatchConfig`` can be built directly (the CLI does this from its
arguments) or loaded from a JSON file::

    {
        "pid": 1234,
        "interval": 0.5,
        "show_anonymous": false,
        "attributes": ["end", "size", "rss", "pss"],
        "proc_root": "/proc",
        "max_samples": 100
    }

Keyword overrides passed to ``load_config`` win over the file, so a
command line can point at a shared config and still pick the pid.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mapwatcher.diff import DEFAULT_ATTRIBUTES, RECORD_FIELDS

DEFAULT_PROC_ROOT = Path("/proc")


class ConfigError(Exception):
    """Raise when a watcher configuration is invalid or unreadable."""


@dataclass(frozen=True)
class WatchConfig:
    """Settings for one watching session.

    Validated on construction, so an existing ``WatchConfig`` is always
    usable.
    """

    pid: int
    interval: float = 1.0
    show_anonymous: bool = False
    attributes: tuple[str, ...] = DEFAULT_ATTRIBUTES
    proc_root: Path = DEFAULT_PROC_ROOT
    max_samples: int | None = None

    def __post_init__(self) -> None:
        """Validate the settings.

        Raises:
            ConfigError: If any value is out of range.

        """
        if self.pid <= 0:
            msg = f"pid must be positive, got {self.pid}"
            raise ConfigError(msg)
        if not math.isfinite(self.interval) or self.interval <= 0:
            msg = f"interval must be positive and finite, got {self.interval}"
            raise ConfigError(msg)
        if not self.attributes:
            msg = "at least one attribute must be compared"
            raise ConfigError(msg)
        unknown = [name for name in self.attributes if name not in RECORD_FIELDS]
        if unknown:
            msg = f"Unknown mapping attributes: {', '.join(unknown)}"
            raise ConfigError(msg)
        if self.max_samples is not None and self.max_samples < 0:
            msg = f"max_samples must not be negative, got {self.max_samples}"
            raise ConfigError(msg)


def config_from_dict(data: dict[str, Any]) -> WatchConfig:
    """Build a WatchConfig from plain JSON-style values.

    Raises:
        ConfigError: If a key is missing or has the wrong type.

    """
    if "pid" not in data:
        msg = "Missing 'pid' in configuration"
        raise ConfigError(msg)
    try:
        return WatchConfig(
            pid=int(data["pid"]),
            interval=float(data.get("interval", 1.0)),
            show_anonymous=bool(data.get("show_anonymous", False)),
            attributes=tuple(data.get("attributes", DEFAULT_ATTRIBUTES)),
            proc_root=Path(data.get("proc_root", DEFAULT_PROC_ROOT)),
            max_samples=None if data.get("max_samples") is None else int(data["max_samples"]),
        )
    except (TypeError, ValueError) as e:
        msg = f"Invalid configuration value: {e}"
        raise ConfigError(msg) from e


def load_config(path: Path, **overrides: Any) -> WatchConfig:
    """Load a WatchConfig from a JSON file.

    Args:
        path: JSON file holding a single object.
        **overrides: Values that replace the file's (None is ignored).

    Raises:
        ConfigError: If the file cannot be read, is not a JSON object,
            or holds invalid settings.

    """
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        msg = f"Cannot load config {path}: {e}"
        raise ConfigError(msg) from e
    if not isinstance(data, dict):
        msg = f"Config {path} must hold a JSON object"
        raise ConfigError(msg)
    data.update({k: v for k, v in overrides.items() if v is not None})
    return config_from_dict(data)
