"""
arhost: live AR scene host for small Lua programs.

Programs run inside per-instance Lua runtimes, render a scene tree on every
simulation tick, and the resulting snapshots are streamed to connected
clients over a MessagePack WebSocket.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

__all__ = [
    "HostConfig",
    "StartupInstance",
]

LOG = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_CONFIG_PATH = PACKAGE_DIR / "configs" / "host.yaml"
DEFAULT_PROGRAMS_DIR = PACKAGE_DIR / "programs"
ENV_CONFIG_VAR = "ARHOST_CONFIG"

MIN_INTERVAL = 0.01


@dataclass
class StartupInstance:
    program: str
    tag: Optional[int] = None


def _interval(value: Any, default: float) -> float:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        LOG.warning("Invalid interval %r; using %.3fs", value, default)
        return default
    return max(MIN_INTERVAL, numeric)


def _resolve_dir(value: Any, base: Path) -> Path:
    path = Path(str(value)).expanduser()
    if not path.is_absolute():
        path = base / path
    return path.resolve()


@dataclass
class HostConfig:
    """Top level host configuration."""

    host: str = "127.0.0.1"
    port: int = 8080
    tick_interval: float = 0.1
    broadcast_interval: float = 0.1
    programs_dir: Path = DEFAULT_PROGRAMS_DIR
    library_dir: Optional[Path] = None
    startup: List[StartupInstance] = field(default_factory=list)
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.port = int(self.port)
        self.tick_interval = _interval(self.tick_interval, 0.1)
        self.broadcast_interval = _interval(self.broadcast_interval, 0.1)
        self.programs_dir = Path(self.programs_dir)
        if self.library_dir is None:
            self.library_dir = self.programs_dir / "lib"
        else:
            self.library_dir = Path(self.library_dir)
        self.log_level = str(self.log_level).upper()

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any], *, base_dir: Optional[Path] = None) -> "HostConfig":
        base = base_dir or Path.cwd()
        known = {item.name for item in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in payload.items():
            if key not in known:
                LOG.warning("Ignoring unknown config key %r", key)
                continue
            kwargs[key] = value

        for key in ("programs_dir", "library_dir"):
            if kwargs.get(key) is not None:
                kwargs[key] = _resolve_dir(kwargs[key], base)

        startup: List[StartupInstance] = []
        for entry in kwargs.pop("startup", None) or []:
            if isinstance(entry, str):
                startup.append(StartupInstance(program=entry))
            elif isinstance(entry, Mapping) and entry.get("program"):
                tag = entry.get("tag")
                startup.append(
                    StartupInstance(program=str(entry["program"]), tag=None if tag is None else int(tag))
                )
            else:
                LOG.warning("Ignoring malformed startup entry %r", entry)
        return cls(startup=startup, **kwargs)

    @classmethod
    def load(cls, path: Optional[str | Path] = None) -> "HostConfig":
        """
        Load configuration from YAML.

        Resolution order: explicit ``path``, ``$ARHOST_CONFIG``, the bundled
        ``configs/host.yaml``.  A missing file yields the defaults.
        """

        candidate = path or os.environ.get(ENV_CONFIG_VAR) or DEFAULT_CONFIG_PATH
        config_path = Path(candidate).expanduser()
        try:
            with config_path.open("r", encoding="utf-8") as handle:
                payload = yaml.safe_load(handle) or {}
        except FileNotFoundError:
            LOG.warning("Config file %s not found; using defaults", config_path)
            return cls()
        if not isinstance(payload, Mapping):
            raise ValueError(f"config file {config_path} must contain a mapping")
        return cls.from_mapping(payload, base_dir=config_path.resolve().parent)
