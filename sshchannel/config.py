"""TOML-based channel configuration.

Loads ~/.sshchannel/defaults.toml (global) and sshchannel.toml (project),
merges them, and resolves the ``[channel]``, ``[pty]`` and ``[logging]``
tables into ChannelOptions, PtyOptions and LogConfig.

Example sshchannel.toml:

    [channel]
    timeout = 30.0
    initial_window_size = 262144

    [pty]
    term = "xterm-256color"
    width = 120

    [logging]
    level = "DEBUG"
    file = "sshchannel.log"
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from sshchannel.core.exceptions import ConfigurationError
from sshchannel.logging import LogConfig

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".sshchannel" / "defaults.toml"
PROJECT_CONFIG_NAME = "sshchannel.toml"

DEFAULT_WINDOW_SIZE = 128 * 1024
DEFAULT_PACKET_SIZE = 32 * 1024


@dataclass(frozen=True, slots=True)
class ChannelOptions:
    """Options for opening a session channel.

    Attributes:
        timeout: Seconds to wait for the open to complete. None waits forever.
        initial_window_size: Bytes the remote may send before a window adjust.
        max_packet_size: Largest data packet the remote may send.
    """

    timeout: float | None = None
    initial_window_size: int = DEFAULT_WINDOW_SIZE
    max_packet_size: int = DEFAULT_PACKET_SIZE

    def __post_init__(self) -> None:
        if self.timeout is not None and (
            not isinstance(self.timeout, int | float) or self.timeout < 0
        ):
            raise ConfigurationError(f"timeout must be >= 0 or None, got {self.timeout!r}")
        for name in ("initial_window_size", "max_packet_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


def _default_term() -> str:
    return os.environ.get("TERM") or "vt100"


@dataclass(frozen=True, slots=True)
class PtyOptions:
    """Pseudo-terminal allocation request."""

    term: str = field(default_factory=_default_term)
    width: int = 80
    height: int = 24
    pixel_width: int = 0
    pixel_height: int = 0
    modes: Mapping[int, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("width", "height", "pixel_width", "pixel_height"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise ConfigurationError(f"{name} must be a non-negative integer, got {value!r}")

    @property
    def size(self) -> tuple[int, int, int, int]:
        return (self.width, self.height, self.pixel_width, self.pixel_height)


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("channel", {})
    merged.setdefault("pty", {})
    return merged


def _build[T](cls: type[T], table: str, raw: RawConfig) -> T:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"[{table}] must be a table, got {type(raw).__name__}")

    valid = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = set(raw) - valid
    if unknown:
        raise ConfigurationError(
            f"Unknown key(s) in [{table}]: {', '.join(sorted(unknown))}. "
            f"Valid: {', '.join(sorted(valid))}"
        )
    return cls(**raw)


def load_options(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> ChannelOptions:
    config = load_config(project_dir=project_dir, global_path=global_path)
    return _build(ChannelOptions, "channel", config["channel"])


def load_pty_options(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> PtyOptions:
    config = load_config(project_dir=project_dir, global_path=global_path)
    raw = dict(config["pty"])
    if "modes" in raw and isinstance(raw["modes"], dict):
        # TOML keys are strings; pty opcodes are integers.
        try:
            raw["modes"] = {int(k): int(v) for k, v in raw["modes"].items()}
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid pty mode in [pty.modes]: {e}") from e
    return _build(PtyOptions, "pty", raw)


def load_log_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> LogConfig | None:
    """Resolve the ``[logging]`` table; None when the table is absent.

    ``[logging]`` with ``enabled = false`` also yields None.
    """
    config = load_config(project_dir=project_dir, global_path=global_path)
    if "logging" not in config:
        return None
    raw = config["logging"]
    if isinstance(raw, dict):
        raw = dict(raw)
        if not raw.pop("enabled", True):
            return None
    return _build(LogConfig, "logging", raw)
