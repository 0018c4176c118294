"""Daemon configuration.

Built once at startup from, in increasing precedence:
- dataclass defaults
- an optional TOML file
- command line flags
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import tomli

from hotloader.build.runner import DEFAULT_BUILD_COMMAND, DEFAULT_DEPS_COMMAND
from hotloader.errors import ConfigError

DEFAULT_OUTPUT = Path("/tmp/hl_build")
DEFAULT_GOPATH = "/go"

_NUMBER = (int, float)

# Expected TOML value types per field
_FIELD_TYPES: dict[str, type | tuple[type, ...]] = {
    "watch_paths": (list, str),
    "source": str,
    "output": (str, Path),
    "deps_command": list,
    "build_command": list,
    "build_timeout": _NUMBER,
    "debounce": _NUMBER,
    "gopath": bool,
    "use_polling": bool,
    "poll_interval": _NUMBER,
}


def split_paths(value: str) -> list[str]:
    """Split a comma separated list of paths, dropping empty entries."""
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass
class HotLoaderConfig:
    """Configuration shared by the watcher, build runner and supervisor."""

    watch_paths: list[str]
    source: str = ""
    output: Path = DEFAULT_OUTPUT
    deps_command: list[str] = field(default_factory=lambda: list(DEFAULT_DEPS_COMMAND))
    build_command: list[str] = field(default_factory=lambda: list(DEFAULT_BUILD_COMMAND))
    build_timeout: float | None = None
    debounce: float = 0.0
    gopath: bool = False
    use_polling: bool = False
    poll_interval: float = 1.0

    def __post_init__(self) -> None:
        if not self.watch_paths:
            raise ConfigError("at least one watch path is required")
        if not self.source:
            # Build the first watched directory unless told otherwise
            self.source = self.watch_paths[0]
        if not self.build_command:
            raise ConfigError("build_command must not be empty")
        self.output = Path(self.output)
        if self.build_timeout is not None and self.build_timeout <= 0:
            raise ConfigError("build_timeout must be positive")
        if self.debounce < 0:
            raise ConfigError("debounce must not be negative")
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval must be positive")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "HotLoaderConfig":
        """Build a config from a parsed TOML table or merged CLI options.

        Raises:
            ConfigError: On unknown keys or values of the wrong type.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")

        values: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            expected = _FIELD_TYPES[key]
            if isinstance(value, bool) and expected is _NUMBER:
                raise ConfigError(f"{key} must be a number, got {value!r}")
            if not isinstance(value, expected):
                raise ConfigError(f"{key} has invalid value {value!r}")
            if key in ("deps_command", "build_command") and not all(
                isinstance(arg, str) for arg in value
            ):
                raise ConfigError(f"{key} must be a list of strings")
            values[key] = value

        watch = values.get("watch_paths", [])
        if isinstance(watch, str):
            watch = split_paths(watch)
        values["watch_paths"] = [str(p) for p in watch]

        return cls(**values)

    def resolved_watch_paths(self, environ: Mapping[str, str] | None = None) -> list[Path]:
        """Absolute watch roots.

        With ``gopath`` set, each entry is taken relative to ``$GOPATH/src``
        (GOPATH defaults to /go).
        """
        environ = os.environ if environ is None else environ
        if self.gopath:
            base = Path(environ.get("GOPATH", DEFAULT_GOPATH)) / "src"
            return [base / p for p in self.watch_paths]
        return [Path(os.path.abspath(p)) for p in self.watch_paths]


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read a TOML config file.

    Keys may sit at the top level or under a ``[hotloader]`` table.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    path = Path(path)
    try:
        with path.open("rb") as f:
            data = tomli.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e.strerror or e}") from e
    except tomli.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {path}: {e}") from e

    table = data.get("hotloader", data)
    if not isinstance(table, dict):
        raise ConfigError(f"[hotloader] in {path} must be a table")
    return table
