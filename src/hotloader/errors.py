"""Exception types for the hot-reload daemon.

Only startup failures are fatal. Everything raised after the first
build is caught by the reload controller and logged.
"""

from pathlib import Path


class HotLoaderError(Exception):
    """Base class for all hotloader errors."""


class ConfigError(HotLoaderError):
    """Raised when the daemon configuration is missing or malformed."""


class WatchError(HotLoaderError):
    """Raised when a path cannot be registered for change notification."""

    def __init__(self, path: str | Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot watch {path}: {reason}")


class PathError(HotLoaderError):
    """Raised when the root of a recursive walk is inaccessible."""

    def __init__(self, path: str | Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot walk {path}: {reason}")


class BuildError(HotLoaderError):
    """A build step exited non-zero or could not be started."""

    def __init__(self, step: str, stderr: str, returncode: int | None = None):
        self.step = step
        self.stderr = stderr
        self.returncode = returncode
        detail = stderr.strip() or "no error output"
        if returncode is None:
            super().__init__(f"{step} failed: {detail}")
        else:
            super().__init__(f"{step} failed (exit {returncode}): {detail}")


class SpawnError(HotLoaderError):
    """Raised when the built executable cannot be started."""

    def __init__(self, path: str | Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot start {path}: {reason}")
