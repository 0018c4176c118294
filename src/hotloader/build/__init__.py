"""Build toolchain invocation."""

from hotloader.build.runner import (
    DEFAULT_BUILD_COMMAND,
    DEFAULT_DEPS_COMMAND,
    BuildOutcome,
    BuildRunner,
    BuildStep,
)

__all__ = [
    "DEFAULT_BUILD_COMMAND",
    "DEFAULT_DEPS_COMMAND",
    "BuildOutcome",
    "BuildRunner",
    "BuildStep",
]
