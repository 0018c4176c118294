"""Build runner for the watched application.

A build is two external commands run back to back:
- a dependency fetch (``go get`` by default)
- a compile step that writes the executable (``go build -o`` by default)

Standard output of both is streamed live; standard error is captured so it
can be reported when a step fails.
"""

import asyncio
import contextlib
import logging
import os
import signal
import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO

from hotloader.errors import BuildError
from hotloader.streams import pump, stdout_sink

logger = logging.getLogger(__name__)

DEFAULT_DEPS_COMMAND: tuple[str, ...] = ("go", "get", "{source}")
DEFAULT_BUILD_COMMAND: tuple[str, ...] = ("go", "build", "-o", "{output}", "{source}")


class BuildStep(str, Enum):
    """Steps of a build, in execution order."""

    FETCH = "fetch"
    COMPILE = "compile"


@dataclass
class BuildOutcome:
    """Result of one build attempt."""

    success: bool
    error: str = ""
    step: BuildStep | None = None
    returncode: int | None = None
    duration_seconds: float = 0.0

    def to_error(self) -> BuildError | None:
        """The failure as an exception, or None if the build succeeded."""
        if self.success:
            return None
        step = self.step.value if self.step else "build"
        return BuildError(step, self.error, self.returncode)


class BuildRunner:
    """Runs the fetch and compile commands for one source/output pair.

    Command templates may use ``{source}`` and ``{output}`` placeholders.
    An empty fetch command skips that step.
    """

    def __init__(
        self,
        deps_command: Sequence[str] = DEFAULT_DEPS_COMMAND,
        build_command: Sequence[str] = DEFAULT_BUILD_COMMAND,
        timeout: float | None = None,
        stdout: BinaryIO | None = None,
        cwd: Path | None = None,
    ):
        if not build_command:
            raise ValueError("build_command must not be empty")
        self.deps_command = list(deps_command)
        self.build_command = list(build_command)
        self.timeout = timeout
        self.cwd = cwd
        self._stdout = stdout

    @staticmethod
    def render(template: Sequence[str], source: str, output: str | Path) -> list[str]:
        """Fill the placeholders of a command template.

        Only the exact ``{source}`` and ``{output}`` tokens are replaced;
        other braces (``${HOME}``, awk programs) pass through untouched.
        """
        return [
            arg.replace("{source}", source).replace("{output}", str(output)) for arg in template
        ]

    def steps(self, source: str, output: str | Path) -> list[tuple[BuildStep, list[str]]]:
        """The commands a build would run, in order."""
        steps = []
        if self.deps_command:
            steps.append((BuildStep.FETCH, self.render(self.deps_command, source, output)))
        steps.append((BuildStep.COMPILE, self.render(self.build_command, source, output)))
        return steps

    async def build(self, source: str, output: str | Path) -> BuildOutcome:
        """Fetch dependencies, then compile ``source`` into ``output``.

        Stops at the first failing step; the compile step never runs after
        a failed fetch.

        Args:
            source: What to build, passed to the command templates.
            output: Where the executable is written.

        Returns:
            BuildOutcome with the captured stderr of the failing step.
        """
        started = time.monotonic()

        for step, cmd in self.steps(source, output):
            returncode, stderr = await self._invoke(step, cmd)
            if returncode != 0:
                return BuildOutcome(
                    success=False,
                    error=stderr,
                    step=step,
                    returncode=returncode,
                    duration_seconds=time.monotonic() - started,
                )

        return BuildOutcome(success=True, duration_seconds=time.monotonic() - started)

    async def _invoke(self, step: BuildStep, cmd: list[str]) -> tuple[int | None, str]:
        """Run one command to completion.

        Returns:
            Tuple of (exit code, captured stderr). The exit code is None if
            the command could not be started or timed out.
        """
        logger.debug(f"Running {step.value} step: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                # Own process group so a kill also reaches toolchain children
                start_new_session=True,
            )
        except OSError as e:
            return None, f"{cmd[0]}: {e.strerror or e}"

        sink = self._stdout or stdout_sink()

        async def communicate() -> bytes:
            _, err = await asyncio.gather(
                pump(process.stdout, sink),
                process.stderr.read(),
            )
            await process.wait()
            return err

        try:
            stderr = await asyncio.wait_for(communicate(), timeout=self.timeout)
        except TimeoutError:
            logger.error(f"{step.value} step timed out after {self.timeout} seconds")
            await self._kill(process)
            return None, f"{step.value} step timed out after {self.timeout} seconds"
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        return process.returncode, stderr.decode(errors="replace")

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        with contextlib.suppress(ProcessLookupError):
            os.killpg(process.pid, signal.SIGKILL)
        await process.wait()
