"""Supervision of the single running instance of the built executable."""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import BinaryIO

from hotloader.errors import SpawnError
from hotloader.streams import pump, stderr_sink, stdout_sink

logger = logging.getLogger(__name__)


@dataclass
class SupervisedProcess:
    """A running instance and the tasks copying its output."""

    process: asyncio.subprocess.Process
    exec_path: Path
    output_tasks: list[asyncio.Task] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.returncode is None


class ProcessSupervisor:
    """Starts, kills and restarts the built executable.

    At most one instance is supervised at a time. All calls are expected to
    come from the same event loop task, so no locking is done.
    """

    def __init__(self, stdout: BinaryIO | None = None, stderr: BinaryIO | None = None):
        """Initialize the supervisor.

        Args:
            stdout: Where child stdout is forwarded. Defaults to sys.stdout.
            stderr: Where child stderr is forwarded. Defaults to sys.stderr.
        """
        self._stdout = stdout
        self._stderr = stderr
        self._current: SupervisedProcess | None = None

    @property
    def current(self) -> SupervisedProcess | None:
        """The supervised instance, if one was started."""
        return self._current

    async def run(self, exec_path: str | Path) -> SupervisedProcess:
        """Start ``exec_path`` with no arguments and forward its output.

        Raises:
            SpawnError: If the executable cannot be started.
        """
        exec_path = Path(exec_path)
        try:
            process = await asyncio.create_subprocess_exec(
                str(exec_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SpawnError(exec_path, e.strerror or str(e)) from e

        supervised = SupervisedProcess(process=process, exec_path=exec_path)
        supervised.output_tasks = [
            asyncio.create_task(
                pump(process.stdout, self._stdout or stdout_sink()),
                name=f"stdout-{process.pid}",
            ),
            asyncio.create_task(
                pump(process.stderr, self._stderr or stderr_sink()),
                name=f"stderr-{process.pid}",
            ),
        ]
        self._current = supervised
        logger.info(f"Started {exec_path} (pid {process.pid})")
        return supervised

    def kill(self) -> None:
        """Forcefully kill the current instance, if any. Best effort."""
        supervised = self._current
        if supervised is None:
            return
        self._current = None

        logger.info(f"reload; killing pid: {supervised.pid}")
        with contextlib.suppress(ProcessLookupError):
            supervised.process.kill()

    async def reload(self, exec_path: str | Path) -> SupervisedProcess:
        """Kill the current instance and start a new one.

        The old instance's output tasks are left to drain on their own.

        Raises:
            SpawnError: If the new executable cannot be started. The old
                instance has already been killed at that point.
        """
        self.kill()
        return await self.run(exec_path)

    async def shutdown(self) -> None:
        """Kill the current instance and wait for it and its output tasks."""
        supervised = self._current
        self.kill()
        if supervised is None:
            return

        await supervised.process.wait()
        for task in supervised.output_tasks:
            task.cancel()
        for task in supervised.output_tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.debug(f"Supervised process {supervised.pid} stopped")
