"""Reload controller: the event loop tying watcher, builder and supervisor together.

Flow per event:
1. Apply the WatchSet change (register new directories, drop removed ones)
2. Build the application
3. If the build passed: kill the running instance and start the new one
4. If the build failed: log it and keep the running instance untouched
"""

import asyncio
import logging
import os
from enum import Enum

from hotloader.build.runner import BuildRunner
from hotloader.config import HotLoaderConfig
from hotloader.errors import PathError, SpawnError
from hotloader.supervisor import ProcessSupervisor
from hotloader.watch.events import ChangeEvent, ChangeKind, start_event
from hotloader.watch.registrar import add_recursive
from hotloader.watch.watcher import DirectoryWatcher

logger = logging.getLogger(__name__)


class ControllerState(str, Enum):
    """What the controller is doing right now."""

    IDLE = "idle"
    BUILDING = "building"
    RELOADING = "reloading"


class ReloadController:
    """Consumes change events one at a time and rebuilds/reloads on each.

    Events are never processed concurrently. Unless a debounce window is
    configured, every rebuild-triggering event causes its own build, even
    when several arrive during a single build.
    """

    def __init__(
        self,
        config: HotLoaderConfig,
        watcher: DirectoryWatcher,
        builder: BuildRunner,
        supervisor: ProcessSupervisor,
    ):
        self.config = config
        self.watcher = watcher
        self.builder = builder
        self.supervisor = supervisor
        self.state = ControllerState.IDLE
        self._output_path = os.path.abspath(config.output)

    def classify(self, event: ChangeEvent) -> bool:
        """Apply the WatchSet action for an event.

        Returns:
            True if the event should trigger a rebuild.
        """
        if str(event.path) == self._output_path:
            logger.debug(f"Ignoring change to build output: {event}")
            return False

        if event.kind == ChangeKind.CREATED:
            if event.is_directory or event.path.is_dir():
                try:
                    add_recursive(self.watcher, event.path)
                except PathError as e:
                    # Created and removed again before we got to it
                    logger.debug(f"Not watching new directory: {e}")
        elif event.kind in (ChangeKind.REMOVED, ChangeKind.RENAMED):
            self.watcher.remove(event.path)

        return True

    async def rebuild(self) -> bool:
        """Build, then restart the application if the build passed.

        Returns:
            True if a new instance was started.
        """
        source, output = self.config.source, self.config.output
        try:
            self.state = ControllerState.BUILDING
            logger.warning(f"Building {source}")
            outcome = await self.builder.build(source, output)
            if not outcome.success:
                logger.error(f"BUILD FAILED; {outcome.to_error()}")
                return False
            logger.info(f"Build finished in {outcome.duration_seconds:.1f}s")

            self.state = ControllerState.RELOADING
            logger.warning(f"Reloading {output}")
            try:
                await self.supervisor.reload(output)
            except SpawnError as e:
                logger.error(f"RELOAD FAILED; {e}")
                return False
            return True
        finally:
            self.state = ControllerState.IDLE

    async def handle_event(self, event: ChangeEvent) -> None:
        """Process one change event to completion."""
        logger.debug(f"Change event: {event}")
        if not self.classify(event):
            return
        if self.config.debounce > 0:
            await self._absorb_burst()
        await self.rebuild()

    async def _absorb_burst(self) -> None:
        """Fold events arriving within the debounce window into one build."""
        folded = 0
        while True:
            try:
                event = await asyncio.wait_for(
                    self.watcher.events.get(), timeout=self.config.debounce
                )
            except TimeoutError:
                break
            self.classify(event)
            folded += 1
        if folded:
            logger.debug(f"Debounced {folded} additional change events")

    def handle_error(self, error: Exception) -> None:
        """Watcher errors are logged and otherwise ignored."""
        logger.warning(f"Watcher error: {type(error).__name__}: {error}")

    async def run(self, stop: asyncio.Event) -> None:
        """Process watcher events and errors until ``stop`` is set.

        Pushes the synthetic start event first so the application is built
        and started before any real change happens. Cancelling this
        coroutine also cancels an in-flight build.
        """
        self.watcher.push_event(start_event())

        next_event = asyncio.ensure_future(self.watcher.events.get())
        next_error = asyncio.ensure_future(self.watcher.errors.get())
        stopped = asyncio.ensure_future(stop.wait())
        try:
            while True:
                done, _ = await asyncio.wait(
                    {next_event, next_error, stopped},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if stopped in done:
                    break
                if next_error in done:
                    self.handle_error(next_error.result())
                    next_error = asyncio.ensure_future(self.watcher.errors.get())
                if next_event in done:
                    await self.handle_event(next_event.result())
                    next_event = asyncio.ensure_future(self.watcher.events.get())
        finally:
            for task in (next_event, next_error, stopped):
                task.cancel()
            logger.debug("Reload controller stopped")
