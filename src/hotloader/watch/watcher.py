"""Directory watcher backed by watchdog.

The WatchSet is tracked per directory, but the OS watches behind it are
recursive: one watchdog schedule per top-level watched directory. On Linux
that is one inotify instance per root however large the tree is, and new
subdirectories are picked up by watchdog itself. Notifications for paths
whose directory has left the WatchSet are dropped.

Notifications are delivered on the watchdog observer thread and handed over
to the asyncio loop through two unbounded queues:
- ``events``: ChangeEvent instances
- ``errors``: exceptions raised while handling a notification, and a
  WatchError for any watch whose emitter thread died while its directory
  still exists
"""

import asyncio
import logging
import os
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch
from watchdog.observers.polling import PollingObserver

from hotloader.errors import WatchError
from hotloader.watch.events import ChangeEvent, from_watchdog

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_INTERVAL = 5.0


class _QueueingEventHandler(FileSystemEventHandler):
    """Forwards every watchdog notification to the owning watcher."""

    def __init__(self, watcher: "DirectoryWatcher"):
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._watcher._dispatch(event)


class DirectoryWatcher:
    """Registers directories for change notification and streams events.

    Must be created from inside a running event loop; the queues and the
    emitter health check are bound to that loop.

    Usage:
        watcher = DirectoryWatcher()
        watcher.add("/proj/src")
        event = await watcher.events.get()
        watcher.close()
    """

    def __init__(
        self,
        use_polling: bool = False,
        poll_interval: float = 1.0,
        observer: BaseObserver | None = None,
        health_interval: float = DEFAULT_HEALTH_INTERVAL,
    ):
        """Start the observer thread.

        Args:
            use_polling: Poll with stat() instead of OS notifications.
            poll_interval: Polling interval in seconds.
            observer: Pre-built observer, mostly for tests.
            health_interval: Seconds between checks for dead emitter threads.
        """
        self._loop = asyncio.get_running_loop()
        self.events: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self.errors: asyncio.Queue[Exception] = asyncio.Queue()

        if observer is None:
            if use_polling:
                observer = PollingObserver(timeout=poll_interval)
                logger.debug(f"Using polling observer (interval: {poll_interval}s)")
            else:
                observer = Observer()
                logger.debug("Using OS event observer")

        self._observer = observer
        self._handler = _QueueingEventHandler(self)
        # WatchSet; read from the observer thread when filtering
        self._watches: set[Path] = set()
        # Recursive schedules, keyed by the directory they are rooted at
        self._schedules: dict[Path, ObservedWatch] = {}
        self._reported_dead: set[Path] = set()
        self._closed = False

        # Started up front so schedule() fails synchronously on a bad path
        self._observer.start()
        self._health_task = self._loop.create_task(
            self._monitor_emitters(health_interval), name="watcher-health"
        )

    @staticmethod
    def _normalize(path: str | Path) -> Path:
        return Path(os.path.abspath(path))

    @property
    def watched(self) -> frozenset[Path]:
        """The current WatchSet."""
        return frozenset(self._watches)

    @property
    def roots(self) -> frozenset[Path]:
        """Directories with an OS watch of their own."""
        return frozenset(self._schedules)

    def is_watching(self, path: str | Path) -> bool:
        return self._normalize(path) in self._watches

    def _covering_root(self, path: Path) -> Path | None:
        for root in self._schedules:
            if path == root or path.is_relative_to(root):
                return root
        return None

    def add(self, path: str | Path) -> None:
        """Register a directory for change notification.

        A directory below an already scheduled root joins the WatchSet
        without a new OS watch.

        Args:
            path: Directory to watch.

        Raises:
            WatchError: If the path is missing, not a directory, or the OS
                refuses the watch (e.g. inotify instance limit reached).
        """
        path = self._normalize(path)
        if self._closed:
            raise WatchError(path, "watcher is closed")
        if path in self._watches:
            return
        if not path.exists():
            raise WatchError(path, "no such file or directory")
        if not path.is_dir():
            raise WatchError(path, "not a directory")

        if self._covering_root(path) is None:
            try:
                watch = self._observer.schedule(self._handler, str(path), recursive=True)
            except OSError as e:
                raise WatchError(path, e.strerror or str(e)) from e

            # Roots below the new one are now covered twice
            for nested in [r for r in self._schedules if r.is_relative_to(path)]:
                self._unschedule(nested)
            self._schedules[path] = watch
            logger.debug(f"Scheduled recursive watch: {path}")

        self._watches.add(path)
        logger.debug(f"Watching path: {path}")

    def remove(self, path: str | Path) -> None:
        """Unregister a directory and any watched directories below it.

        Removing a path that is not watched is not an error: deletions race
        with their own notifications.
        """
        path = self._normalize(path)
        doomed = [p for p in self._watches if p == path or p.is_relative_to(path)]
        if not doomed:
            logger.debug(f"Not watching {path}, nothing to remove")
            return

        for p in doomed:
            self._watches.discard(p)
            if p in self._schedules:
                self._unschedule(p)
            logger.debug(f"Stopped watching path: {p}")

    def _unschedule(self, root: Path) -> None:
        watch = self._schedules.pop(root)
        self._reported_dead.discard(root)
        try:
            self._observer.unschedule(watch)
        except (KeyError, OSError) as e:
            logger.debug(f"Unschedule of {root} failed: {type(e).__name__}: {e}")

    def push_event(self, event: ChangeEvent) -> None:
        """Inject a synthetic event into the event stream."""
        self.events.put_nowait(event)

    def check_emitters(self) -> list[WatchError]:
        """Report scheduled roots whose emitter thread is no longer running.

        A root that was deleted stops its own emitter; that is reported by
        the removal event instead. Each dead watch is reported once.

        Returns:
            The errors posted to the error stream by this call.
        """
        alive = {emitter.watch: emitter.is_alive() for emitter in self._observer.emitters}
        reported = []
        for root, watch in self._schedules.items():
            if alive.get(watch, False) or root in self._reported_dead or not root.is_dir():
                continue
            self._reported_dead.add(root)
            error = WatchError(root, "watch stopped; changes below it are not reported")
            self.errors.put_nowait(error)
            reported.append(error)
        return reported

    async def _monitor_emitters(self, interval: float) -> None:
        while not self._closed:
            await asyncio.sleep(interval)
            self.check_emitters()

    def close(self) -> None:
        """Stop the observer and release every OS watch. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._health_task.cancel()
        self._watches.clear()
        self._schedules.clear()

        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join(timeout=10)
        logger.debug("Closed directory watcher")

    def _in_watch_set(self, path: Path) -> bool:
        return path in self._watches or path.parent in self._watches

    def _dispatch(self, event: FileSystemEvent) -> None:
        """Runs on the observer thread."""
        try:
            changes = from_watchdog(event)
        except Exception as e:
            self._post(self.errors, e)
            return

        for change in changes:
            if self._in_watch_set(change.path):
                self._post(self.events, change)

    def _post(self, queue: asyncio.Queue, item: object) -> None:
        try:
            self._loop.call_soon_threadsafe(queue.put_nowait, item)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"Dropped {item!r}: event loop is closed")
