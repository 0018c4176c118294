"""Filesystem watching: OS notifications, change events, recursive registration."""

from hotloader.watch.events import ChangeEvent, ChangeKind, from_watchdog, start_event
from hotloader.watch.registrar import add_recursive
from hotloader.watch.watcher import DirectoryWatcher

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "DirectoryWatcher",
    "add_recursive",
    "from_watchdog",
    "start_event",
]
