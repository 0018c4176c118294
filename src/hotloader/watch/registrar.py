"""Recursive registration of directory trees with a DirectoryWatcher."""

import logging
import os
from pathlib import Path

from hotloader.errors import PathError, WatchError
from hotloader.watch.watcher import DirectoryWatcher

logger = logging.getLogger(__name__)


def add_recursive(watcher: DirectoryWatcher, root: str | Path) -> list[Path]:
    """Watch ``root`` and every directory below it.

    Files are never registered. A subtree that cannot be listed or watched
    is logged and skipped; the rest of the walk continues.

    Args:
        watcher: The watcher to register directories with.
        root: Top of the tree to walk.

    Returns:
        The directories registered by this call, root first.

    Raises:
        PathError: If ``root`` itself is missing, not a directory, or
            cannot be watched.
    """
    root = Path(os.path.abspath(root))
    if not root.exists():
        raise PathError(root, "no such file or directory")
    if not root.is_dir():
        raise PathError(root, "not a directory")

    try:
        watcher.add(root)
    except WatchError as e:
        raise PathError(root, e.reason) from e

    added = [root]

    def on_walk_error(err: OSError) -> None:
        logger.warning(f"Skipping {err.filename}: {err.strerror or err}")

    for dirpath, dirnames, _filenames in os.walk(root, onerror=on_walk_error):
        kept = []
        for name in dirnames:
            path = Path(dirpath) / name
            try:
                watcher.add(path)
            except WatchError as e:
                logger.warning(f"Cannot add path {path}; err: {e.reason}")
                continue
            added.append(path)
            kept.append(name)
        # Don't descend into directories we failed to watch
        dirnames[:] = kept

    logger.info(f"Watching {len(added)} directories under {root}")
    return added
