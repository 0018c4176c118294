"""Tests for recursive directory registration."""

import os
from pathlib import Path

import pytest

from hotloader.errors import PathError, WatchError
from hotloader.watch.registrar import add_recursive
from hotloader.watch.watcher import DirectoryWatcher


class RecordingWatcher:
    """Stands in for DirectoryWatcher, failing on selected paths."""

    def __init__(self, fail_on: set[Path] | None = None):
        self.fail_on = fail_on or set()
        self.added: list[Path] = []

    def add(self, path):
        path = Path(path)
        if path in self.fail_on:
            raise WatchError(path, "inotify watch limit reached")
        self.added.append(path)


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    """A small source tree with files and nested packages."""
    root = tmp_path / "src"
    (root / "pkg1" / "inner").mkdir(parents=True)
    (root / "pkg2").mkdir()
    (root / "main.go").write_text("package main")
    (root / "pkg1" / "a.go").write_text("package pkg1")
    (root / "pkg1" / "inner" / "b.go").write_text("package inner")
    return root


class TestAddRecursive:
    """Tests for add_recursive."""

    def test_registers_every_directory(self, tree: Path):
        """Root and all subdirectories are registered, root first."""
        watcher = RecordingWatcher()

        added = add_recursive(watcher, tree)

        assert added[0] == tree
        assert set(added) == {tree, tree / "pkg1", tree / "pkg1" / "inner", tree / "pkg2"}
        assert watcher.added == added

    def test_never_registers_files(self, tree: Path):
        """Files are skipped."""
        watcher = RecordingWatcher()

        add_recursive(watcher, tree)

        assert all(p.is_dir() for p in watcher.added)

    def test_missing_root_raises(self, tmp_path: Path):
        """An inaccessible root is a PathError."""
        with pytest.raises(PathError, match="no such file"):
            add_recursive(RecordingWatcher(), tmp_path / "missing")

    def test_file_root_raises(self, tree: Path):
        """A root that is a file is a PathError."""
        with pytest.raises(PathError, match="not a directory"):
            add_recursive(RecordingWatcher(), tree / "main.go")

    def test_root_watch_failure_raises(self, tree: Path):
        """If the root itself cannot be watched the call fails."""
        watcher = RecordingWatcher(fail_on={tree})

        with pytest.raises(PathError, match="watch limit"):
            add_recursive(watcher, tree)

    def test_failed_subtree_is_skipped(self, tree: Path):
        """A subtree that cannot be watched is skipped, the rest continues."""
        watcher = RecordingWatcher(fail_on={tree / "pkg1"})

        added = add_recursive(watcher, tree)

        assert set(added) == {tree, tree / "pkg2"}
        # Not descended into
        assert tree / "pkg1" / "inner" not in watcher.added

    def test_unreadable_subtree_is_skipped(self, tree: Path, monkeypatch):
        """Listing errors below the root are logged and skipped."""
        real_walk = os.walk

        def walk(top, onerror=None, **kwargs):
            for dirpath, dirnames, filenames in real_walk(top, onerror=onerror, **kwargs):
                if Path(dirpath) == tree / "pkg1":
                    onerror(PermissionError(13, "Permission denied", dirpath))
                    dirnames[:] = []
                    continue
                yield dirpath, dirnames, filenames

        monkeypatch.setattr("hotloader.watch.registrar.os.walk", walk)

        added = add_recursive(RecordingWatcher(), tree)

        assert tree / "pkg2" in added
        assert tree / "pkg1" / "inner" not in added

    def test_relative_root_made_absolute(self, tree: Path, monkeypatch):
        """Registered paths are absolute."""
        monkeypatch.chdir(tree.parent)

        added = add_recursive(RecordingWatcher(), "src")

        assert added[0] == tree

    async def test_with_real_watcher(self, tree: Path):
        """Registration populates the WatchSet of a real watcher."""
        watcher = DirectoryWatcher()
        try:
            add_recursive(watcher, tree)

            assert watcher.watched == {
                tree,
                tree / "pkg1",
                tree / "pkg1" / "inner",
                tree / "pkg2",
            }
        finally:
            watcher.close()
