"""Pytest configuration and fixtures."""

import io
import stat
from collections.abc import Callable
from pathlib import Path

import pytest


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="run live tests that invoke the real Go toolchain",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "live: mark test as requiring the Go toolchain (deselect with '-m \"not live\"')",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is specified."""
    if config.getoption("--run-live"):
        return

    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
def make_script(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing an executable shell script into tmp_path."""

    def factory(body: str, name: str = "app.sh") -> Path:
        script = tmp_path / name
        script.write_text(f"#!/bin/sh\n{body}\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return factory


@pytest.fixture
def sink() -> io.BytesIO:
    return io.BytesIO()

