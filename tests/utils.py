"""Shared async helpers for tests."""

import asyncio
from collections.abc import Callable
from pathlib import Path

from hotloader.watch.events import ChangeEvent, ChangeKind


async def wait_for_event(
    queue: asyncio.Queue[ChangeEvent],
    path: Path,
    kinds: set[ChangeKind],
    timeout: float = 5.0,
) -> ChangeEvent:
    """Drain ``queue`` until an event for ``path`` with one of ``kinds`` arrives."""

    async def drain() -> ChangeEvent:
        while True:
            event = await queue.get()
            if event.path == path and event.kind in kinds:
                return event

    return await asyncio.wait_for(drain(), timeout=timeout)


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll ``predicate`` until it holds or ``timeout`` expires."""

    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.02)

    await asyncio.wait_for(poll(), timeout=timeout)
