"""Copying child process output to the daemon's own streams."""

import asyncio
import sys
from typing import BinaryIO, TextIO

CHUNK_SIZE = 4096


def binary_sink(stream: TextIO | BinaryIO) -> BinaryIO:
    """Return the byte-level stream behind a text stream such as sys.stdout."""
    return getattr(stream, "buffer", stream)


def stdout_sink() -> BinaryIO:
    return binary_sink(sys.stdout)


def stderr_sink() -> BinaryIO:
    return binary_sink(sys.stderr)


async def pump(reader: asyncio.StreamReader, sink: BinaryIO, chunk_size: int = CHUNK_SIZE) -> int:
    """Copy ``reader`` into ``sink`` until EOF.

    Output is forwarded in chunks as it arrives rather than line by line,
    so partial lines and progress bars show up immediately.

    Returns:
        Number of bytes copied.
    """
    total = 0
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            break
        sink.write(chunk)
        sink.flush()
        total += len(chunk)
    return total
