"""Tests for output forwarding."""

import asyncio
import io

from hotloader.streams import binary_sink, pump


async def test_pump_copies_until_eof(sink: io.BytesIO):
    reader = asyncio.StreamReader()
    reader.feed_data(b"partial line")
    reader.feed_data(b" and more\nnext")
    reader.feed_eof()

    copied = await pump(reader, sink)

    assert sink.getvalue() == b"partial line and more\nnext"
    assert copied == len(sink.getvalue())


async def test_pump_small_chunks(sink: io.BytesIO):
    reader = asyncio.StreamReader()
    reader.feed_data(b"x" * 10)
    reader.feed_eof()

    assert await pump(reader, sink, chunk_size=3) == 10
    assert sink.getvalue() == b"x" * 10


async def test_pump_empty_stream(sink: io.BytesIO):
    reader = asyncio.StreamReader()
    reader.feed_eof()

    assert await pump(reader, sink) == 0


def test_binary_sink():
    raw = io.BytesIO()

    assert binary_sink(raw) is raw
    assert binary_sink(io.TextIOWrapper(raw)) is raw
