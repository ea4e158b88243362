"""Tests for splitting child output streams into log lines."""

from __future__ import annotations

import asyncio
import unittest

from craftconsole.process.line_reader import iter_lines, pump_lines
from craftconsole.process.models import LogLine, LogOrigin


def _stream(*chunks: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    for chunk in chunks:
        reader.feed_data(chunk)
    reader.feed_eof()
    return reader


class LineReaderTests(unittest.IsolatedAsyncioTestCase):
    """Validate line splitting, decoding and silent termination."""

    async def test_splits_lines_and_drops_terminators(self) -> None:
        stream = _stream(b"alpha\nbeta\r\n", b"gam", b"ma\n")
        lines = [line async for line in iter_lines(stream)]
        self.assertEqual(lines, ["alpha", "beta", "gamma"])

    async def test_emits_final_unterminated_line(self) -> None:
        stream = _stream(b"Done (3.2s)!\n", b"partial")
        lines = [line async for line in iter_lines(stream)]
        self.assertEqual(lines, ["Done (3.2s)!", "partial"])

    async def test_invalid_utf8_is_replaced(self) -> None:
        stream = _stream(b"\xffok\n")
        lines = [line async for line in iter_lines(stream)]
        self.assertEqual(lines, ["�ok"])

    async def test_read_error_ends_iteration_silently(self) -> None:
        stream = asyncio.StreamReader()
        stream.feed_data(b"first\n")
        stream.set_exception(OSError("pipe broke"))
        lines = [line async for line in iter_lines(stream)]
        self.assertEqual(lines, [])

    async def test_line_longer_than_buffer_limit_is_kept(self) -> None:
        stream = asyncio.StreamReader(limit=16)
        stream.feed_data(b"a" * 64 + b"\nafter\n")
        stream.feed_eof()
        lines = [line async for line in iter_lines(stream)]
        self.assertEqual(lines, ["a" * 64, "after"])

    async def test_long_line_arriving_in_chunks_is_kept(self) -> None:
        stream = asyncio.StreamReader(limit=16)

        async def feed() -> None:
            for _ in range(4):
                stream.feed_data(b"b" * 20)
                await asyncio.sleep(0)
            stream.feed_data(b"\nDone\n")
            stream.feed_eof()

        feeder = asyncio.create_task(feed())
        lines = [line async for line in iter_lines(stream)]
        await feeder
        self.assertEqual(lines, ["b" * 80, "Done"])

    async def test_pump_lines_tags_origin(self) -> None:
        outbound: asyncio.Queue[LogLine] = asyncio.Queue()
        count = await pump_lines(_stream(b"oops\nagain\n"), LogOrigin.STDERR, outbound)
        self.assertEqual(count, 2)
        first = outbound.get_nowait()
        self.assertEqual(first, LogLine("oops", LogOrigin.STDERR))
        self.assertEqual(first.render(), "ERROR: oops")
        self.assertEqual(outbound.get_nowait().text, "again")


if __name__ == "__main__":
    unittest.main()
