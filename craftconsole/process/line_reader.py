"""Split a child process output stream into discrete log lines."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from craftconsole.process.models import LogLine, LogOrigin

logger = logging.getLogger("craftconsole.process.line_reader")


async def read_line(stream: asyncio.StreamReader) -> bytes:
    """Read one line of any length, including its terminator.

    Lines longer than the stream's buffer limit are collected in pieces.
    Returns ``b""`` at end-of-stream.
    """
    parts: list[bytes] = []
    while True:
        try:
            parts.append(await stream.readuntil(b"\n"))
            break
        except asyncio.IncompleteReadError as exc:
            parts.append(exc.partial)
            break
        except asyncio.LimitOverrunError as exc:
            parts.append(await stream.read(exc.consumed))
    return b"".join(parts)


async def iter_lines(stream: asyncio.StreamReader, encoding: str = "utf-8") -> AsyncIterator[str]:
    """Yield decoded lines until end-of-stream or a read error."""
    while True:
        try:
            raw = await read_line(stream)
        except OSError as exc:
            logger.debug("Stream read ended with error: %s", exc)
            return
        if not raw:
            return
        yield raw.decode(encoding, errors="replace").rstrip("\r\n")


async def pump_lines(
    stream: asyncio.StreamReader,
    origin: LogOrigin,
    outbound: asyncio.Queue[LogLine],
) -> int:
    """Push every line of ``stream`` onto ``outbound`` as it arrives."""
    count = 0
    async for text in iter_lines(stream):
        outbound.put_nowait(LogLine(text=text, origin=origin))
        count += 1
    logger.debug("%s reader finished after %d lines", origin.value, count)
    return count
