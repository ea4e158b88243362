"""Streaming transport events and the aiohttp WebSocket adapter."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from aiohttp import WSMsgType, web


class MessageKind(str, Enum):
    TEXT = "text"
    BINARY = "binary"
    PING = "ping"
    PONG = "pong"
    CLOSE = "close"


@dataclass(frozen=True)
class TransportMessage:
    kind: MessageKind
    data: str | bytes = b""


class TransportClosed(ConnectionError):
    """Raised when writing to a transport that has gone away."""


class ConsoleTransport(Protocol):
    async def receive(self) -> TransportMessage: ...

    async def send_text(self, text: str) -> None: ...

    async def send_bytes(self, data: bytes) -> None: ...

    async def ping(self, data: bytes = b"") -> None: ...

    async def pong(self, data: bytes = b"") -> None: ...

    async def close(self) -> None: ...


_KIND_BY_TYPE = {
    WSMsgType.TEXT: MessageKind.TEXT,
    WSMsgType.BINARY: MessageKind.BINARY,
    WSMsgType.PING: MessageKind.PING,
    WSMsgType.PONG: MessageKind.PONG,
}


class AiohttpTransport:
    """Adapt an aiohttp ``WebSocketResponse`` opened with ``autoping=False``."""

    def __init__(self, ws: web.WebSocketResponse) -> None:
        self.ws = ws

    async def receive(self) -> TransportMessage:
        msg = await self.ws.receive()
        kind = _KIND_BY_TYPE.get(msg.type)
        if kind is None:
            return TransportMessage(MessageKind.CLOSE)
        data = msg.data if msg.data is not None else b""
        return TransportMessage(kind, data)

    async def send_text(self, text: str) -> None:
        try:
            await self.ws.send_str(text)
        except (ConnectionResetError, RuntimeError) as exc:
            raise TransportClosed(str(exc)) from exc

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self.ws.send_bytes(data)
        except (ConnectionResetError, RuntimeError) as exc:
            raise TransportClosed(str(exc)) from exc

    async def ping(self, data: bytes = b"") -> None:
        try:
            await self.ws.ping(data)
        except (ConnectionResetError, RuntimeError) as exc:
            raise TransportClosed(str(exc)) from exc

    async def pong(self, data: bytes = b"") -> None:
        try:
            await self.ws.pong(data)
        except (ConnectionResetError, RuntimeError) as exc:
            raise TransportClosed(str(exc)) from exc

    async def close(self) -> None:
        if not self.ws.closed:
            await self.ws.close()
