"""Per-connection console session bridging a transport, the hub and the supervisor."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum

from craftconsole.console.heartbeat import SessionHeartbeat
from craftconsole.console.hub import BroadcastHub, DeliveryChannel
from craftconsole.console.transport import ConsoleTransport, MessageKind, TransportClosed
from craftconsole.contracts import COMMAND_ACK, WELCOME_BANNER
from craftconsole.process.errors import ConsoleError
from craftconsole.process.supervisor import ProcessSupervisor

logger = logging.getLogger("craftconsole.console.session")


class SessionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"


class ClientSession:
    """Stream hub output to one client and relay its commands to the server."""

    def __init__(
        self,
        hub: BroadcastHub,
        supervisor: ProcessSupervisor,
        transport: ConsoleTransport,
        *,
        heartbeat: SessionHeartbeat | None = None,
    ) -> None:
        self.hub = hub
        self.supervisor = supervisor
        self.transport = transport
        self.heartbeat = heartbeat or SessionHeartbeat()
        self.state = SessionState.CONNECTING
        self.client_id: int | None = None
        self.close_reason: str | None = None
        self._channel: DeliveryChannel | None = None
        self._command_tasks: set[asyncio.Task] = set()

    async def run(self) -> str:
        """Serve the connection until it closes or times out.

        Returns the reason the session ended.
        """
        self.client_id, self._channel = self.hub.register()
        self.state = SessionState.ACTIVE
        self.heartbeat.record_liveness()
        tasks: dict[asyncio.Task, str] = {}
        try:
            await self.transport.send_text(
                WELCOME_BANNER.format(client_id=self.client_id, timestamp=int(time.time()))
            )
            tasks = {
                asyncio.create_task(self._receive_loop()): "closed by client",
                asyncio.create_task(self.heartbeat.run_forever(self.transport.ping)): "heartbeat timeout",
                asyncio.create_task(self._forward_loop(self._channel)): "delivery ended",
            }
            done, _ = await asyncio.wait(list(tasks), return_when=asyncio.FIRST_COMPLETED)
            finished = next(iter(done))
            self.close_reason = tasks[finished]
            if not finished.cancelled() and finished.exception() is not None:
                exc = finished.exception()
                if not isinstance(exc, TransportClosed):
                    logger.error("Client #%s session task failed: %s", self.client_id, exc)
                self.close_reason = "transport error"
        except TransportClosed:
            self.close_reason = "transport error"
        finally:
            await self._teardown(list(tasks))
        return self.close_reason or "closed"

    async def _receive_loop(self) -> None:
        while True:
            message = await self.transport.receive()
            if message.kind == MessageKind.CLOSE:
                return
            if message.kind == MessageKind.PING:
                self.heartbeat.record_liveness()
                await self.transport.pong(_as_bytes(message.data))
            elif message.kind == MessageKind.PONG:
                self.heartbeat.record_liveness()
            elif message.kind == MessageKind.TEXT:
                await self._handle_command(str(message.data))
            elif message.kind == MessageKind.BINARY:
                await self.transport.send_bytes(_as_bytes(message.data))

    async def _handle_command(self, text: str) -> None:
        if text.strip():
            logger.info("Client #%s: Command received: %s", self.client_id, text)
        await self.transport.send_text(COMMAND_ACK.format(command=text))
        task = asyncio.create_task(self._dispatch_command(text))
        self._command_tasks.add(task)
        task.add_done_callback(self._command_tasks.discard)

    async def _dispatch_command(self, text: str) -> None:
        try:
            await self.supervisor.send_command(text)
        except ConsoleError as exc:
            logger.warning("Client #%s: Error sending command: %s", self.client_id, exc)

    async def _forward_loop(self, channel: DeliveryChannel) -> None:
        async for line in channel:
            await self.transport.send_text(line)

    async def _teardown(self, tasks: list[asyncio.Task]) -> None:
        self.state = SessionState.CLOSING
        # Commands already acknowledged still reach the server.
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self.client_id is not None:
            self.hub.unregister(self.client_id)
        self._channel = None
        try:
            await self.transport.close()
        except (ConnectionError, RuntimeError) as exc:
            logger.debug("Client #%s transport close failed: %s", self.client_id, exc)
        logger.info("Client #%s session closed (%s)", self.client_id, self.close_reason)


def _as_bytes(data: str | bytes) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return data
