"""Fan captured server output out to every connected console client."""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections import deque

from craftconsole.process.errors import DeliveryFailure
from craftconsole.process.models import LogLine

logger = logging.getLogger("craftconsole.console.hub")


class DeliveryChannel:
    """Per-client FIFO between the hub and one session.

    Unbounded unless ``max_backlog`` is set, in which case the oldest queued
    message is dropped to make room. ``send`` and ``close`` may be called from
    any thread; ``receive`` runs on the event loop that created the channel.
    """

    def __init__(self, client_id: int, max_backlog: int | None = None) -> None:
        self.client_id = client_id
        self.max_backlog = max_backlog
        self.dropped = 0
        self._messages: deque[str] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self._lock = threading.Lock()
        self._loop = _running_loop()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def send(self, message: str) -> None:
        with self._lock:
            if self._closed:
                raise DeliveryFailure(self.client_id)
            if self.max_backlog is not None and len(self._messages) >= self.max_backlog:
                self._messages.popleft()
                self.dropped += 1
            self._messages.append(message)
        self._wake()

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self._wake()

    async def receive(self) -> str | None:
        """Next message, or None once the channel is closed."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        while True:
            with self._lock:
                if self._closed:
                    return None
                if self._messages:
                    return self._messages.popleft()
                self._ready.clear()
            await self._ready.wait()

    def _wake(self) -> None:
        loop = self._loop
        if loop is None or loop is _running_loop():
            self._ready.set()
        else:
            loop.call_soon_threadsafe(self._ready.set)

    def __aiter__(self) -> "DeliveryChannel":
        return self

    async def __anext__(self) -> str:
        message = await self.receive()
        if message is None:
            raise StopAsyncIteration
        return message


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class BroadcastHub:
    """Subscriber table plus the broadcast loop feeding it.

    The table lock is held only to add, remove or copy subscribers, so
    ``broadcast`` may run on a worker thread while sessions come and go.
    """

    def __init__(self, max_backlog: int | None = None) -> None:
        self.max_backlog = max_backlog
        self._subscribers: dict[int, DeliveryChannel] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def client_ids(self) -> list[int]:
        with self._lock:
            return sorted(self._subscribers)

    def register(self) -> tuple[int, DeliveryChannel]:
        with self._lock:
            client_id = next(self._ids)
            channel = DeliveryChannel(client_id, max_backlog=self.max_backlog)
            self._subscribers[client_id] = channel
            total = len(self._subscribers)
        logger.info("Client #%d connected. Total clients: %d", client_id, total)
        return client_id, channel

    def unregister(self, client_id: int) -> bool:
        with self._lock:
            channel = self._subscribers.pop(client_id, None)
            total = len(self._subscribers)
        if channel is None:
            return False
        channel.close()
        logger.info("Client #%d disconnected. Total clients: %d", client_id, total)
        return True

    def broadcast(self, message: str) -> int:
        """Deliver ``message`` to every subscriber; prune dead ones.

        Returns the number of successful deliveries.
        """
        with self._lock:
            recipients = list(self._subscribers.items())
        delivered = 0
        dead: list[int] = []
        for client_id, channel in recipients:
            try:
                channel.send(message)
            except DeliveryFailure:
                dead.append(client_id)
                continue
            delivered += 1
        for client_id in dead:
            logger.warning("Client #%d dropped after failed delivery", client_id)
            self.unregister(client_id)
        return delivered

    async def run_forever(self, outbound: asyncio.Queue[LogLine]) -> None:
        """Drain the supervisor's output queue until cancelled."""
        while True:
            line = await outbound.get()
            try:
                self.broadcast(line.render())
            finally:
                outbound.task_done()

    def close_all(self) -> None:
        for client_id in self.client_ids():
            self.unregister(client_id)
