"""Per-session liveness heartbeat for console connections."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from craftconsole.config import CLIENT_TIMEOUT_SECONDS, HEARTBEAT_INTERVAL_SECONDS

logger = logging.getLogger("craftconsole.console.heartbeat")


class SessionHeartbeat:
    """Probe a client periodically and report when it goes silent."""

    def __init__(
        self,
        *,
        interval_seconds: float = HEARTBEAT_INTERVAL_SECONDS,
        timeout_seconds: float = CLIENT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if timeout_seconds <= interval_seconds:
            raise ValueError("timeout_seconds must exceed interval_seconds")
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self.last_seen = clock()

    def record_liveness(self) -> None:
        self.last_seen = self.clock()

    def silence(self) -> float:
        return self.clock() - self.last_seen

    def expired(self) -> bool:
        return self.silence() > self.timeout_seconds

    async def run_forever(self, probe: Callable[[], Awaitable[None]]) -> float:
        """Send probes every interval until the client times out.

        Returns the observed silence when the timeout fired.
        """
        while True:
            await asyncio.sleep(self.interval_seconds)
            if self.expired():
                silence = self.silence()
                logger.info("Heartbeat timed out after %.1fs of silence", silence)
                return silence
            await probe()
