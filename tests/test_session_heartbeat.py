"""Tests for the per-session liveness heartbeat."""

from __future__ import annotations

import asyncio
import unittest

from craftconsole.console.heartbeat import SessionHeartbeat


class _FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class SessionHeartbeatTests(unittest.IsolatedAsyncioTestCase):
    """Validate probe cadence and timeout detection."""

    def test_timeout_must_exceed_interval(self) -> None:
        with self.assertRaises(ValueError):
            SessionHeartbeat(interval_seconds=5, timeout_seconds=5)

    def test_expired_tracks_last_liveness(self) -> None:
        clock = _FakeClock()
        heartbeat = SessionHeartbeat(interval_seconds=5, timeout_seconds=10, clock=clock)
        clock.now += 10
        self.assertFalse(heartbeat.expired())
        clock.now += 0.5
        self.assertTrue(heartbeat.expired())
        heartbeat.record_liveness()
        self.assertFalse(heartbeat.expired())
        self.assertEqual(heartbeat.silence(), 0)

    async def test_silent_client_times_out(self) -> None:
        heartbeat = SessionHeartbeat(interval_seconds=0.01, timeout_seconds=0.03)
        probes = 0

        async def probe() -> None:
            nonlocal probes
            probes += 1

        silence = await asyncio.wait_for(heartbeat.run_forever(probe), 1.0)
        self.assertGreater(silence, 0.03)
        self.assertGreaterEqual(probes, 1)

    async def test_answered_probes_keep_session_alive(self) -> None:
        heartbeat = SessionHeartbeat(interval_seconds=0.02, timeout_seconds=0.2)

        async def probe() -> None:
            heartbeat.record_liveness()

        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(heartbeat.run_forever(probe), 0.3)


if __name__ == "__main__":
    unittest.main()
