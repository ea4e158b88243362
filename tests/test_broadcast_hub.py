"""Tests for subscriber registration and best-effort fan-out."""

from __future__ import annotations

import asyncio
import unittest

from craftconsole.console.hub import BroadcastHub, DeliveryChannel
from craftconsole.process.errors import DeliveryFailure
from craftconsole.process.models import LogLine, LogOrigin


async def _drain(channel: DeliveryChannel) -> list[str]:
    return [await channel.receive() for _ in range(len(channel))]


class BroadcastHubTests(unittest.IsolatedAsyncioTestCase):
    """Validate the subscriber table and delivery semantics."""

    async def test_client_ids_are_monotonic_and_never_reused(self) -> None:
        hub = BroadcastHub()
        first, _ = hub.register()
        second, _ = hub.register()
        hub.unregister(second)
        third, _ = hub.register()
        self.assertEqual((first, second, third), (1, 2, 3))
        self.assertEqual(hub.client_ids(), [1, 3])

    async def test_broadcast_reaches_every_client_once_in_order(self) -> None:
        hub = BroadcastHub()
        channels = [hub.register()[1] for _ in range(4)]
        self.assertEqual(hub.broadcast("Server started"), 4)
        self.assertEqual(hub.broadcast("tick"), 4)
        for channel in channels:
            self.assertEqual(await _drain(channel), ["Server started", "tick"])

    async def test_closed_channel_is_pruned_without_affecting_others(self) -> None:
        hub = BroadcastHub()
        dead_id, dead = hub.register()
        live_id, live = hub.register()
        dead.close()
        delivered = hub.broadcast("Saving the game")
        self.assertEqual(delivered, 1)
        self.assertNotIn(dead_id, hub.client_ids())
        self.assertEqual(hub.client_ids(), [live_id])
        self.assertEqual(await live.receive(), "Saving the game")

    async def test_unregister_is_idempotent_and_closes_channel(self) -> None:
        hub = BroadcastHub()
        client_id, channel = hub.register()
        self.assertTrue(hub.unregister(client_id))
        self.assertFalse(hub.unregister(client_id))
        self.assertTrue(channel.closed)
        self.assertIsNone(await channel.receive())
        with self.assertRaises(DeliveryFailure):
            channel.send("late")

    async def test_receive_waits_for_next_message(self) -> None:
        channel = DeliveryChannel(7)
        waiter = asyncio.create_task(channel.receive())
        await asyncio.sleep(0)
        self.assertFalse(waiter.done())
        channel.send("joined the game")
        self.assertEqual(await asyncio.wait_for(waiter, 1.0), "joined the game")

    async def test_send_from_worker_thread_wakes_receiver(self) -> None:
        hub = BroadcastHub()
        _, channel = hub.register()
        waiter = asyncio.create_task(channel.receive())
        await asyncio.sleep(0)
        delivered = await asyncio.to_thread(hub.broadcast, "Preparing spawn area")
        self.assertEqual(delivered, 1)
        self.assertEqual(await asyncio.wait_for(waiter, 1.0), "Preparing spawn area")

    async def test_async_iteration_stops_on_close(self) -> None:
        channel = DeliveryChannel(1)
        channel.send("a")

        async def collect() -> list[str]:
            return [message async for message in channel]

        task = asyncio.create_task(collect())
        await asyncio.sleep(0.01)
        channel.close()
        self.assertEqual(await asyncio.wait_for(task, 1.0), ["a"])

    async def test_bounded_backlog_drops_oldest(self) -> None:
        hub = BroadcastHub(max_backlog=2)
        _, channel = hub.register()
        for line in ("one", "two", "three"):
            hub.broadcast(line)
        self.assertEqual(channel.dropped, 1)
        self.assertEqual(await _drain(channel), ["two", "three"])

    async def test_run_forever_renders_and_fans_out_queue(self) -> None:
        hub = BroadcastHub()
        _, first = hub.register()
        _, second = hub.register()
        outbound: asyncio.Queue[LogLine] = asyncio.Queue()
        task = asyncio.create_task(hub.run_forever(outbound))
        try:
            outbound.put_nowait(LogLine("Server started", LogOrigin.STDOUT))
            outbound.put_nowait(LogLine("Can't keep up!", LogOrigin.STDERR))
            await asyncio.wait_for(outbound.join(), 1.0)
        finally:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        expected = ["Server started", "ERROR: Can't keep up!"]
        self.assertEqual(await _drain(first), expected)
        self.assertEqual(await _drain(second), expected)

    async def test_close_all_empties_table(self) -> None:
        hub = BroadcastHub()
        channels = [hub.register()[1] for _ in range(3)]
        hub.close_all()
        self.assertEqual(hub.subscriber_count, 0)
        self.assertTrue(all(channel.closed for channel in channels))


if __name__ == "__main__":
    unittest.main()
