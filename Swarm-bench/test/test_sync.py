"""Tests for the in-memory rendezvous service and the HTTP server/client pair."""

import asyncio
import os
import sys
import unittest

# Add the parent directory to Python path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.errors import BarrierError, BarrierTimeoutError
from sync.client import HTTPSyncClient
from sync.memory import InMemorySyncService
from sync.server import RendezvousServer


class TestInMemorySync(unittest.IsolatedAsyncioTestCase):
    """Counters, barriers and topics of the in-process service."""

    async def test_signal_returns_arrival_order(self):
        service = InMemorySyncService()
        client = service.client()
        self.assertEqual(await client.signal_entry("node-seq"), 1)
        self.assertEqual(await client.signal_entry("node-seq"), 2)
        self.assertEqual(service.count("node-seq"), 2)
        self.assertEqual(service.count("unknown"), 0)

    async def test_barrier_releases_all_waiters_together(self):
        service = InMemorySyncService()
        released = []

        async def node(seq):
            await service.client().signal_and_wait("start-file-0", 3, timeout=2)
            released.append(seq)

        first = asyncio.create_task(node(1))
        second = asyncio.create_task(node(2))
        await asyncio.sleep(0.05)
        self.assertEqual(released, [])

        await node(3)
        await asyncio.gather(first, second)
        self.assertEqual(sorted(released), [1, 2, 3])

    async def test_barrier_timeout_reports_count(self):
        service = InMemorySyncService()
        client = service.client()
        with self.assertRaises(BarrierTimeoutError) as cm:
            await client.signal_and_wait("ingest-complete-0", 2, timeout=0.1)
        self.assertEqual(cm.exception.state, "ingest-complete-0")
        self.assertEqual(cm.exception.target, 2)
        self.assertEqual(cm.exception.count, 1)
        self.assertIsInstance(cm.exception, BarrierError)

    async def test_topic_entries_are_ordered_and_copied(self):
        service = InMemorySyncService()
        client = service.client()
        payload = {"seq": 1, "cid": "sha256-aa"}
        await client.publish("root-cid-0", payload)
        payload["cid"] = "changed"
        await client.publish("root-cid-0", {"seq": 2, "cid": "sha256-bb"})

        entries = await client.subscribe("root-cid-0", 2, timeout=1)
        self.assertEqual([e["cid"] for e in entries], ["sha256-aa", "sha256-bb"])

    async def test_subscribe_waits_for_publisher(self):
        service = InMemorySyncService()
        waiter = asyncio.create_task(service.client().subscribe("peers", 1, timeout=2))
        await asyncio.sleep(0.05)
        self.assertFalse(waiter.done())
        await service.client().publish("peers", {"seq": 1})
        self.assertEqual(await waiter, [{"seq": 1}])

    async def test_subscribe_timeout(self):
        service = InMemorySyncService()
        with self.assertRaises(BarrierTimeoutError):
            await service.client().subscribe("peers", 2, timeout=0.1)


class TestHTTPSync(unittest.IsolatedAsyncioTestCase):
    """Round trips through a RendezvousServer bound to a free local port."""

    async def asyncSetUp(self):
        self.server = RendezvousServer("127.0.0.1", 0)
        await self.server.start()
        self.url = f"http://127.0.0.1:{self.server.port}"

    async def asyncTearDown(self):
        await self.server.stop()

    async def test_signal_and_barrier(self):
        async with HTTPSyncClient(self.url) as first, HTTPSyncClient(self.url) as second:
            results = await asyncio.gather(
                first.signal_and_wait("start-run-0-1", 2, timeout=5),
                second.signal_and_wait("start-run-0-1", 2, timeout=5),
            )
        self.assertEqual(sorted(results), [1, 2])
        self.assertEqual(self.server.service.count("start-run-0-1"), 2)

    async def test_publish_and_subscribe(self):
        async with HTTPSyncClient(self.url) as client:
            self.assertEqual(await client.publish("baseline-addr-0", {"seq": 1, "port": 9000}), 1)
            entries = await client.subscribe("baseline-addr-0", 1, timeout=5)
        self.assertEqual(entries, [{"seq": 1, "port": 9000}])

    async def test_long_wait_is_split_into_polls(self):
        async with HTTPSyncClient(self.url, long_poll_seconds=0.1) as client:
            await client.signal_entry("transfer-complete-0-1")
            with self.assertRaises(BarrierTimeoutError) as cm:
                await client.barrier("transfer-complete-0-1", 2, timeout=0.35)
        self.assertEqual(cm.exception.count, 1)

    async def test_health_reports_states(self):
        async with HTTPSyncClient(self.url) as client:
            await client.signal_entry("node-seq")
            status, body = await client._request('GET', f"{self.url}/health")
        self.assertEqual(status, 200)
        self.assertEqual(body["states"], {"node-seq": 1})

    async def test_unreachable_server_is_a_barrier_error(self):
        await self.server.stop()
        async with HTTPSyncClient(self.url) as client:
            with self.assertRaises(BarrierError):
                await client.signal_entry("node-seq")

    async def test_client_requires_context_manager(self):
        client = HTTPSyncClient(self.url)
        with self.assertRaises(RuntimeError):
            await client.signal_entry("node-seq")


if __name__ == '__main__':
    unittest.main()
