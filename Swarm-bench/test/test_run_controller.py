"""
End-to-end tests of the barrier-synchronized run sequence with in-process fleets.
"""

import asyncio
import os
import sys
import tempfile
import unittest

# Add the parent directory to Python path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from algorithms.roles import ConsumerRole, Role, create_role, root_cid_topic
from algorithms.run_controller import RunController
from cli.simulate import fleet_roles, run_local_fleet
from common.context import NodeRole, PeerInfo, TestContext, TestParameters
from common.deadline import Deadline
from common.errors import BarrierTimeoutError, CleanupError, IngestError, TransferError
from common.files import generate_random_files
from persistence.base import SimpleMetricsCollector
from persistence.metrics_aggregator import MetricsAggregator
from sync.memory import InMemorySyncService
from systems.local import LocalTransferProvider


class UnreachableContentProvider(LocalTransferProvider):
    """Publishes normally but never delivers content."""

    async def fetch(self, content_id):
        raise TransferError(f"{content_id} not reachable")


class BrokenPublishProvider(LocalTransferProvider):

    async def publish(self, path):
        raise TransferError("store is read-only")


def params(**overrides):
    values = dict(run_count=1, run_timeout=10, timeout=30, num_waves=1,
                  request_stagger=0, max_connection_rate=100, tcp_enabled=False,
                  heartbeat_interval=0)
    values.update(overrides)
    return TestParameters(**values).validate()


class FleetTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = os.path.join(self.tmp.name, "store")
        self.work_dir = os.path.join(self.tmp.name, "work")

    def tearDown(self):
        self.tmp.cleanup()

    def files(self, *sizes):
        return generate_random_files(os.path.join(self.tmp.name, "inputs"), sizes, seed=5)

    def local(self, role):
        return LocalTransferProvider(self.store)


class TestFleet(FleetTestCase):
    """Whole fleets running through every phase."""

    async def test_every_node_emits_one_record_per_run(self):
        files = self.files(1024, 64 * 1024)
        records = await run_local_fleet(
            fleet_roles(producers=1, consumers=2, passive=1),
            params(run_count=2, num_waves=2),
            files, self.local, self.work_dir, inter_wave_pause=0,
        )

        self.assertEqual(len(records), 4 * len(files) * 2)
        consumers = [r for r in records if r.role == NodeRole.CONSUMER.value]
        self.assertEqual(len(consumers), 2 * len(files) * 2)
        for record in consumers:
            self.assertGreater(record.fetch_latency_ns, 0)
            self.assertEqual(record.failure_count, 0)
            self.assertEqual(record.bytes_transferred, record.file_size)
            self.assertEqual(record.wave, record.role_index % 2)
        for record in records:
            if record.role != NodeRole.CONSUMER.value:
                self.assertEqual(record.fetch_latency_ns, 0)
                self.assertEqual(record.failure_count, 0)
                self.assertIsNone(record.wave)

        run_ids = sorted({r.run_id for r in records})
        self.assertEqual(run_ids, ["0-1", "0-2", "1-1", "1-2"])

    async def test_downloads_and_published_content_are_cleaned_up(self):
        await run_local_fleet(
            fleet_roles(producers=1, consumers=2), params(), self.files(2048),
            self.local, self.work_dir, inter_wave_pause=0,
        )
        self.assertEqual([n for n in os.listdir(self.store) if not n.startswith('.')], [])
        for node in os.listdir(self.work_dir):
            self.assertEqual(os.listdir(os.path.join(self.work_dir, node)), [])

    async def test_failed_fetches_are_counted_not_fatal(self):
        def provider(role):
            if role == NodeRole.CONSUMER:
                return UnreachableContentProvider(self.store)
            return LocalTransferProvider(self.store)

        records = await run_local_fleet(
            fleet_roles(producers=1, consumers=3), params(run_count=2, num_waves=2),
            self.files(1024), provider, self.work_dir, inter_wave_pause=0,
        )

        consumers = [r for r in records if r.role == NodeRole.CONSUMER.value]
        self.assertEqual(len(consumers), 6)
        for record in consumers:
            self.assertEqual(record.failure_count, 1)
            self.assertEqual(record.fetch_latency_ns, 0)

    async def test_empty_waves_still_synchronize(self):
        records = await run_local_fleet(
            fleet_roles(producers=1, consumers=1), params(num_waves=3),
            self.files(1024), self.local, self.work_dir, inter_wave_pause=0,
        )
        consumer = [r for r in records if r.role == NodeRole.CONSUMER.value][0]
        self.assertEqual(consumer.wave, 0)
        self.assertGreater(consumer.fetch_latency_ns, 0)

    async def test_tcp_baseline_recorded_for_consumers(self):
        records = await run_local_fleet(
            fleet_roles(producers=2, consumers=2), params(tcp_enabled=True, run_count=2),
            self.files(32 * 1024), self.local, self.work_dir, inter_wave_pause=0,
        )
        for record in records:
            if record.role == NodeRole.CONSUMER.value:
                self.assertGreater(record.baseline_latency_ns, 0)
            else:
                self.assertEqual(record.baseline_latency_ns, 0)
        # The baseline runs once per file, not once per run
        consumer_baselines = {r.seq: set() for r in records if r.role == NodeRole.CONSUMER.value}
        for r in records:
            if r.role == NodeRole.CONSUMER.value:
                consumer_baselines[r.seq].add(r.baseline_latency_ns)
        self.assertTrue(all(len(values) == 1 for values in consumer_baselines.values()))

    async def test_metrics_reach_shared_sink(self):
        sink = SimpleMetricsCollector()
        await run_local_fleet(
            fleet_roles(producers=1, consumers=2), params(), self.files(1024),
            self.local, self.work_dir, sink=sink, inter_wave_pause=0,
        )
        summary = sink.get_summary()
        self.assertEqual(summary['total_records'], 3)
        self.assertEqual(summary['successful_fetches'], 2)

    async def test_ingest_failure_is_fatal(self):
        def provider(role):
            if role == NodeRole.PRODUCER:
                return BrokenPublishProvider(self.store)
            return LocalTransferProvider(self.store)

        with self.assertRaises(IngestError):
            await run_local_fleet(
                fleet_roles(producers=1, consumers=1), params(timeout=1),
                self.files(1024), provider, self.work_dir, inter_wave_pause=0,
            )


class TestRunController(FleetTestCase):
    """A single controller against a fleet that never shows up."""

    def _context(self, role=NodeRole.PRODUCER, instance_count=2):
        service = InMemorySyncService()
        peers = [
            PeerInfo(seq=1, role=role, tpindex=0),
            PeerInfo(seq=2, role=NodeRole.CONSUMER, tpindex=0 if role != NodeRole.CONSUMER else 1),
        ]
        ctx = TestContext(
            role=role, seq=1, group_seq=0, tpindex=0, instance_count=instance_count,
            sync=service.client(), provider=LocalTransferProvider(self.store),
            peers=peers, work_dir=self.work_dir,
        )
        return ctx, service

    async def test_missing_node_times_out_first_barrier(self):
        ctx, service = self._context()
        controller = RunController(ctx, params(timeout=0.3), MetricsAggregator(SimpleMetricsCollector()))

        with self.assertRaises(BarrierTimeoutError) as cm:
            await controller.run_benchmark(self.files(1024))
        self.assertEqual(cm.exception.state, "start-file-0")
        self.assertEqual(service.count("start-file-0"), 1)
        self.assertEqual(controller.phase_manager.history[0][0], "start-file-0")

    async def test_caller_deadline_bounds_the_benchmark(self):
        ctx, _ = self._context()
        controller = RunController(ctx, params(timeout=30), MetricsAggregator(SimpleMetricsCollector()))
        loop = asyncio.get_running_loop()

        begin = loop.time()
        with self.assertRaises(BarrierTimeoutError) as cm:
            await controller.run_benchmark(self.files(1024), Deadline(0.3))
        self.assertEqual(cm.exception.state, "start-file-0")
        self.assertLess(loop.time() - begin, 2.0)

    async def test_peer_stalling_inside_a_run_times_out_at_run_timeout(self):
        service = InMemorySyncService()
        peers = [PeerInfo(seq=1, role=NodeRole.PASSIVE, tpindex=0),
                 PeerInfo(seq=2, role=NodeRole.PASSIVE, tpindex=1)]
        ctx = TestContext(
            role=NodeRole.PASSIVE, seq=1, group_seq=0, tpindex=0, instance_count=2,
            sync=service.client(), provider=LocalTransferProvider(self.store),
            peers=peers, work_dir=self.work_dir,
        )
        aggregator = MetricsAggregator(SimpleMetricsCollector())
        controller = RunController(ctx, params(run_timeout=0.3, timeout=30), aggregator)

        async def stalled_peer():
            sync = service.client()
            for state in ("start-file-0", "ingest-complete-0", "start-run-0-1"):
                await sync.signal_and_wait(state, 2, 5)
            # Never reaches connect-complete-0-1
            await asyncio.sleep(30)

        peer = asyncio.ensure_future(stalled_peer())
        loop = asyncio.get_running_loop()
        begin = loop.time()
        try:
            with self.assertRaises(BarrierTimeoutError) as cm:
                await controller.run_benchmark(self.files(10))
        finally:
            peer.cancel()
        elapsed = loop.time() - begin

        self.assertEqual(cm.exception.state, "connect-complete-0-1")
        self.assertEqual(cm.exception.count, 1)
        self.assertGreaterEqual(elapsed, 0.25)
        self.assertLess(elapsed, 5.0)
        self.assertEqual(aggregator.records, [])

    async def test_single_node_fleet_runs_alone(self):
        ctx, _ = self._context(role=NodeRole.PASSIVE, instance_count=1)
        ctx.peers = [ctx.self_info]
        aggregator = MetricsAggregator(SimpleMetricsCollector())
        controller = RunController(ctx, params(run_count=3), aggregator)

        records = await controller.run_benchmark(self.files(10))

        self.assertEqual([r.run_number for r in records], [1, 2, 3])
        self.assertIsInstance(controller.role, Role)
        phases = [name for name, _ in controller.phase_manager.history]
        self.assertEqual(phases[:4], ["start-file-0", "ingest-complete-0", "start-run-0-1", "connect-complete-0-1"])

    async def test_cleanup_failure_is_fatal(self):
        ctx, _ = self._context(role=NodeRole.PASSIVE, instance_count=1)
        ctx.peers = [ctx.self_info]

        class BrokenCleanup(Role):
            async def cleanup_run(self, file, run_id):
                raise OSError("busy")

        controller = RunController(ctx, params(), MetricsAggregator(SimpleMetricsCollector()),
                                   role=BrokenCleanup(ctx))
        with self.assertRaises(CleanupError):
            await controller.run_benchmark(self.files(10))

    async def test_dial_errors_are_not_fatal(self):
        ctx, _ = self._context(role=NodeRole.PASSIVE, instance_count=1)
        ctx.peers = [ctx.self_info]

        async def failing_dial(*args):
            raise OSError("no route to host")

        controller = RunController(ctx, params(), MetricsAggregator(SimpleMetricsCollector()),
                                   dial=failing_dial)
        records = await controller.run_benchmark(self.files(10))
        self.assertEqual(len(records), 1)


class TestRoles(FleetTestCase):

    def _consumer(self, producers):
        service = InMemorySyncService()
        peers = [PeerInfo(seq=i + 1, role=NodeRole.PRODUCER, tpindex=i) for i in range(producers)]
        peers.append(PeerInfo(seq=producers + 1, role=NodeRole.CONSUMER, tpindex=0))
        ctx = TestContext(
            role=NodeRole.CONSUMER, seq=producers + 1, group_seq=0, tpindex=0,
            instance_count=len(peers), sync=service.client(),
            provider=LocalTransferProvider(self.store), peers=peers, work_dir=self.work_dir,
        )
        return create_role(ctx), service

    async def test_create_role(self):
        role, _ = self._consumer(1)
        self.assertIsInstance(role, ConsumerRole)

    async def test_conflicting_root_ids_rejected(self):
        role, service = self._consumer(2)
        await service.publish(root_cid_topic(0), {"seq": 1, "cid": "sha256-aa"})
        await service.publish(root_cid_topic(0), {"seq": 2, "cid": "sha256-bb"})
        with self.assertRaises(IngestError):
            await role.resolve_root(self.files(10)[0], Deadline(1))

    async def test_no_producer_rejected(self):
        role, _ = self._consumer(0)
        with self.assertRaises(IngestError):
            await role.resolve_root(self.files(10)[0], Deadline(1))


if __name__ == '__main__':
    unittest.main()
