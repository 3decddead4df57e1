"""
Run one benchmark node: bootstrap through the rendezvous server, then drive
every file and run through the barrier-synchronized phases.
"""

import os
import sys
import logging
import argparse
from typing import List, Optional

import uvloop

# Ensure project root is in path (for running as script)
# When run as module (python -m cli.node), this is not needed
_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from configuration import (
    SYNC_SERVICE_URL,
    NODE_HOST,
    NODE_PORT,
    WORK_DIR,
    LATENCY_MS,
    BANDWIDTH_MB,
    FILE_SIZES,
    RANDOM_SEED,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PROMETHEUS_PORT,
)
from algorithms.run_controller import RunController
from common.context import NodeRole, TestParameters, initialize_context
from common.deadline import Deadline
from common.dialer import PeerListener
from common.files import load_test_files, generate_random_files
from common.storage_factory import create_transfer_provider
from persistence.metrics_aggregator import MetricsAggregator
from persistence.parquet import ParquetPersistence
from persistence.prom import SimplePrometheusExporter
from persistence.record import RunRecord
from sync.client import HTTPSyncClient

# Set up logging (only if not already configured)
if not logging.root.handlers:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
    )
logging.getLogger('aiohttp.access').setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


class NodeRunner:
    """Runs a single node of the fleet against a rendezvous server."""

    def __init__(
        self,
        role: NodeRole,
        instance_count: int,
        params: TestParameters,
        sync_url: str = SYNC_SERVICE_URL,
        storage_type: str = "local",
        store_dir: str = None,
        file_paths: Optional[List[str]] = None,
        file_sizes: Optional[List[int]] = None,
        seed: int = RANDOM_SEED,
        seq: Optional[int] = None,
        tpindex: Optional[int] = None,
        group_seq: int = 0,
        host: str = NODE_HOST,
        port: int = NODE_PORT,
        work_dir: str = WORK_DIR,
        output_dir: str = DEFAULT_OUTPUT_DIR,
        prometheus_port: int = DEFAULT_PROMETHEUS_PORT,
        latency_ms: int = LATENCY_MS,
        bandwidth_mb: int = BANDWIDTH_MB,
    ):
        self.role = role
        self.instance_count = instance_count
        self.params = params.validate()
        self.sync_url = sync_url
        self.storage_type = storage_type
        self.store_dir = store_dir
        self.file_paths = file_paths or []
        self.file_sizes = file_sizes or FILE_SIZES
        self.seed = seed
        self.seq = seq
        self.tpindex = tpindex
        self.group_seq = group_seq
        self.host = host
        self.port = port
        self.work_dir = work_dir
        self.output_dir = output_dir
        self.prometheus_port = prometheus_port
        self.latency_ms = latency_ms
        self.bandwidth_mb = bandwidth_mb

        logger.info(
            f"Initialized node runner: {role} in a fleet of {instance_count}, "
            f"{storage_type} transfer provider, sync service {sync_url}"
        )

    def _load_files(self):
        if self.file_paths:
            return load_test_files(self.file_paths)
        return generate_random_files(os.path.join(self.work_dir, "inputs"), self.file_sizes, self.seed)

    async def run_node(self) -> List[RunRecord]:
        """Bootstrap the node and run the benchmark to completion."""
        files = self._load_files()
        provider = create_transfer_provider(self.storage_type, store_dir=self.store_dir)
        persistence = ParquetPersistence(self.output_dir)

        exporter = None
        if self.prometheus_port:
            exporter = SimplePrometheusExporter(self.prometheus_port)
            exporter.start_server()
        aggregator = MetricsAggregator(persistence, exporter)

        listener = PeerListener(self.host, self.port)
        deadline = Deadline(self.params.timeout)
        seq = self.seq
        try:
            async with HTTPSyncClient(self.sync_url) as sync, provider:
                port = await listener.start()
                try:
                    ctx = await initialize_context(
                        sync, provider, self.role, self.instance_count,
                        deadline=deadline,
                        seq=self.seq, tpindex=self.tpindex, group_seq=self.group_seq,
                        latency_ms=self.latency_ms, bandwidth_mb=self.bandwidth_mb,
                        work_dir=self.work_dir, host=self.host, port=port,
                    )
                    seq = ctx.seq
                    controller = RunController(ctx, self.params, aggregator)
                    return await controller.run_benchmark(files, deadline)
                finally:
                    await listener.stop()
        finally:
            parquet_file = persistence.save_to_file(f"node-{seq or 'unknown'}")
            if parquet_file:
                logger.info(f"Run records saved to: {parquet_file}")


def add_node_arguments(parser: argparse.ArgumentParser) -> None:
    """Arguments of the ``node`` command."""
    defaults = TestParameters.from_configuration()
    parser.add_argument('--role', required=True, help='Node role: seed/producer, leech/consumer or passive')
    parser.add_argument('--instances', type=int, required=True, help='Number of nodes in the fleet')
    parser.add_argument('--seq', type=int, help='1-based node sequence (default: assigned by arrival)')
    parser.add_argument('--tpindex', type=int, help='0-based index within the role (default: assigned by arrival)')
    parser.add_argument('--group-seq', type=int, default=0, help='Sequence within the node group')
    parser.add_argument('--sync-url', default=SYNC_SERVICE_URL, help=f'Rendezvous server URL (default: {SYNC_SERVICE_URL})')
    parser.add_argument('--storage', choices=['local', 's3'], default='local', help='Transfer provider (default: local)')
    parser.add_argument('--store-dir', help='Content directory for the local provider')
    parser.add_argument('--files', nargs='*', help='Files or directories to transfer (default: generated payloads)')
    parser.add_argument('--sizes', type=int, nargs='*', help=f'Sizes of generated payloads in bytes (default: {FILE_SIZES})')
    parser.add_argument('--seed', type=int, default=RANDOM_SEED, help='Seed for generated payloads')
    parser.add_argument('--host', default=NODE_HOST, help='Address advertised to peers')
    parser.add_argument('--port', type=int, default=NODE_PORT, help='Peer listener port (0 = any)')
    parser.add_argument('--work-dir', default=WORK_DIR, help='Directory for inputs and downloads')
    parser.add_argument('--output-dir', default=DEFAULT_OUTPUT_DIR, help='Directory for Parquet results')
    parser.add_argument('--prometheus-port', type=int, default=DEFAULT_PROMETHEUS_PORT, help='Expose metrics on this port (0 = off)')
    parser.add_argument('--latency-ms', type=int, default=LATENCY_MS, help='Configured link latency, recorded with metrics')
    parser.add_argument('--bandwidth-mb', type=int, default=BANDWIDTH_MB, help='Configured link bandwidth, recorded with metrics')
    add_parameter_arguments(parser, defaults)


def add_parameter_arguments(parser: argparse.ArgumentParser, defaults: TestParameters) -> None:
    """Test parameter arguments shared by ``node`` and ``simulate``."""
    parser.add_argument('--run-count', type=int, default=defaults.run_count, help=f'Runs per file (default: {defaults.run_count})')
    parser.add_argument('--run-timeout', type=float, default=defaults.run_timeout, help=f'Per-run timeout in seconds (default: {defaults.run_timeout})')
    parser.add_argument('--timeout', type=float, default=defaults.timeout, help=f'Whole benchmark timeout in seconds (default: {defaults.timeout})')
    parser.add_argument('--waves', type=int, default=defaults.num_waves, help=f'Number of consumer waves (default: {defaults.num_waves})')
    parser.add_argument('--stagger', type=float, default=defaults.request_stagger, help='Per-sequence request stagger in seconds')
    parser.add_argument('--max-connection-rate', type=int, default=defaults.max_connection_rate, help='Percentage of peers to dial each run')
    parser.add_argument('--tcp', action='store_true', default=defaults.tcp_enabled, help='Run the raw TCP baseline before each file')
    parser.add_argument('--heartbeat', type=float, default=defaults.heartbeat_interval, help='Liveness log interval in seconds (0 = off)')


def parameters_from_args(args) -> TestParameters:
    return TestParameters(
        run_count=args.run_count,
        run_timeout=args.run_timeout,
        timeout=args.timeout,
        num_waves=args.waves,
        request_stagger=args.stagger,
        max_connection_rate=args.max_connection_rate,
        tcp_enabled=args.tcp,
        heartbeat_interval=args.heartbeat,
    ).validate()


def runner_from_args(args) -> NodeRunner:
    return NodeRunner(
        role=NodeRole.parse(args.role),
        instance_count=args.instances,
        params=parameters_from_args(args),
        sync_url=args.sync_url,
        storage_type=args.storage,
        store_dir=args.store_dir,
        file_paths=args.files,
        file_sizes=args.sizes,
        seed=args.seed,
        seq=args.seq,
        tpindex=args.tpindex,
        group_seq=args.group_seq,
        host=args.host,
        port=args.port,
        work_dir=args.work_dir,
        output_dir=args.output_dir,
        prometheus_port=args.prometheus_port,
        latency_ms=args.latency_ms,
        bandwidth_mb=args.bandwidth_mb,
    )


def main():
    """Main entry point for a benchmark node."""
    parser = argparse.ArgumentParser(description="Swarm benchmark node")
    add_node_arguments(parser)
    args = parser.parse_args()

    try:
        runner = runner_from_args(args)
        records = uvloop.run(runner.run_node())
        print(f"\nEmitted {len(records)} run records")
    except KeyboardInterrupt:
        logger.info("Node interrupted by user")
    except Exception as e:
        logger.error(f"Node failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
