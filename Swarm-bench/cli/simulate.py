"""
Run a whole fleet inside one process: every node gets its own controller,
provider and peer listener, and they synchronize through an in-memory
rendezvous service. Useful for smoke tests of providers and parameters.
"""

import asyncio
import os
import sys
import logging
import argparse
from typing import Callable, List, Optional, Sequence

import uvloop

_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from configuration import (
    STORE_DIR,
    WORK_DIR,
    FILE_SIZES,
    RANDOM_SEED,
    DEFAULT_OUTPUT_DIR,
    INTER_WAVE_PAUSE_SECONDS,
)
from algorithms.run_controller import RunController
from algorithms.wave_scheduler import WaveScheduler
from cli.node import add_parameter_arguments, parameters_from_args
from common.context import NodeRole, TestParameters, initialize_context
from common.deadline import Deadline
from common.dialer import PeerListener
from common.files import FileUnderTest, generate_random_files
from persistence.base import MetricsSink, SimpleMetricsCollector
from persistence.metrics_aggregator import MetricsAggregator
from persistence.parquet import ParquetPersistence
from persistence.record import RunRecord
from systems.base import TransferProvider
from systems.local import LocalTransferProvider
from sync.memory import InMemorySyncService

if not logging.root.handlers:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
    )
logger = logging.getLogger(__name__)


def fleet_roles(producers: int, consumers: int, passive: int = 0) -> List[NodeRole]:
    """Roles in seq order: producers first, then consumers, then passive nodes."""
    return [NodeRole.PRODUCER] * producers + [NodeRole.CONSUMER] * consumers + [NodeRole.PASSIVE] * passive


async def run_local_fleet(
    roles: Sequence[NodeRole],
    params: TestParameters,
    files: Sequence[FileUnderTest],
    provider_factory: Callable[[NodeRole], TransferProvider],
    work_dir: str,
    sink: Optional[MetricsSink] = None,
    inter_wave_pause: float = INTER_WAVE_PAUSE_SECONDS,
) -> List[RunRecord]:
    """Run every node of ``roles`` concurrently and return all emitted records.

    Raises:
        BenchmarkError: the first fatal error of any node, once all nodes stopped
    """
    params.validate()
    service = InMemorySyncService()
    sink = sink or SimpleMetricsCollector()
    counters = {role: 0 for role in NodeRole}
    assignments = []
    for seq, role in enumerate(roles, start=1):
        assignments.append((seq, role, counters[role]))
        counters[role] += 1

    async def run_node(seq: int, role: NodeRole, tpindex: int) -> List[RunRecord]:
        deadline = Deadline(params.timeout)
        sync = service.client()
        listener = PeerListener("127.0.0.1")
        port = await listener.start()
        try:
            async with provider_factory(role) as provider:
                ctx = await initialize_context(
                    sync, provider, role, len(roles), deadline,
                    seq=seq, tpindex=tpindex, work_dir=work_dir, host="127.0.0.1", port=port,
                )
                controller = RunController(
                    ctx, params, MetricsAggregator(sink),
                    scheduler=WaveScheduler(params, sync, inter_wave_pause=inter_wave_pause),
                )
                return await controller.run_benchmark(files, deadline)
        finally:
            await listener.stop()

    results = await asyncio.gather(
        *(run_node(seq, role, tpindex) for seq, role, tpindex in assignments),
        return_exceptions=True,
    )
    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        raise errors[0]
    records = [record for node_records in results for record in node_records]
    return sorted(records, key=lambda r: (r.file_index, r.run_number, r.seq))


def add_simulate_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--producers', type=int, default=1, help='Number of producer nodes (default: 1)')
    parser.add_argument('--consumers', type=int, default=2, help='Number of consumer nodes (default: 2)')
    parser.add_argument('--passive', type=int, default=0, help='Number of passive nodes (default: 0)')
    parser.add_argument('--sizes', type=int, nargs='*', default=FILE_SIZES, help='Sizes of generated payloads in bytes')
    parser.add_argument('--seed', type=int, default=RANDOM_SEED, help='Seed for generated payloads')
    parser.add_argument('--store-dir', default=STORE_DIR, help='Shared content directory')
    parser.add_argument('--work-dir', default=WORK_DIR, help='Directory for inputs and downloads')
    parser.add_argument('--output-dir', default=DEFAULT_OUTPUT_DIR, help='Directory for Parquet results')
    add_parameter_arguments(parser, TestParameters.from_configuration())


async def simulate_from_args(args) -> Optional[str]:
    params = parameters_from_args(args)
    files = generate_random_files(os.path.join(args.work_dir, "inputs"), args.sizes, args.seed)
    persistence = ParquetPersistence(args.output_dir)
    records = await run_local_fleet(
        fleet_roles(args.producers, args.consumers, args.passive),
        params,
        files,
        lambda role: LocalTransferProvider(args.store_dir),
        args.work_dir,
        sink=persistence,
    )
    logger.info(f"Fleet emitted {len(records)} run records")
    return persistence.save_to_file("simulation")


def main():
    """Main entry point for an in-process fleet simulation."""
    parser = argparse.ArgumentParser(description="Run a swarm benchmark fleet in one process")
    add_simulate_arguments(parser)
    args = parser.parse_args()
    try:
        parquet_file = uvloop.run(simulate_from_args(args))
        if parquet_file:
            print(f"Results saved to: {parquet_file}")
    except KeyboardInterrupt:
        logger.info("Simulation interrupted by user")
    except Exception as e:
        logger.error(f"Simulation failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
