"""
Barrier-synchronized run controller driving a node through every (file, run) pair.
"""

import logging
from typing import Awaitable, List, Optional, Sequence

from algorithms.roles import Role, create_role
from algorithms.wave_scheduler import WaveScheduler
from common.context import TestContext, TestParameters
from common.deadline import Deadline
from common.dialer import dial_peers
from common.errors import BaselineError, BenchmarkError, CleanupError, IngestError
from common.files import FileUnderTest
from common.heartbeat import StillAlive
from common.phase_manager import PhaseManager
from persistence.metrics_aggregator import MetricsAggregator
from persistence.record import RunRecord

logger = logging.getLogger(__name__)


class RunController:
    """Moves every node through identical, barrier-separated phases.

    Any barrier timeout, ingest, baseline, metrics or cleanup failure aborts
    the benchmark for this node by raising. Fetch failures are only counted.
    """

    def __init__(
        self,
        ctx: TestContext,
        params: TestParameters,
        aggregator: MetricsAggregator,
        role: Optional[Role] = None,
        scheduler: Optional[WaveScheduler] = None,
        phase_manager: Optional[PhaseManager] = None,
        dial=dial_peers,
    ):
        self.ctx = ctx
        self.params = params.validate()
        self.aggregator = aggregator
        self.role = role or create_role(ctx)
        self.scheduler = scheduler or WaveScheduler(params, ctx.sync)
        self.phase_manager = phase_manager or PhaseManager()
        self.dial = dial

        logger.info(
            f"Initialized run controller: {ctx.role} node {ctx.seq} (tpindex {ctx.tpindex}), "
            f"{params.run_count} runs, {params.num_waves} waves, run timeout {params.run_timeout}s"
        )

    async def signal_and_wait_for_all(self, state: str, deadline: Deadline) -> None:
        """Signal ``state`` and block until every node of the fleet has signaled it."""
        self.phase_manager.begin_phase(state)
        await self.ctx.sync.signal_and_wait(state, self.ctx.instance_count, deadline.remaining())

    async def run_benchmark(self, files: Sequence[FileUnderTest],
                            deadline: Optional[Deadline] = None) -> List[RunRecord]:
        """Run every file ``run_count`` times.

        Args:
            files: Files in the order every node iterates them
            deadline: Benchmark-wide deadline, normally the one bootstrap ran under;
                a fresh ``Deadline(timeout)`` when omitted

        Returns:
            The records emitted by this node

        Raises:
            BenchmarkError: on any fatal error
        """
        if deadline is None:
            deadline = Deadline(self.params.timeout)
        heartbeat = StillAlive(self.ctx.seq, self.params.heartbeat_interval)
        heartbeat.start()
        records: List[RunRecord] = []
        try:
            for file in files:
                records.extend(await self._run_file(file, deadline))
        finally:
            self.phase_manager.end_phase()
            await heartbeat.stop()

        logger.info("Ending testcase")
        return records

    async def _run_file(self, file: FileUnderTest, deadline: Deadline) -> List[RunRecord]:
        idx = file.index

        # Wait for all nodes to be ready to start the file
        await self.signal_and_wait_for_all(f"start-file-{idx}", deadline)

        try:
            await self.role.ingest(file, deadline)
        except BenchmarkError:
            raise
        except Exception as e:
            raise IngestError(f"Ingest of file {idx} failed: {e}") from e

        logger.info("File ingest complete...")
        await self.signal_and_wait_for_all(f"ingest-complete-{idx}", deadline)
        await self.role.resolve_root(file, deadline)

        baseline_ns = 0
        if self.params.tcp_enabled:
            logger.info("Running TCP test...")
            baseline_ns = await self._run_baseline(file, deadline)

        logger.info("Starting transfer runs...")
        records = []
        for run in range(1, self.params.run_count + 1):
            records.append(await self._run_once(file, run, baseline_ns, deadline))

        await self._cleanup(self.role.cleanup_file(file), f"file {idx}")
        return records

    async def _run_baseline(self, file: FileUnderTest, deadline: Deadline) -> int:
        idx = file.index
        try:
            await self.role.start_baseline(file, deadline)
            await self.signal_and_wait_for_all(f"baseline-ready-{idx}", deadline)
            try:
                baseline_ns = await self.role.run_baseline(file, deadline)
            except BenchmarkError:
                raise
            except Exception as e:
                raise BaselineError(f"Baseline transfer of file {idx} failed: {e}") from e
            await self.signal_and_wait_for_all(f"baseline-complete-{idx}", deadline)
        finally:
            await self.role.stop_baseline()
        return baseline_ns

    async def _run_once(self, file: FileUnderTest, run: int, baseline_ns: int, deadline: Deadline) -> RunRecord:
        # Each run gets a fresh deadline, bounded by the benchmark's
        run_deadline = deadline.child(self.params.run_timeout)
        run_id = f"{file.index}-{run}"
        history_mark = len(self.phase_manager.history)

        await self.signal_and_wait_for_all(f"start-run-{run_id}", run_deadline)
        logger.info(f"Starting run {run} / {self.params.run_count} ({file.size} bytes)")

        try:
            dialed = await self.dial(
                self.ctx.provider, self.ctx.seq, self.ctx.peers, self.params.max_connection_rate
            )
            logger.info(f"{self.ctx.role} dialed {len(dialed)} other nodes")
        except Exception as e:
            logger.warning(f"Dialing peers failed for run {run_id}: {e}")

        await self.signal_and_wait_for_all(f"connect-complete-{run_id}", run_deadline)

        self.phase_manager.begin_phase(f"fetch-{run_id}")
        outcome = await self.role.fetch_phase(self.scheduler, file, run_id, run_deadline)

        # Wait for all consumers to have downloaded the data
        await self.signal_and_wait_for_all(f"transfer-complete-{run_id}", run_deadline)
        self.phase_manager.end_phase()

        record = self.aggregator.emit(
            run=run,
            seq=self.ctx.seq,
            group_seq=self.ctx.group_seq,
            latency_ms=self.ctx.latency_ms,
            bandwidth_mb=self.ctx.bandwidth_mb,
            file_size=file.size,
            role=self.ctx.role,
            role_index=self.ctx.tpindex,
            fetch_latency_ns=outcome.fetch_latency_ns if outcome else 0,
            baseline_latency_ns=baseline_ns,
            failure_count=outcome.failures if outcome else 0,
            max_connection_rate=self.params.max_connection_rate,
            run_id=run_id,
            file_index=file.index,
            wave=outcome.wave if outcome else None,
            bytes_transferred=outcome.bytes_transferred if outcome else 0,
        )
        logger.info("Finished emitting metrics. Starting to clean...")

        await self._cleanup(self.role.cleanup_run(file, run_id), f"run {run_id}")

        timings = ", ".join(
            f"{phase}={duration:.3f}s"
            for phase, duration in self.phase_manager.durations_since(history_mark).items()
        )
        logger.debug(f"Run {run_id} phase timings: {timings}")
        return record

    async def _cleanup(self, cleanup: Awaitable[None], scope: str) -> None:
        try:
            await cleanup
        except Exception as e:
            raise CleanupError(f"Cleanup after {scope} failed: {e}") from e
