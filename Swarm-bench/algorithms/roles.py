"""
Role-specific behavior invoked by the run controller.

Every hook of the base Role is a no-op, so a role only implements the phases
it takes part in; all roles still meet on every barrier.
"""

import logging
import os
import shutil
from typing import Dict, Optional

from algorithms.baseline import BaselineServer, baseline_fetch
from algorithms.wave_scheduler import WaveOutcome, WaveScheduler
from common.context import NodeRole, TestContext
from common.deadline import Deadline
from common.errors import BaselineError, BenchmarkError, IngestError, TransferError
from common.files import FileUnderTest

logger = logging.getLogger(__name__)


def root_cid_topic(file_index: int) -> str:
    return f"root-cid-{file_index}"


def baseline_addr_topic(file_index: int) -> str:
    return f"baseline-addr-{file_index}"


class Role:
    """Role with no behavior; used as-is for passive nodes."""

    role = NodeRole.PASSIVE

    def __init__(self, ctx: TestContext):
        self.ctx = ctx

    async def ingest(self, file: FileUnderTest, deadline: Deadline) -> None:
        """Make the file available (producer) or prepare to fetch it (consumer)."""

    async def resolve_root(self, file: FileUnderTest, deadline: Deadline) -> None:
        """Learn the file's root content id once ingest is complete everywhere."""

    async def start_baseline(self, file: FileUnderTest, deadline: Deadline) -> None:
        """Prepare the raw-transport baseline before the ready barrier."""

    async def run_baseline(self, file: FileUnderTest, deadline: Deadline) -> int:
        """Run the raw-transport baseline; returns its latency in ns (0 if not measured)."""
        return 0

    async def stop_baseline(self) -> None:
        """Tear down whatever start_baseline set up."""

    async def fetch_phase(self, scheduler: WaveScheduler, file: FileUnderTest, run_id: str,
                          deadline: Deadline) -> Optional[WaveOutcome]:
        """Take part in the wave-scheduled fetch phase; None when the role does not fetch."""
        return None

    async def cleanup_run(self, file: FileUnderTest, run_id: str) -> None:
        """Drop run-scoped state."""

    async def cleanup_file(self, file: FileUnderTest) -> None:
        """Drop file-scoped state."""


class ProducerRole(Role):
    """Publishes every file and keeps it reachable for the whole run sequence."""

    role = NodeRole.PRODUCER

    def __init__(self, ctx: TestContext):
        super().__init__(ctx)
        self.root_cids: Dict[int, str] = {}
        self.baseline_server: Optional[BaselineServer] = None

    async def ingest(self, file: FileUnderTest, deadline: Deadline) -> None:
        try:
            content_id = await deadline.run(self.ctx.provider.publish(file.path))
        except TransferError as e:
            raise IngestError(f"Failed to publish file {file.index} ({file.path}): {e}") from e
        self.root_cids[file.index] = content_id
        await self.ctx.sync.publish(root_cid_topic(file.index), {"seq": self.ctx.seq, "cid": content_id})
        logger.info(f"Published file {file.index} ({file.size} bytes) as {content_id}")

    async def start_baseline(self, file: FileUnderTest, deadline: Deadline) -> None:
        content_id = self.root_cids.get(file.index)
        if content_id is None:
            raise BaselineError(f"File {file.index} was not ingested")
        self.baseline_server = BaselineServer(self.ctx.host or "127.0.0.1")
        self.baseline_server.add_file(content_id, file.path)
        try:
            port = await self.baseline_server.start()
        except OSError as e:
            raise BaselineError(f"Failed to start baseline server: {e}") from e
        await self.ctx.sync.publish(
            baseline_addr_topic(file.index),
            {"seq": self.ctx.seq, "host": self.baseline_server.host, "port": port},
        )

    async def stop_baseline(self) -> None:
        if self.baseline_server is not None:
            await self.baseline_server.stop()
            self.baseline_server = None

    async def cleanup_file(self, file: FileUnderTest) -> None:
        content_id = self.root_cids.pop(file.index, None)
        if content_id is not None:
            await self.ctx.provider.remove(content_id)
            logger.debug(f"Removed {content_id} after file {file.index}")


class ConsumerRole(Role):
    """Fetches every file once per run in its own wave."""

    role = NodeRole.CONSUMER

    def __init__(self, ctx: TestContext):
        super().__init__(ctx)
        self.root_cid: Optional[str] = None
        self.file_dir: Optional[str] = None

    async def ingest(self, file: FileUnderTest, deadline: Deadline) -> None:
        self.root_cid = None
        self.file_dir = os.path.join(self.ctx.work_dir, f"node-{self.ctx.seq}", f"file-{file.index}")
        try:
            os.makedirs(self.file_dir, exist_ok=True)
        except OSError as e:
            raise IngestError(f"Failed to prepare download directory {self.file_dir}: {e}") from e

    async def resolve_root(self, file: FileUnderTest, deadline: Deadline) -> None:
        producers = self.ctx.producer_count
        if producers == 0:
            raise IngestError(f"No producer published file {file.index}")
        entries = await self.ctx.sync.subscribe(root_cid_topic(file.index), producers, deadline.remaining())
        cids = {entry["cid"] for entry in entries}
        if len(cids) != 1:
            raise IngestError(f"Producers disagree on the root content id of file {file.index}: {sorted(cids)}")
        self.root_cid = cids.pop()
        logger.info(f"Resolved root content id of file {file.index}: {self.root_cid}")

    async def run_baseline(self, file: FileUnderTest, deadline: Deadline) -> int:
        entries = await self.ctx.sync.subscribe(
            baseline_addr_topic(file.index), self.ctx.producer_count, deadline.remaining()
        )
        producers = sorted(entries, key=lambda e: e["seq"])
        target = producers[self.ctx.tpindex % len(producers)]
        latency_ns, received = await deadline.run(baseline_fetch(target["host"], target["port"], self.root_cid))
        if received != file.size:
            raise BaselineError(f"Baseline fetched {received} bytes, expected {file.size}")
        logger.info(f"TCP fetch of {received} bytes from node {target['seq']} took {latency_ns / 1e6:.1f} ms")
        return latency_ns

    async def fetch_phase(self, scheduler: WaveScheduler, file: FileUnderTest, run_id: str,
                          deadline: Deadline) -> Optional[WaveOutcome]:
        async def fetch() -> int:
            return await self._fetch(file, run_id)

        return await scheduler.run(
            tpindex=self.ctx.tpindex,
            seq=self.ctx.seq,
            run_id=run_id,
            consumer_count=self.ctx.consumer_count,
            fetch=fetch,
            deadline=deadline,
        )

    def _download_path(self, run_id: str) -> str:
        return os.path.join(self.file_dir, f"run-{run_id}.bin")

    async def _fetch(self, file: FileUnderTest, run_id: str) -> int:
        if self.root_cid is None:
            raise TransferError(f"Root content id of file {file.index} is unknown")
        try:
            stream = await self.ctx.provider.fetch(self.root_cid)
            await stream.write_to(self._download_path(run_id))
            return self.ctx.provider.size(stream)
        except BenchmarkError:
            raise
        except Exception as e:
            raise TransferError(f"Fetch of {self.root_cid} failed: {e}") from e

    async def cleanup_run(self, file: FileUnderTest, run_id: str) -> None:
        path = self._download_path(run_id)
        if os.path.exists(path):
            os.unlink(path)
        await self.ctx.provider.clear_cache()

    async def cleanup_file(self, file: FileUnderTest) -> None:
        if self.file_dir and os.path.isdir(self.file_dir):
            shutil.rmtree(self.file_dir)
        self.file_dir = None
        self.root_cid = None


_ROLES = {
    NodeRole.PRODUCER: ProducerRole,
    NodeRole.CONSUMER: ConsumerRole,
}


def create_role(ctx: TestContext) -> Role:
    """Return the behavior for the node's role; roles without one get the no-op Role."""
    return _ROLES.get(ctx.role, Role)(ctx)
