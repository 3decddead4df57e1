"""
Best-effort liveness logging running beside the benchmark protocol.
"""

import asyncio
import logging
import os
import time
from typing import Optional

import psutil

logger = logging.getLogger(__name__)


class StillAlive:
    """Periodically logs that the node is alive, with basic process stats.

    Owns no benchmark state and never affects phase synchronization.
    """

    def __init__(self, seq: int, interval_seconds: float):
        self.seq = seq
        self.interval_seconds = interval_seconds
        self.beats = 0
        self._task: Optional[asyncio.Task] = None
        self._process = psutil.Process(os.getpid())
        self._started = time.time()

    def start(self) -> None:
        if self.interval_seconds <= 0:
            logger.debug("Heartbeat disabled")
            return
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.beats += 1
            try:
                rss_mb = self._process.memory_info().rss / (1024 * 1024)
                cpu = self._process.cpu_percent(interval=None)
                logger.info(
                    f"Node {self.seq} still alive ({time.time() - self._started:.0f}s, "
                    f"rss={rss_mb:.1f} MiB, cpu={cpu:.0f}%)"
                )
            except psutil.Error as e:
                logger.info(f"Node {self.seq} still alive (stats unavailable: {e})")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
