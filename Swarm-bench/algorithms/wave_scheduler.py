"""
Wave scheduling of consumer fetches.

Consumers are split into ``num_waves`` groups by ``tpindex % num_waves``; only
the group of the current wave fetches, each member delayed by
``(seq - 1) * request_stagger``. All consumers meet on a barrier after every
wave, so wave N+1 never starts before every fetch of wave N has finished or
been abandoned.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List

from common.context import TestParameters
from common.deadline import Deadline, DeadlineExceeded
from common.errors import PhaseDeadlineError, TransferError
from common.metrics_utils import ns_to_ms
from configuration import INTER_WAVE_PAUSE_SECONDS

logger = logging.getLogger(__name__)


def wave_of(tpindex: int, num_waves: int) -> int:
    """Return the wave a consumer belongs to."""
    if num_waves < 1:
        raise ValueError(f"num_waves must be >= 1, got {num_waves}")
    if tpindex < 0:
        raise ValueError(f"tpindex must be >= 0, got {tpindex}")
    return tpindex % num_waves


def is_entitled(tpindex: int, wave: int, num_waves: int) -> bool:
    return wave_of(tpindex, num_waves) == wave


def partition(tpindices: Iterable[int], num_waves: int) -> Dict[int, List[int]]:
    """Map every wave to the sorted consumer indices it contains."""
    waves: Dict[int, List[int]] = {wave: [] for wave in range(num_waves)}
    for tpindex in sorted(tpindices):
        waves[wave_of(tpindex, num_waves)].append(tpindex)
    return waves


def start_delay(seq: int, request_stagger: float) -> float:
    """Delay before a consumer's fetch within its wave; ``seq`` is 1-based."""
    if seq < 1:
        raise ValueError(f"seq must be >= 1, got {seq}")
    return (seq - 1) * request_stagger


def wave_barrier_name(run_id: str, wave: int) -> str:
    return f"consumer-wave-{run_id}-{wave}"


@dataclass
class WaveOutcome:
    """What one consumer observed over all waves of one run."""

    wave: int
    fetch_latency_ns: int = 0
    failures: int = 0
    bytes_transferred: int = 0


FetchFn = Callable[[], Awaitable[int]]


class WaveScheduler:
    """Runs the wave sequence of one consumer for one run."""

    def __init__(self, params: TestParameters, sync, inter_wave_pause: float = INTER_WAVE_PAUSE_SECONDS,
                 clock: Callable[[], int] = time.perf_counter_ns):
        self.params = params
        self.sync = sync
        self.inter_wave_pause = inter_wave_pause
        self.clock = clock

    async def run(self, tpindex: int, seq: int, run_id: str, consumer_count: int,
                  fetch: FetchFn, deadline: Deadline) -> WaveOutcome:
        """Execute every wave of the run.

        Args:
            tpindex: The consumer's 0-based index among consumers
            seq: The node's 1-based sequence number
            run_id: "<file index>-<run number>"
            consumer_count: Number of consumers meeting on each wave barrier
            fetch: Coroutine function doing the transfer, returning the bytes fetched
            deadline: Run deadline; fetches, pauses and barriers never outlive it

        Returns:
            The consumer's WaveOutcome

        Raises:
            BarrierError: if a wave barrier fails or times out
            PhaseDeadlineError: if the run deadline expires during a stagger delay or pause
        """
        num_waves = self.params.num_waves
        outcome = WaveOutcome(wave=wave_of(tpindex, num_waves))

        for wave in range(num_waves):
            if is_entitled(tpindex, wave, num_waves):
                logger.info(f"Starting wave {wave} of run {run_id}")
                await self._fetch_in_wave(seq, run_id, wave, fetch, deadline, outcome)

            if wave < num_waves - 1 and self.inter_wave_pause > 0:
                logger.info(f"Waiting {self.inter_wave_pause:.0f}s between waves after wave {wave}")
                await self._sleep(self.inter_wave_pause, deadline, f"the pause after wave {wave} of run {run_id}")

            await self.sync.signal_and_wait(
                wave_barrier_name(run_id, wave), consumer_count, deadline.remaining()
            )

        return outcome

    async def _sleep(self, seconds: float, deadline: Deadline, what: str) -> None:
        try:
            await deadline.run(asyncio.sleep(seconds))
        except DeadlineExceeded as e:
            raise PhaseDeadlineError(f"Run deadline expired during {what}") from e

    async def _fetch_in_wave(self, seq: int, run_id: str, wave: int, fetch: FetchFn,
                             deadline: Deadline, outcome: WaveOutcome) -> None:
        delay = start_delay(seq, self.params.request_stagger)
        if delay > 0:
            logger.info(f"Consumer fetching data after {delay:.3f}s delay")
            await self._sleep(delay, deadline, f"the start delay in wave {wave} of run {run_id}")

        fetch_deadline = deadline.child(self.params.fetch_timeout)
        start = self.clock()
        try:
            fetched = await fetch_deadline.run(fetch())
        except (TransferError, asyncio.TimeoutError) as e:
            outcome.failures += 1
            logger.warning(f"Error fetching data in wave {wave} of run {run_id}: {e}")
            return

        # A zero latency means "no successful fetch" downstream
        outcome.fetch_latency_ns = max(self.clock() - start, 1)
        outcome.bytes_transferred = fetched
        logger.info(
            f"Consumer fetch of {fetched} bytes complete "
            f"({ns_to_ms(outcome.fetch_latency_ns):.1f} ms) for wave {wave}"
        )
