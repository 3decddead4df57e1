"""
Barrier client contract used by the run controller.
"""

import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class SyncClient:
    """Base class for rendezvous clients.

    States are named counters: every ``signal_entry`` increments one and returns
    the new value, and ``barrier`` blocks until a counter reaches a target.
    Topics are append-only lists of JSON-compatible payloads.
    """

    async def signal_entry(self, state: str) -> int:
        """Signal ``state`` and return this caller's 1-based arrival number."""
        raise NotImplementedError

    async def barrier(self, state: str, target: int, timeout: float) -> int:
        """Block until ``target`` nodes have signaled ``state``.

        Returns:
            The counter value observed when the barrier was satisfied

        Raises:
            BarrierTimeoutError: if ``timeout`` seconds pass first
            BarrierError: if the service fails
        """
        raise NotImplementedError

    async def publish(self, topic: str, payload: Dict[str, Any]) -> int:
        """Append ``payload`` to ``topic`` and return its 1-based position."""
        raise NotImplementedError

    async def subscribe(self, topic: str, count: int, timeout: float) -> List[Dict[str, Any]]:
        """Return the first ``count`` payloads of ``topic``, waiting for them if needed."""
        raise NotImplementedError

    async def signal_and_wait(self, state: str, target: int, timeout: float) -> int:
        """Signal ``state`` then wait for ``target`` signals; returns our arrival number."""
        seq = await self.signal_entry(state)
        logger.debug(f"Signaled '{state}' ({seq}/{target}), waiting")
        await self.barrier(state, target, timeout)
        return seq

    async def close(self) -> None:
        """Release any resources held by the client."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
