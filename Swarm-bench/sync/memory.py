"""
In-process rendezvous service.

Used directly by nodes sharing one event loop (tests, single-host runs) and as
the state store behind the HTTP rendezvous server.
"""

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Any, Dict, List, Tuple

from common.errors import BarrierTimeoutError
from sync.base import SyncClient

logger = logging.getLogger(__name__)


class InMemorySyncService:
    """Named counters and topics guarded by a single asyncio condition."""

    def __init__(self):
        self._counts: Dict[str, int] = defaultdict(int)
        self._topics: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._condition = asyncio.Condition()

    async def signal(self, state: str) -> int:
        async with self._condition:
            self._counts[state] += 1
            self._condition.notify_all()
            return self._counts[state]

    def count(self, state: str) -> int:
        return self._counts.get(state, 0)

    async def _wait_count(self, state: str, target: int) -> int:
        async with self._condition:
            await self._condition.wait_for(lambda: self._counts[state] >= target)
            return self._counts[state]

    async def wait_count(self, state: str, target: int, timeout: float) -> int:
        """Wait until ``state`` reaches ``target`` signals.

        Raises:
            BarrierTimeoutError: if ``timeout`` seconds pass first
        """
        try:
            return await asyncio.wait_for(self._wait_count(state, target), timeout=timeout)
        except asyncio.TimeoutError:
            raise BarrierTimeoutError(state, target, self.count(state)) from None

    async def publish(self, topic: str, payload: Dict[str, Any]) -> int:
        async with self._condition:
            self._topics[topic].append(copy.deepcopy(payload))
            self._condition.notify_all()
            return len(self._topics[topic])

    def entries(self, topic: str) -> List[Dict[str, Any]]:
        return [copy.deepcopy(entry) for entry in self._topics.get(topic, [])]

    async def _wait_entries(self, topic: str, count: int) -> List[Dict[str, Any]]:
        async with self._condition:
            await self._condition.wait_for(lambda: len(self._topics[topic]) >= count)
            return [copy.deepcopy(entry) for entry in self._topics[topic][:count]]

    async def wait_entries(self, topic: str, count: int, timeout: float) -> List[Dict[str, Any]]:
        """Wait until ``topic`` holds ``count`` entries and return the first ``count``."""
        try:
            return await asyncio.wait_for(self._wait_entries(topic, count), timeout=timeout)
        except asyncio.TimeoutError:
            raise BarrierTimeoutError(topic, count, len(self._topics.get(topic, []))) from None

    def snapshot(self) -> Tuple[Dict[str, int], Dict[str, int]]:
        """Return (state counts, topic sizes) for status reporting."""
        return dict(self._counts), {topic: len(entries) for topic, entries in self._topics.items()}

    def client(self) -> "InMemorySyncClient":
        return InMemorySyncClient(self)


class InMemorySyncClient(SyncClient):
    """SyncClient backed by a shared InMemorySyncService."""

    def __init__(self, service: InMemorySyncService):
        self.service = service

    async def signal_entry(self, state: str) -> int:
        return await self.service.signal(state)

    async def barrier(self, state: str, target: int, timeout: float) -> int:
        return await self.service.wait_count(state, target, timeout)

    async def publish(self, topic: str, payload: Dict[str, Any]) -> int:
        return await self.service.publish(topic, payload)

    async def subscribe(self, topic: str, count: int, timeout: float) -> List[Dict[str, Any]]:
        return await self.service.wait_entries(topic, count, timeout)
