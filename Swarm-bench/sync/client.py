"""
HTTP client for the rendezvous server.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from common.errors import BarrierError, BarrierTimeoutError
from configuration import SYNC_LONG_POLL_SECONDS
from sync.base import SyncClient

logger = logging.getLogger(__name__)

# Extra client-side slack on top of the server-side long-poll window
_REQUEST_SLACK_SECONDS = 5.0


class HTTPSyncClient(SyncClient):
    """SyncClient talking to a RendezvousServer over HTTP long polls."""

    def __init__(self, base_url: str, long_poll_seconds: float = SYNC_LONG_POLL_SECONDS):
        self.base_url = base_url.rstrip('/')
        self.long_poll_seconds = long_poll_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self.session = aiohttp.ClientSession()
        return self

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None

    def _url(self, kind: str, name: str) -> str:
        return f"{self.base_url}/{kind}/{quote(name, safe='')}"

    async def _request(self, method: str, url: str, poll: float = 0.0, **kwargs):
        if self.session is None:
            raise RuntimeError("Sync client not initialized. Use async context manager.")
        timeout = aiohttp.ClientTimeout(total=poll + _REQUEST_SLACK_SECONDS)
        try:
            async with self.session.request(method, url, timeout=timeout, **kwargs) as response:
                body = await response.json()
                return response.status, body
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise BarrierError(f"Sync service request {method} {url} failed: {e}") from e

    async def signal_entry(self, state: str) -> int:
        status, body = await self._request('POST', self._url('signal', state))
        if status != 200:
            raise BarrierError(f"Signal '{state}' rejected ({status}): {body}")
        return int(body['seq'])

    async def _long_poll(self, url: str, name: str, target: int, timeout: float,
                         params: Dict[str, Any]) -> Dict[str, Any]:
        end_time = time.monotonic() + timeout
        count = None
        while True:
            remaining = end_time - time.monotonic()
            if remaining <= 0:
                raise BarrierTimeoutError(name, target, count)
            poll = min(remaining, self.long_poll_seconds)
            status, body = await self._request(
                'GET', url, poll=poll, params={**params, 'timeout': f"{poll:.3f}"}
            )
            if status == 200:
                return body
            if status != 408:
                raise BarrierError(f"Wait on '{name}' failed ({status}): {body}")
            count = body.get('count')

    async def barrier(self, state: str, target: int, timeout: float) -> int:
        body = await self._long_poll(
            self._url('barrier', state), state, target, timeout, {'target': str(target)}
        )
        return int(body['count'])

    async def publish(self, topic: str, payload: Dict[str, Any]) -> int:
        status, body = await self._request('POST', self._url('topics', topic), json=payload)
        if status != 200:
            raise BarrierError(f"Publish to '{topic}' rejected ({status}): {body}")
        return int(body['seq'])

    async def subscribe(self, topic: str, count: int, timeout: float) -> List[Dict[str, Any]]:
        body = await self._long_poll(
            self._url('topics', topic), topic, count, timeout, {'count': str(count)}
        )
        return body['entries']
