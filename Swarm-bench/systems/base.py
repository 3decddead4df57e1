"""
Async base classes for transfer providers.

A transfer provider publishes files under a content identifier and fetches
them back by that identifier. The benchmark only measures it; how the bytes
travel is the provider's business.
"""

import asyncio
import hashlib
import logging
import time
from typing import AsyncIterator, Dict, Any, Optional

from common.context import PeerInfo
from common.errors import TransferError
from configuration import CONTENT_ID_PREFIX, DIAL_TIMEOUT_SECONDS, STREAM_CHUNK_SIZE

logger = logging.getLogger(__name__)


def compute_content_id(path: str, chunk_size: int = STREAM_CHUNK_SIZE) -> str:
    """Derive the content identifier of a file from its bytes."""
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return CONTENT_ID_PREFIX + digest.hexdigest()


class ContentStream:
    """A fetched object, consumed once as a stream of chunks."""

    def __init__(self, content_id: str, chunks: AsyncIterator[bytes], expected_size: Optional[int] = None):
        self.content_id = content_id
        self.expected_size = expected_size
        self.size: Optional[int] = None
        self._chunks = chunks

    async def _consume(self, sink=None) -> int:
        if self.size is not None:
            raise TransferError(f"Stream for {self.content_id} already consumed")
        total = 0
        async for chunk in self._chunks:
            if sink is not None:
                await asyncio.to_thread(sink.write, chunk)
            total += len(chunk)
        if self.expected_size is not None and total != self.expected_size:
            raise TransferError(
                f"Incomplete read of {self.content_id}: expected {self.expected_size} bytes, got {total}"
            )
        self.size = total
        return total

    async def write_to(self, path: str) -> int:
        """Write the whole stream to ``path`` and return the number of bytes."""
        with open(path, 'wb') as f:
            return await self._consume(f)

    async def drain(self) -> int:
        """Read and discard the whole stream, returning the number of bytes."""
        return await self._consume()


class TransferProvider:
    """Async base class for content transfer providers."""

    name = "base"

    def __init__(self):
        self._metrics = {
            'published': 0,
            'fetches': 0,
            'failed_fetches': 0,
            'dials': 0,
            'failed_dials': 0,
        }

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass

    async def publish(self, path: str) -> str:
        """Make the file at ``path`` retrievable and return its content id."""
        raise NotImplementedError

    async def fetch(self, content_id: str) -> ContentStream:
        """Open a stream over the content behind ``content_id``.

        Raises:
            TransferError: if the content cannot be retrieved
        """
        raise NotImplementedError

    async def remove(self, content_id: str) -> None:
        """Forget published content; removing unknown content is not an error."""
        raise NotImplementedError

    async def clear_cache(self) -> None:
        """Drop anything cached locally between runs."""

    def size(self, stream: ContentStream) -> int:
        if stream.size is None:
            raise TransferError(f"Stream for {stream.content_id} has not been read yet")
        return stream.size

    async def connect(self, peer: PeerInfo) -> bool:
        """Open (and close) a TCP connection to a peer's advertised address."""
        if not peer.host or not peer.port:
            return False
        self._metrics['dials'] += 1
        start = time.perf_counter()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(peer.host, peer.port), timeout=DIAL_TIMEOUT_SECONDS
            )
        except (OSError, asyncio.TimeoutError) as e:
            self._metrics['failed_dials'] += 1
            logger.debug(f"Dial to {peer.address} failed: {e}")
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except ConnectionError:
            pass
        logger.debug(f"Dialed {peer.address} in {(time.perf_counter() - start) * 1000:.1f} ms")
        return True

    def get_metrics(self) -> Dict[str, Any]:
        """Get provider counters."""
        return self._metrics.copy()
