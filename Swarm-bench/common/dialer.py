"""
Peer dialing for the connect phase of every run.
"""

import asyncio
import logging
import math
from typing import List, Optional

from common.context import PeerInfo

logger = logging.getLogger(__name__)


def select_dial_targets(self_seq: int, peers: List[PeerInfo], max_connection_rate: int) -> List[PeerInfo]:
    """Pick the peers a node dials.

    Takes ``ceil(len(others) * rate / 100)`` of the other peers, walking the
    seq order starting right after ``self_seq`` so that dials spread evenly
    across the fleet instead of all landing on the lowest seqs.
    """
    others = sorted((p for p in peers if p.seq != self_seq), key=lambda p: p.seq)
    if not others or max_connection_rate <= 0:
        return []
    limit = math.ceil(len(others) * max_connection_rate / 100)
    start = next((i for i, p in enumerate(others) if p.seq > self_seq), 0)
    rotated = others[start:] + others[:start]
    return rotated[:limit]


async def dial_peers(provider, self_seq: int, peers: List[PeerInfo], max_connection_rate: int) -> List[PeerInfo]:
    """Connect to the selected peers and return the ones that answered.

    Connection failures are logged and skipped; the caller never fails on them.
    """
    targets = select_dial_targets(self_seq, peers, max_connection_rate)
    results = await asyncio.gather(
        *(provider.connect(peer) for peer in targets), return_exceptions=True
    )
    dialed = []
    for peer, result in zip(targets, results):
        if isinstance(result, BaseException):
            logger.warning(f"Dial to node {peer.seq} ({peer.address}) failed: {result}")
        elif result:
            dialed.append(peer)
        else:
            logger.debug(f"Dial to node {peer.seq} ({peer.address}) refused")
    return dialed


class PeerListener:
    """Accepts and immediately closes TCP connections on the node's advertised address."""

    def __init__(self, host: str, port: int = 0):
        self.host = host
        self.port = port
        self.accepted = 0
        self._server: Optional[asyncio.AbstractServer] = None

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.accepted += 1
        writer.close()
        try:
            await writer.wait_closed()
        except ConnectionError:
            pass

    async def start(self) -> int:
        """Start listening and return the bound port."""
        self._server = await asyncio.start_server(self._handle, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]
        logger.info(f"Peer listener on {self.host}:{self.port}")
        return self.port

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
