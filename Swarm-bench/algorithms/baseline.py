"""
Raw TCP transfer used as a network-only latency baseline.

Protocol: the client sends ``GET <content id>\\n``; the server answers
``<size>\\n`` followed by exactly ``size`` bytes, or ``ERR <reason>\\n``.
"""

import asyncio
import logging
import os
import time
from typing import Dict, Optional, Tuple

from common.errors import BaselineError
from configuration import STREAM_CHUNK_SIZE

logger = logging.getLogger(__name__)


class BaselineServer:
    """Serves published files over plain TCP."""

    def __init__(self, host: str, port: int = 0):
        self.host = host
        self.port = port
        self.files: Dict[str, str] = {}
        self.served = 0
        self._server: Optional[asyncio.AbstractServer] = None

    def add_file(self, content_id: str, path: str) -> None:
        self.files[content_id] = path

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        addr = writer.get_extra_info("peername")
        try:
            line = await reader.readline()
            parts = line.decode().strip().split()
            if len(parts) != 2 or parts[0] != "GET":
                writer.write(b"ERR invalid request\n")
                return
            path = self.files.get(parts[1])
            if path is None:
                writer.write(b"ERR unknown content\n")
                return
            writer.write(f"{os.path.getsize(path)}\n".encode())
            with open(path, 'rb') as f:
                while True:
                    chunk = f.read(STREAM_CHUNK_SIZE)
                    if not chunk:
                        break
                    writer.write(chunk)
                    await writer.drain()
            self.served += 1
        except (ConnectionError, OSError) as e:
            logger.warning(f"Baseline transfer to {addr} failed: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def start(self) -> int:
        """Start listening and return the bound port."""
        self._server = await asyncio.start_server(self._handle, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]
        logger.info(f"Baseline server listening on {self.host}:{self.port}")
        return self.port

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info(f"Baseline server stopped after {self.served} transfers")


async def baseline_fetch(host: str, port: int, content_id: str) -> Tuple[int, int]:
    """Fetch ``content_id`` over raw TCP.

    Returns:
        Tuple of (latency in ns from connect to last byte, bytes received)

    Raises:
        BaselineError: on connection errors, server errors or short reads
    """
    start = time.perf_counter_ns()
    try:
        reader, writer = await asyncio.open_connection(host, port)
    except OSError as e:
        raise BaselineError(f"Baseline connection to {host}:{port} failed: {e}") from e

    try:
        writer.write(f"GET {content_id}\n".encode())
        await writer.drain()
        header = (await reader.readline()).decode().strip()
        if not header or header.startswith("ERR"):
            raise BaselineError(f"Baseline server {host}:{port} refused {content_id}: {header or 'no answer'}")
        size = int(header)
        received = 0
        while received < size:
            chunk = await reader.read(min(STREAM_CHUNK_SIZE, size - received))
            if not chunk:
                raise BaselineError(f"Baseline transfer truncated after {received}/{size} bytes")
            received += len(chunk)
    except (ConnectionError, ValueError) as e:
        raise BaselineError(f"Baseline transfer from {host}:{port} failed: {e}") from e
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except ConnectionError:
            pass

    return max(time.perf_counter_ns() - start, 1), received
