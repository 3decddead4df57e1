"""
Run the rendezvous server the benchmark nodes synchronize through.
"""

import asyncio
import os
import sys
import logging
import argparse

import uvloop

_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from configuration import SYNC_SERVICE_HOST, SYNC_SERVICE_PORT
from sync.server import RendezvousServer

# Set up logging (only if not already configured)
if not logging.root.handlers:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
    )
logging.getLogger('aiohttp.access').setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


async def serve(host: str, port: int) -> None:
    """Serve until cancelled."""
    server = RendezvousServer(host, port)
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def add_server_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--host', default=SYNC_SERVICE_HOST, help=f'Bind address (default: {SYNC_SERVICE_HOST})')
    parser.add_argument('--port', type=int, default=SYNC_SERVICE_PORT, help=f'Bind port (default: {SYNC_SERVICE_PORT})')


def main():
    """Main entry point for the rendezvous server."""
    parser = argparse.ArgumentParser(description="Swarm benchmark rendezvous server")
    add_server_arguments(parser)
    args = parser.parse_args()
    try:
        uvloop.run(serve(args.host, args.port))
    except KeyboardInterrupt:
        logger.info("Rendezvous server interrupted by user")


if __name__ == "__main__":
    main()
