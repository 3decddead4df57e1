"""
HTTP rendezvous server holding barrier counters and topics for a fleet of nodes.
"""

import logging
from typing import Optional

from aiohttp import web

from common.errors import BarrierTimeoutError
from configuration import SYNC_LONG_POLL_SECONDS
from sync.memory import InMemorySyncService

logger = logging.getLogger(__name__)


class RendezvousServer:
    """aiohttp front end over an InMemorySyncService.

    Waits are long polls bounded by the ``timeout`` query parameter; an
    unsatisfied wait answers 408 with the current count so the client can poll
    again or give up.
    """

    def __init__(self, host: str = "0.0.0.0", port: int = 5050,
                 service: Optional[InMemorySyncService] = None):
        self.host = host
        self.port = port
        self.service = service or InMemorySyncService()
        self.app = self._create_app()
        self._runner: Optional[web.AppRunner] = None

    def _create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post('/signal/{state}', self.handle_signal)
        app.router.add_get('/barrier/{state}', self.handle_barrier)
        app.router.add_post('/topics/{topic}', self.handle_publish)
        app.router.add_get('/topics/{topic}', self.handle_subscribe)
        app.router.add_get('/health', self.handle_health)
        return app

    @staticmethod
    def _timeout(request: web.Request) -> float:
        timeout = float(request.query.get('timeout', SYNC_LONG_POLL_SECONDS))
        return max(0.0, min(timeout, SYNC_LONG_POLL_SECONDS))

    async def handle_signal(self, request: web.Request) -> web.Response:
        state = request.match_info['state']
        seq = await self.service.signal(state)
        logger.debug(f"Signal '{state}' -> {seq}")
        return web.json_response({"state": state, "seq": seq})

    async def handle_barrier(self, request: web.Request) -> web.Response:
        state = request.match_info['state']
        try:
            target = int(request.query['target'])
            timeout = self._timeout(request)
        except (KeyError, ValueError) as e:
            return web.json_response({"error": f"invalid barrier request: {e}"}, status=400)
        try:
            count = await self.service.wait_count(state, target, timeout)
        except BarrierTimeoutError as e:
            return web.json_response({"state": state, "count": e.count, "target": target}, status=408)
        return web.json_response({"state": state, "count": count, "target": target})

    async def handle_publish(self, request: web.Request) -> web.Response:
        topic = request.match_info['topic']
        try:
            payload = await request.json()
        except ValueError as e:
            return web.json_response({"error": f"invalid payload: {e}"}, status=400)
        seq = await self.service.publish(topic, payload)
        return web.json_response({"topic": topic, "seq": seq})

    async def handle_subscribe(self, request: web.Request) -> web.Response:
        topic = request.match_info['topic']
        try:
            count = int(request.query['count'])
            timeout = self._timeout(request)
        except (KeyError, ValueError) as e:
            return web.json_response({"error": f"invalid subscribe request: {e}"}, status=400)
        try:
            entries = await self.service.wait_entries(topic, count, timeout)
        except BarrierTimeoutError as e:
            return web.json_response({"topic": topic, "count": e.count, "target": count}, status=408)
        return web.json_response({"topic": topic, "entries": entries})

    async def handle_health(self, request: web.Request) -> web.Response:
        states, topics = self.service.snapshot()
        return web.json_response({"status": "ok", "states": states, "topics": topics})

    async def start(self) -> None:
        """Start serving on ``host:port``."""
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        if not self.port:
            self.port = self._runner.addresses[0][1]
        logger.info(f"Rendezvous server listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Rendezvous server stopped")
