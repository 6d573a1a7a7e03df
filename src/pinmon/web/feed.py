"""
PinMon Web Feed Server
WebSocket change feed and HTTP status API.
"""

import logging
import time
from typing import Dict, Any, Optional

from aiohttp import web, WSMsgType

from ..core.config import Config
from ..core.events import ChangeFormatter
from ..core.registry import SubscriberRegistry
from ..core.sinks import WebSocketSink, format_address

logger = logging.getLogger(__name__)


class FeedServer:
    """
    PinMon Web Feed Server

    WebSocket clients on /ws join the same subscriber registry as TCP
    listeners and receive the same notification lines. /api/status reports
    the last known state of every monitored line.
    """

    def __init__(self, config: Config, registry: SubscriberRegistry, sampler=None, broadcaster=None):
        """Initialize Feed Server"""
        self.config = config
        self.registry = registry
        self.sampler = sampler
        self.broadcaster = broadcaster
        self.formatter = ChangeFormatter(config.pin_names, config.state_names)
        self.start_time = time.time()
        self.runner: Optional[web.AppRunner] = None
        self.app = web.Application()
        self._setup_routes()

    def _setup_routes(self):
        """Setup HTTP and WebSocket routes"""
        self.app.router.add_get('/ws', self.handle_websocket)
        self.app.router.add_get('/api/status', self.handle_api_status)

    async def start(self, host: str = None, port: int = None):
        """Start the feed server"""
        host = host or self.config.web_host
        port = port if port is not None else self.config.web_port

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, host, port)
        await site.start()

        logger.info(f"Feed server started on http://{host}:{port}")

    async def stop(self):
        """Stop the feed server"""
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
            logger.info("Feed server stopped")

    def _identity(self, request: web.Request, ws: web.WebSocketResponse) -> str:
        transport = request.transport
        if transport is not None:
            local = format_address(transport.get_extra_info('sockname'))
            remote = format_address(transport.get_extra_info('peername'))
            return f"ws {local} - {remote}"
        return f"ws {request.remote}:{id(ws)}"

    async def handle_websocket(self, request: web.Request):
        """Register a WebSocket client as a subscriber until it disconnects"""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        sink = WebSocketSink(self._identity(request, ws), ws, self.config.write_timeout)
        try:
            await self.registry.add(sink)
        except ValueError as e:
            logger.error(f"Rejecting WebSocket client: {e}")
            await ws.close()
            return ws

        try:
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    logger.error(f"WebSocket error: {ws.exception()}")
                    break
        finally:
            await self.registry.remove(sink.identity)

        return ws

    def get_status(self) -> Dict[str, Any]:
        """Build status document"""
        states = self.sampler.snapshot() if self.sampler else {}
        pins = []
        for pin in sorted(self.config.pin_names):
            state = states.get(pin)
            pins.append({
                'pin': pin,
                'name': self.formatter.pin_label(pin),
                'state': state,
                'state_name': self.formatter.state_label(state) if state is not None else None,
            })

        status = {
            'pins': pins,
            'subscribers': len(self.registry),
            'uptime': time.time() - self.start_time,
        }
        if self.sampler:
            status['sampler'] = dict(self.sampler.stats)
        if self.broadcaster:
            status['broadcaster'] = dict(self.broadcaster.stats)
        return status

    async def handle_api_status(self, request: web.Request):
        """API endpoint for line states"""
        return web.json_response(self.get_status())
