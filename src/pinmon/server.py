#!/usr/bin/env python3
"""
PinMon Integrated Server
Runs the sampler, broadcaster and every configured sink as one daemon.
"""

import asyncio
import logging
from typing import Dict, Any, List, Optional

from .core.broadcaster import Broadcaster
from .core.config import Config
from .core.events import ChangeFormatter
from .core.registry import SubscriberRegistry
from .core.sampler import Sampler
from .core.server import SubscriberServer
from .core.sinks import LogSink, ZMQSink
from .protocols.gpio import GPIOReader
from .web.feed import FeedServer

logger = logging.getLogger(__name__)


class PinMonitorServer:
    """
    PinMon Integrated Server

    Wires the GPIO reader, sampler, event queue, subscriber registry and
    broadcaster together with the TCP, WebSocket, ZeroMQ and log sinks
    enabled in the configuration.
    """

    def __init__(self, config: Config = None, reader=None):
        """Initialize integrated server"""
        self.config = config or Config.from_env()
        self.config.validate()
        self.reader = reader
        self.running = False

        self.queue: Optional[asyncio.Queue] = None
        self.registry: Optional[SubscriberRegistry] = None
        self.sampler: Optional[Sampler] = None
        self.broadcaster: Optional[Broadcaster] = None
        self.subscriber_server: Optional[SubscriberServer] = None
        self.feed_server: Optional[FeedServer] = None

        self._tasks: List[asyncio.Task] = []
        self._started = asyncio.Event()
        self._stopped = asyncio.Event()
        self._stopping = False

    async def setup(self):
        """Build components and bind every enabled sink"""
        if self.reader is None:
            self.reader = GPIOReader(self.config)

        self.queue = asyncio.Queue(maxsize=self.config.event_queue_size)
        self.registry = SubscriberRegistry()
        self.sampler = Sampler(
            self.reader,
            self.config.pin_names,
            interval=self.config.poll_interval,
            queue=self.queue,
            backpressure=self.config.backpressure,
            pull_up=self.config.pull_up,
        )
        self.sampler.setup()

        formatter = ChangeFormatter(self.config.pin_names, self.config.state_names)
        self.broadcaster = Broadcaster(self.registry, formatter)

        if self.config.tcp_enabled():
            self.subscriber_server = SubscriberServer(
                self.registry,
                host=self.config.tcp_host,
                port=self.config.tcp_port,
                write_timeout=self.config.write_timeout,
            )
            await self.subscriber_server.start()

        if self.config.web_enabled():
            self.feed_server = FeedServer(self.config, self.registry, self.sampler, self.broadcaster)
            await self.feed_server.start()

        if self.config.zmq_enabled():
            await self.registry.add(ZMQSink(self.config.zmq_endpoint))

        if self.config.log_changes or not self.config.network_enabled():
            await self.registry.add(LogSink())
            logger.info("Change notifications routed to log")

    async def start(self):
        """Start all components and run until stop() is called"""
        logger.info("Starting PinMon Server...")
        try:
            await self.setup()
        except Exception as e:
            logger.error(f"Failed to start PinMon Server: {e}")
            await self.stop()
            raise

        self._tasks = [
            asyncio.create_task(self.sampler.run()),
            asyncio.create_task(self.broadcaster.run(self.queue)),
        ]
        self.running = True
        self._started.set()
        logger.info(f"PinMon Server started - monitoring pins {self.sampler.pins}")

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            if not self._stopping:
                raise

        # Return only once stop() has released every resource
        await self._stopped.wait()

    async def wait_started(self):
        await self._started.wait()

    async def stop(self):
        """Stop all components and release resources"""
        if self._stopping:
            await self._stopped.wait()
            return

        logger.info("Stopping PinMon Server...")
        self._stopping = True
        self.running = False

        if self.sampler:
            self.sampler.stop()
        if self.broadcaster:
            self.broadcaster.stop()

        # A sampler blocked on a full queue would never see its stop flag
        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        try:
            if self.subscriber_server:
                await self.subscriber_server.stop()
            if self.registry:
                await self.registry.close_all()
            if self.feed_server:
                await self.feed_server.stop()
        except Exception as e:
            logger.error(f"Error stopping PinMon Server: {e}")

        if self.reader is not None and hasattr(self.reader, 'cleanup'):
            self.reader.cleanup()

        self._stopped.set()
        logger.info("PinMon Server stopped")

    def get_status(self) -> Dict[str, Any]:
        """Get server status"""
        status = {
            'server_running': self.running,
            'config': self.config.to_dict(),
        }
        if self.sampler:
            status['states'] = self.sampler.snapshot()
            status['sampler'] = dict(self.sampler.stats)
        if self.broadcaster:
            status['broadcaster'] = dict(self.broadcaster.stats)
        if self.registry:
            status['subscribers'] = self.registry.identities()
        return status
