"""
PinMon Subscriber Server
Accepts TCP listeners and registers each connection as a sink.
"""

import asyncio
import logging
from typing import Optional

from .registry import SubscriberRegistry
from .sinks import StreamSink

logger = logging.getLogger(__name__)


class SubscriberServer:
    """
    TCP Subscriber Server

    Every accepted connection becomes a StreamSink in the registry. Input
    from the peer is discarded; when the peer disconnects the sink is
    removed. A failing connection never stops the listener.
    """

    def __init__(self, registry: SubscriberRegistry, host: str = "0.0.0.0",
                 port: int = 0, write_timeout: float = 1.0):
        self.registry = registry
        self.host = host
        self.requested_port = port
        self.write_timeout = write_timeout
        self.server: Optional[asyncio.AbstractServer] = None
        self.connections = 0
        self.active = set()

    async def start(self):
        """Bind the listening socket; raises OSError if the port is unavailable"""
        self.server = await asyncio.start_server(
            self._handle_connection, self.host, self.requested_port
        )
        logger.info(f"Subscriber server listening on {self.host}:{self.port}")

    @property
    def port(self) -> Optional[int]:
        """Port actually bound"""
        if self.server and self.server.sockets:
            return self.server.sockets[0].getsockname()[1]
        return None

    async def stop(self):
        if self.server:
            self.server.close()
            # wait_closed() waits for open connections, so drop ours first
            for identity in list(self.active):
                await self.registry.remove(identity)
            await self.server.wait_closed()
            self.server = None
            logger.info("Subscriber server stopped")

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle one subscriber for its lifetime"""
        try:
            sink = StreamSink.from_writer(writer, self.write_timeout)
        except Exception as e:
            logger.error(f"Cannot accept connection: {e}")
            writer.close()
            return

        try:
            await self.registry.add(sink)
        except ValueError as e:
            logger.error(f"Rejecting connection: {e}")
            writer.close()
            return

        self.connections += 1
        self.active.add(sink.identity)
        try:
            while await reader.read(1024):
                pass
        except (ConnectionError, OSError) as e:
            logger.debug(f"Connection {sink.identity} error: {e}")
        finally:
            self.active.discard(sink.identity)
            await self.registry.remove(sink.identity)
