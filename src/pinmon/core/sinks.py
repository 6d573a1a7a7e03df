"""
PinMon Sinks Module
Output endpoints that receive formatted change notifications.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import zmq
import zmq.asyncio

logger = logging.getLogger(__name__)

changes_logger = logging.getLogger("pinmon.changes")


def format_address(address) -> str:
    """Render a socket address tuple as host:port"""
    if isinstance(address, (tuple, list)) and len(address) >= 2:
        return f"{address[0]}:{address[1]}"
    return str(address)


class Sink(ABC):
    """
    Base class for notification sinks

    Subclasses raise from write() when delivery fails; the broadcaster then
    drops the sink from the registry.
    """

    def __init__(self, identity: str):
        self.identity = identity

    @abstractmethod
    async def write(self, text: str):
        """Deliver text, raising on failure"""

    async def close(self):
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.identity!r})"


class StreamSink(Sink):
    """TCP subscriber connection accepted by the subscriber server"""

    def __init__(self, identity: str, writer: asyncio.StreamWriter, write_timeout: float = 1.0):
        super().__init__(identity)
        self.writer = writer
        self.write_timeout = write_timeout

    @classmethod
    def from_writer(cls, writer: asyncio.StreamWriter, write_timeout: float = 1.0) -> 'StreamSink':
        """Build a sink identified by its local and remote endpoints"""
        local = format_address(writer.get_extra_info('sockname'))
        remote = format_address(writer.get_extra_info('peername'))
        return cls(f"{local} - {remote}", writer, write_timeout)

    async def write(self, text: str):
        if self.writer.is_closing():
            raise ConnectionError(f"Connection {self.identity} is closed")
        try:
            self.writer.write(text.encode())
            await asyncio.wait_for(self.writer.drain(), timeout=self.write_timeout)
        except (asyncio.TimeoutError, OSError):
            # Unsent data would otherwise keep a graceful close waiting on the peer
            self.writer.transport.abort()
            raise

    async def close(self):
        transport = self.writer.transport
        if transport.get_write_buffer_size() > 0:
            transport.abort()
        else:
            self.writer.close()
        try:
            await asyncio.wait_for(self.writer.wait_closed(), timeout=self.write_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Connection {self.identity} did not close in time, aborting")
            transport.abort()


class LogSink(Sink):
    """Writes notifications to the pinmon.changes logger"""

    def __init__(self, identity: str = "log", level: int = logging.INFO):
        super().__init__(identity)
        self.level = level

    async def write(self, text: str):
        changes_logger.log(self.level, text.rstrip("\n"))


class ZMQSink(Sink):
    """Publishes notifications on a ZeroMQ PUB socket"""

    def __init__(self, endpoint: str, context=None):
        super().__init__(f"zmq {endpoint}")
        self.endpoint = endpoint
        self._owns_context = context is None
        self.context = context or zmq.asyncio.Context()
        self.socket = self.context.socket(zmq.PUB)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket.bind(endpoint)
        logger.info(f"ZeroMQ publisher bound to {endpoint}")

    async def write(self, text: str):
        await self.socket.send_string(text)

    async def close(self):
        self.socket.close()
        if self._owns_context:
            self.context.term()


class WebSocketSink(Sink):
    """WebSocket client connected to the feed server"""

    def __init__(self, identity: str, ws, write_timeout: Optional[float] = 1.0):
        super().__init__(identity)
        self.ws = ws
        self.write_timeout = write_timeout

    async def write(self, text: str):
        if self.ws.closed:
            raise ConnectionError(f"WebSocket {self.identity} is closed")
        await asyncio.wait_for(self.ws.send_str(text), timeout=self.write_timeout)

    async def close(self):
        try:
            await asyncio.wait_for(self.ws.close(), timeout=self.write_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"WebSocket {self.identity} did not close in time")
