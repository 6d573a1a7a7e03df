"""
PinMon Broadcaster Module
Fans state change notifications out to every registered sink.
"""

import asyncio
import logging
from typing import List

from .events import ChangeFormatter, StateChange
from .registry import SubscriberRegistry
from .sinks import Sink

logger = logging.getLogger(__name__)


class Broadcaster:
    """
    Event Broadcaster

    Drains the sampler's event queue and writes each formatted event once
    to every live sink. A sink whose write fails is closed and removed;
    delivery to the others continues. Nothing is retried or replayed.
    """

    def __init__(self, registry: SubscriberRegistry, formatter: ChangeFormatter):
        self.registry = registry
        self.formatter = formatter
        self.stats = {
            'events': 0,
            'delivered': 0,
            'failed': 0,
        }
        self._stop_event = asyncio.Event()

    async def broadcast(self, event: StateChange) -> int:
        """
        Deliver one event to all sinks

        Returns:
            Number of sinks that accepted the message
        """
        message = self.formatter.format(event)
        failed: List[str] = []
        delivered = 0

        async def deliver(identity: str, sink: Sink):
            nonlocal delivered
            try:
                await sink.write(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Write to subscriber {identity} failed: {e!r}")
                failed.append(identity)

        await self.registry.for_each(deliver)

        for identity in failed:
            await self.registry.remove(identity)

        self.stats['events'] += 1
        self.stats['delivered'] += delivered
        self.stats['failed'] += len(failed)
        logger.debug(f"Broadcast {event}: {delivered} delivered, {len(failed)} dropped")
        return delivered

    async def run(self, queue: asyncio.Queue):
        """Consume events until stop() is called"""
        logger.info("Broadcaster started")

        while not self._stop_event.is_set():
            try:
                event = await asyncio.wait_for(queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue

            try:
                await self.broadcast(event)
            except Exception as e:
                logger.error(f"Broadcast error: {e}")
            finally:
                queue.task_done()

        logger.info("Broadcaster stopped")

    def stop(self):
        self._stop_event.set()
