"""
PinMon Subscriber Registry
Serialized set of live notification sinks.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List

from .sinks import Sink

logger = logging.getLogger(__name__)


class SubscriberRegistry:
    """
    Subscriber Registry

    Holds the live sinks keyed by identity. add, remove and for_each all go
    through one lock, so no caller ever sees a half registered entry and no
    sink is written to after it was removed. The backing dict is never
    handed out.
    """

    def __init__(self):
        self._sinks: Dict[str, Sink] = {}
        self._lock = asyncio.Lock()

    async def add(self, sink: Sink):
        """
        Register a sink

        Raises:
            ValueError: if a sink with the same identity is already registered
        """
        async with self._lock:
            if sink.identity in self._sinks:
                raise ValueError(f"Subscriber already registered: {sink.identity}")
            self._sinks[sink.identity] = sink
        logger.info(f"Subscriber added: {sink.identity}")

    async def remove(self, identity: str) -> bool:
        """
        Deregister and close a sink

        Removing an unknown identity is a no-op. The sink leaves the registry
        under the lock but is closed after releasing it, so a slow close
        never delays add or for_each.

        Returns:
            True if a sink was removed
        """
        async with self._lock:
            sink = self._sinks.pop(identity, None)
        if sink is None:
            return False
        try:
            await sink.close()
        except Exception as e:
            logger.debug(f"Error closing subscriber {identity}: {e}")
        logger.info(f"Subscriber removed: {identity}")
        return True

    async def for_each(self, fn: Callable[[str, Sink], Awaitable[None]]):
        """
        Apply fn to every registered sink

        Runs over a snapshot while holding the lock. Registrations made
        meanwhile wait and become visible to the next call. fn must not call
        back into the registry.
        """
        async with self._lock:
            for identity, sink in list(self._sinks.items()):
                await fn(identity, sink)

    async def close_all(self):
        """Remove and close every sink"""
        for identity in self.identities():
            await self.remove(identity)

    def identities(self) -> List[str]:
        return list(self._sinks)

    def __contains__(self, identity: str) -> bool:
        return identity in self._sinks

    def __len__(self) -> int:
        return len(self._sinks)
