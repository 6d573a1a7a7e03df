"""
PinMon Sampler Module
Polls input lines and turns raw samples into state change events.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from .events import StateChange

logger = logging.getLogger(__name__)


class Sampler:
    """
    Line Sampler and Edge Detector

    Sweeps all configured pins at a fixed interval and emits a StateChange
    only when a sample differs from the last recorded sample of that pin.
    The first sample of a pin is recorded without emitting anything.

    A change that reverts between two sweeps is not observed.
    """

    def __init__(self, reader, pins: Iterable[int], interval: float = 0.1,
                 queue: Optional[asyncio.Queue] = None, backpressure: str = "block",
                 pull_up: bool = True):
        """
        Initialize Sampler

        Args:
            reader: Line capability with configure_input, enable_pull_up and read
            pins: Pin ids to monitor
            interval: Seconds to sleep between sweeps
            queue: Event channel; a fresh single slot queue when omitted
            backpressure: 'block' or 'drop_oldest' when the queue is full
            pull_up: Enable pull-up resistors during setup
        """
        self.reader = reader
        self.pins = sorted(set(pins))
        self.interval = interval
        self.queue = queue if queue is not None else asyncio.Queue(maxsize=1)
        self.backpressure = backpressure
        self.pull_up = pull_up

        self.last_states: Dict[int, int] = {}
        self.is_setup = False
        self.stats = {
            'sweeps': 0,
            'events': 0,
            'read_errors': 0,
            'dropped': 0,
        }
        self._stop_event = asyncio.Event()

    def setup(self):
        """Configure every monitored pin once"""
        for pin in self.pins:
            self.reader.configure_input(pin)
            if self.pull_up:
                self.reader.enable_pull_up(pin)
        self.is_setup = True
        logger.info(f"Sampler configured {len(self.pins)} pins: {self.pins}")

    def update(self, pin: int) -> Optional[StateChange]:
        """
        Sample a single pin

        Returns:
            StateChange if the pin changed since its last sample, else None
        """
        try:
            now_state = int(self.reader.read(pin))
        except Exception as e:
            self.stats['read_errors'] += 1
            logger.warning(f"Read failed on pin {pin}, treating as no change: {e}")
            return None

        if pin not in self.last_states:
            # previously unknown state
            self.last_states[pin] = now_state
            return None

        if now_state == self.last_states[pin]:
            return None

        self.last_states[pin] = now_state
        return StateChange(pin=pin, state=now_state)

    def sweep(self) -> List[StateChange]:
        """Sample every pin once, in ascending pin order"""
        changes = []
        for pin in self.pins:
            change = self.update(pin)
            if change is not None:
                changes.append(change)
        self.stats['sweeps'] += 1
        return changes

    async def publish(self, event: StateChange):
        """Hand an event to the broadcaster according to the backpressure policy"""
        if self.backpressure == "drop_oldest" and self.queue.full():
            try:
                dropped = self.queue.get_nowait()
                self.queue.task_done()
                self.stats['dropped'] += 1
                logger.warning(f"Event queue full, dropped {dropped}")
            except asyncio.QueueEmpty:
                pass
            self.queue.put_nowait(event)
        else:
            await self.queue.put(event)

        self.stats['events'] += 1
        logger.debug(f"Published {event}")

    async def run(self):
        """Main polling loop, runs until stop() is called"""
        if not self.is_setup:
            self.setup()

        logger.info(f"Sampler started - interval {self.interval * 1000:.0f} ms")

        while not self._stop_event.is_set():
            try:
                for event in self.sweep():
                    await self.publish(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Sampler sweep error: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Sampler stopped")

    def stop(self):
        """Stop the polling loop after the current sweep"""
        self._stop_event.set()

    @property
    def running(self) -> bool:
        return not self._stop_event.is_set()

    def snapshot(self) -> Dict[int, int]:
        """Copy of the last known state of every sampled pin"""
        return dict(self.last_states)
