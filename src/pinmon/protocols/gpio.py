"""
PinMon GPIO Protocol Handler
Input line reading with Raspberry Pi hardware and simulator support.
"""

import logging
from collections import deque
from typing import Dict, Any, Iterable, Optional
from ..core.config import Config

logger = logging.getLogger(__name__)


class GPIOReadError(Exception):
    """Raised when a line cannot be sampled"""


class GPIOReader:
    """
    GPIO Line Reader

    Provides the line capability used by the sampler: configure a pin as
    input, enable its pull-up resistor and read its current level. Works
    against real Raspberry Pi hardware through RPi.GPIO or against
    GPIOSimulator for development and testing.
    """

    def __init__(self, config: Config = None):
        """Initialize GPIO Reader"""
        self.config = config or Config.from_env()
        self.simulator = None
        self.gpio = None
        self.pins_setup = {}

        if self.config.gpio_mode == "SIMULATOR":
            self._init_simulator()
        else:
            self._init_rpi_gpio()

        logger.info(f"GPIO Reader initialized in {self.mode} mode")

    def _init_simulator(self):
        """Initialize GPIO simulator"""
        self.simulator = GPIOSimulator()
        self.mode = "SIMULATOR"

    def _init_rpi_gpio(self):
        """Initialize Raspberry Pi GPIO"""
        try:
            import RPi.GPIO as GPIO
        except (ImportError, RuntimeError) as e:
            raise RuntimeError(
                f"Cannot open GPIO in {self.config.gpio_mode} mode: {e}. "
                "Install RPi.GPIO or run with --simulator"
            )

        if self.config.gpio_mode == "BCM":
            GPIO.setmode(GPIO.BCM)
        else:
            GPIO.setmode(GPIO.BOARD)

        GPIO.setwarnings(False)
        self.gpio = GPIO
        self.mode = self.config.gpio_mode

    def configure_input(self, pin: int):
        """Configure pin as input"""
        if self.simulator:
            self.simulator.setup(pin, "IN")
        else:
            self.gpio.setup(pin, self.gpio.IN)

        self.pins_setup[pin] = {'direction': 'IN', 'pull_up_down': 'PUD_OFF'}
        logger.debug(f"Pin {pin} configured as input")

    def enable_pull_up(self, pin: int):
        """Enable the internal pull-up resistor on an input pin"""
        if self.simulator:
            self.simulator.setup(pin, "IN", "PUD_UP")
        else:
            # RPi.GPIO selects the pull resistor when the channel is set up
            self.gpio.setup(pin, self.gpio.IN, pull_up_down=self.gpio.PUD_UP)

        self.pins_setup.setdefault(pin, {'direction': 'IN'})['pull_up_down'] = 'PUD_UP'
        logger.debug(f"Pin {pin} pull-up enabled")

    def read(self, pin: int) -> int:
        """
        Read current level of a pin

        Returns:
            0 or 1

        Raises:
            GPIOReadError: if the pin cannot be sampled
        """
        try:
            if self.simulator:
                return self.simulator.input(pin)
            return int(self.gpio.input(pin))
        except GPIOReadError:
            raise
        except Exception as e:
            raise GPIOReadError(f"Failed to read pin {pin}: {e}")

    def get_status(self) -> Dict[str, Any]:
        """Get GPIO reader status"""
        return {
            'mode': self.mode,
            'pins_setup': {pin: dict(info) for pin, info in self.pins_setup.items()},
            'simulator_active': self.simulator is not None,
        }

    def cleanup(self):
        """Cleanup GPIO resources"""
        try:
            if self.simulator:
                self.simulator.cleanup()
            elif self.pins_setup:
                self.gpio.cleanup(list(self.pins_setup))
            self.pins_setup.clear()
        except Exception as e:
            logger.error(f"GPIO cleanup error: {e}")


class GPIOSimulator:
    """
    GPIO Simulator for development and testing

    Inputs idle high when the pull-up is enabled and low otherwise. Tests
    drive them with set_input(), queue exact sample sequences with script()
    or inject read faults with fail_reads().
    """

    def __init__(self):
        """Initialize GPIO simulator"""
        self.pins = {}
        logger.info("GPIO Simulator initialized")

    def setup(self, pin: int, direction: str, pull_up_down: str = "PUD_OFF"):
        """Setup simulated GPIO pin"""
        pull = pull_up_down.upper()
        existing = self.pins.get(pin)
        self.pins[pin] = {
            'direction': direction.upper(),
            'pull_up_down': pull,
            'value': 1 if pull == "PUD_UP" else 0,
            'script': existing['script'] if existing else deque(),
            'failures': existing['failures'] if existing else 0,
        }
        return True

    def _pin(self, pin: int) -> Dict[str, Any]:
        if pin not in self.pins:
            self.setup(pin, "IN")
        return self.pins[pin]

    def set_input(self, pin: int, value: int):
        """Drive a simulated input to a fixed level"""
        entry = self._pin(pin)
        entry['value'] = int(value)
        entry['script'].clear()
        logger.debug(f"GPIO SIM: Pin {pin} driven to {value}")

    def script(self, pin: int, samples: Iterable[int]):
        """Queue samples returned by successive reads; the last one sticks"""
        self._pin(pin)['script'].extend(int(s) for s in samples)

    def fail_reads(self, pin: int, count: int = 1):
        """Make the next count reads of pin raise GPIOReadError"""
        self._pin(pin)['failures'] += count

    def input(self, pin: int) -> int:
        """Get simulated GPIO pin value"""
        entry = self._pin(pin)
        if entry['failures'] > 0:
            entry['failures'] -= 1
            raise GPIOReadError(f"Simulated read fault on pin {pin}")
        if entry['script']:
            entry['value'] = entry['script'].popleft()
        return entry['value']

    def value(self, pin: int) -> Optional[int]:
        entry = self.pins.get(pin)
        return entry['value'] if entry else None

    def cleanup(self):
        """Cleanup simulated GPIO"""
        self.pins.clear()
        logger.debug("GPIO SIM: Cleaned up")
