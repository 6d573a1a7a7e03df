"""
PinMon - GPIO Input Monitor
Watches digital input lines and broadcasts state changes to network listeners.
"""

__version__ = "1.0.0"

from .core.broadcaster import Broadcaster
from .core.config import Config, ConfigError
from .core.events import ChangeFormatter, StateChange
from .core.registry import SubscriberRegistry
from .core.sampler import Sampler
from .core.server import SubscriberServer
from .protocols.gpio import GPIOReader, GPIOSimulator
from .server import PinMonitorServer

__all__ = [
    "Broadcaster",
    "ChangeFormatter",
    "Config",
    "ConfigError",
    "GPIOReader",
    "GPIOSimulator",
    "PinMonitorServer",
    "Sampler",
    "StateChange",
    "SubscriberRegistry",
    "SubscriberServer",
]
