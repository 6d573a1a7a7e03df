"""
PinMon Core Module
Edge detection, subscriber registry and broadcast pipeline.
"""

from .config import Config, ConfigError
from .events import StateChange, ChangeFormatter
from .sampler import Sampler
from .registry import SubscriberRegistry
from .broadcaster import Broadcaster
from .server import SubscriberServer

__all__ = [
    "Config",
    "ConfigError",
    "StateChange",
    "ChangeFormatter",
    "Sampler",
    "SubscriberRegistry",
    "Broadcaster",
    "SubscriberServer",
]
