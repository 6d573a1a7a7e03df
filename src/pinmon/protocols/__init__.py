"""
PinMon Protocols Module
Line readers for GPIO hardware and the simulator.
"""

from .gpio import GPIOReader, GPIOSimulator, GPIOReadError

__all__ = ["GPIOReader", "GPIOSimulator", "GPIOReadError"]
