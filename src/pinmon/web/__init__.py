"""
PinMon Web Module
aiohttp WebSocket feed and status API.
"""

from .feed import FeedServer

__all__ = ["FeedServer"]
