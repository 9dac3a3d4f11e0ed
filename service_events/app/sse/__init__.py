"""
Server-Sent Events channels, registry, publisher and lifecycle handling.
"""

from .channel import SSEChannel, format_event, serialize_payload
from .registry import ConnectionRegistry
from .publisher import Publisher
from .lifecycle import ChannelLifecycleHandler

__all__ = [
    "SSEChannel",
    "ConnectionRegistry",
    "Publisher",
    "ChannelLifecycleHandler",
    "format_event",
    "serialize_payload",
]
