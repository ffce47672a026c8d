"""
PosturePomo Events Module
"""

from .channel import (
    ChannelRegistry,
    EventKind,
    SessionChannel,
    SessionEvent,
    channel_registry
)

__all__ = [
    'ChannelRegistry',
    'EventKind',
    'SessionChannel',
    'SessionEvent',
    'channel_registry'
]
