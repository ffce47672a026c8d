"""
PosturePomo WebSocket Module

Room-based connection registry for the session and stretch streams.
"""

from .manager import (
    ConnectionManager,
    RoomClient,
    MessageType,
    WebSocketMessage,
    connection_manager,
)

__all__ = [
    'ConnectionManager',
    'RoomClient',
    'MessageType',
    'WebSocketMessage',
    'connection_manager',
]
