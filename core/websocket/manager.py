"""
PosturePomo WebSocket Connection Manager

Tracks stream clients grouped into rooms ("session:<id>", "stretch:<id>").
Every client of a room receives the results of that room's event channel.
"""

import asyncio
import logging
import json
from typing import Dict, Set, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from core.config import settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageType(str, Enum):
    """Stream message types."""
    # Control
    PING = "ping"
    PONG = "pong"
    CONNECTED = "connected"
    ERROR = "error"

    # Estimator input from the client
    LANDMARKS = "landmarks"
    EXPRESSION = "expression"

    # Results pushed to the room
    POSTURE_UPDATE = "posture_update"
    EXPRESSION_UPDATE = "expression_update"
    MODE_CHANGED = "mode_changed"
    STRETCH_UPDATE = "stretch_update"


@dataclass
class WebSocketMessage:
    """Envelope for every stream message: {"type", "payload", "timestamp"}."""
    type: Any
    payload: Any = None
    timestamp: str = field(default_factory=lambda: _utcnow().isoformat())

    def to_json(self) -> str:
        msg_type = self.type.value if isinstance(self.type, MessageType) else self.type
        return json.dumps({"type": msg_type, "payload": self.payload, "timestamp": self.timestamp})

    @classmethod
    def from_json(cls, data: str) -> "WebSocketMessage":
        """Parse a client message; raises ValueError on anything but a JSON object."""
        parsed = json.loads(data)
        if not isinstance(parsed, dict):
            raise ValueError("Message must be a JSON object")
        return cls(
            type=parsed.get("type"),
            payload=parsed.get("payload"),
            timestamp=parsed.get("timestamp") or _utcnow().isoformat()
        )


@dataclass
class RoomClient:
    """A connected stream client and the room it listens to."""
    websocket: WebSocket
    client_id: str
    user_id: str
    room: str
    connected_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)

    @property
    def is_open(self) -> bool:
        return self.websocket.client_state == WebSocketState.CONNECTED


class ConnectionManager:
    """
    Room-based registry of WebSocket clients.

    A client joins exactly one room when it connects and leaves it on
    disconnect. A heartbeat task prunes clients whose socket has closed.
    """

    def __init__(self, max_connections: int = None):
        self.max_connections = max_connections or settings.WS_MAX_CONNECTIONS

        self._clients: Dict[str, RoomClient] = {}
        self._rooms: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._client_seq = 0

        logger.info(f"🔌 ConnectionManager initialized (max: {self.max_connections})")

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def join(self, websocket: WebSocket, room: str, user_id: str) -> RoomClient:
        """
        Accept the socket and add it to `room`.

        Raises:
            ConnectionError: server at capacity (socket closed with 1013)
        """
        if self.connection_count >= self.max_connections:
            await websocket.close(code=1013, reason="Server at capacity")
            raise ConnectionError("Maximum connections reached")

        await websocket.accept()

        async with self._lock:
            self._client_seq += 1
            client = RoomClient(
                websocket=websocket,
                client_id=f"{room}#{self._client_seq}",
                user_id=user_id,
                room=room
            )
            self._clients[client.client_id] = client
            self._rooms.setdefault(room, set()).add(client.client_id)

        logger.info(f"✅ Client {client.client_id} joined (user: {user_id})")

        await self.send(client.client_id, WebSocketMessage(
            type=MessageType.CONNECTED,
            payload={"client_id": client.client_id, "room": room, "user_id": user_id}
        ))
        return client

    async def leave(self, client_id: str) -> int:
        """
        Remove a client. Safe to call for an unknown id.

        Returns:
            Clients still in the client's room
        """
        async with self._lock:
            client = self._clients.pop(client_id, None)
            if client is None:
                return 0

            members = self._rooms.get(client.room, set())
            members.discard(client_id)
            if not members:
                self._rooms.pop(client.room, None)

        logger.info(f"👋 Client {client_id} left")
        return len(members)

    async def send(self, client_id: str, message: WebSocketMessage) -> bool:
        client = self._clients.get(client_id)
        if client is None or not client.is_open:
            return False

        try:
            await client.websocket.send_text(message.to_json())
        except Exception as e:
            logger.error(f"Failed to send to {client_id}: {e}")
            await self.leave(client_id)
            return False

        client.last_activity = _utcnow()
        return True

    async def broadcast(self, room: str, message: WebSocketMessage) -> int:
        """Send to every client in a room; returns how many received it."""
        delivered = 0
        for client_id in list(self._rooms.get(room, ())):
            if await self.send(client_id, message):
                delivered += 1
        return delivered

    def touch(self, client_id: str):
        client = self._clients.get(client_id)
        if client:
            client.last_activity = _utcnow()

    # ═══════════════════════════════════════════════════════════════════════════
    # HEARTBEAT
    # ═══════════════════════════════════════════════════════════════════════════

    async def start_heartbeat(self, interval: int = None):
        interval = interval or settings.WS_HEARTBEAT_INTERVAL

        async def prune_loop():
            while True:
                await asyncio.sleep(interval)
                await self._prune_closed()

        self._heartbeat_task = asyncio.create_task(prune_loop())
        logger.info(f"💓 Heartbeat started (interval: {interval}s)")

    async def stop_heartbeat(self):
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    async def _prune_closed(self):
        for client_id, client in list(self._clients.items()):
            if not client.is_open:
                await self.leave(client_id)

    def get_stats(self) -> dict:
        return {
            "total_connections": self.connection_count,
            "rooms": {room: len(members) for room, members in self._rooms.items()},
            "max_connections": self.max_connections
        }


# Global connection manager instance
connection_manager = ConnectionManager()
