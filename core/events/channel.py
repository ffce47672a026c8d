"""
PosturePomo Session Event Channel

Bounded per-session queue drained by a single consumer task. Landmark frames
and expression samples for one session are handled strictly in arrival order,
one at a time, so session state is never mutated concurrently.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from core.config import settings

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    LANDMARKS = "landmarks"
    EXPRESSION = "expression"
    STRETCH = "stretch"


@dataclass
class SessionEvent:
    """One estimator delivery for a session."""
    kind: EventKind
    payload: Any = None
    received_at: float = field(default_factory=time.time)


EventHandler = Callable[[SessionEvent], Optional[Dict[str, Any]]]
ResultCallback = Callable[[Dict[str, Any]], Awaitable[None]]


class SessionChannel:
    """
    Single-consumer event loop for one session.

    Features:
    - Bounded queue; publishing never blocks, a full queue drops the event
    - Handler runs synchronously on the consumer task
    - Idempotent stop that discards queued events without processing them
    """

    def __init__(
        self,
        session_id: str,
        handler: EventHandler,
        on_result: Optional[ResultCallback] = None,
        maxsize: Optional[int] = None
    ):
        self.session_id = session_id
        self.handler = handler
        self.on_result = on_result
        self.maxsize = maxsize or settings.EVENT_QUEUE_SIZE

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=self.maxsize)
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

        # Stats
        self._processed_count = 0
        self._dropped_count = 0
        self._failed_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start the consumer task on the running event loop."""
        if self._stopped:
            raise RuntimeError(f"Channel for session {self.session_id} was stopped")
        if self.is_running:
            return
        self._task = asyncio.create_task(self._consume())
        logger.debug(f"Channel started for session {self.session_id}")

    def publish(self, event: SessionEvent) -> bool:
        """
        Enqueue an event without waiting.

        Returns:
            False if the channel is stopped or the queue is full
        """
        if self._stopped:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self._dropped_count += 1
            logger.warning(
                f"⚠️ Channel {self.session_id} full ({self.maxsize}), dropped {event.kind.value} event"
            )
            return False

    async def _consume(self):
        while True:
            event = await self._queue.get()
            try:
                result = self.handler(event)
                self._processed_count += 1
            except Exception as e:
                self._failed_count += 1
                logger.error(f"Event {event.kind.value} failed for session {self.session_id}: {e}")
                result = {"type": "error", "kind": event.kind.value, "message": str(e)}
            finally:
                self._queue.task_done()

            if result is not None and self.on_result is not None:
                try:
                    await self.on_result(result)
                except Exception as e:
                    logger.error(f"Result delivery failed for session {self.session_id}: {e}")

    async def drain(self):
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def stop(self):
        """Stop consuming; queued events are discarded. Safe to call repeatedly."""
        if self._stopped:
            return
        self._stopped = True

        while not self._queue.empty():
            try:
                self._queue.get_nowait()
                self._queue.task_done()
            except asyncio.QueueEmpty:
                break

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.debug(f"Channel stopped for session {self.session_id}")

    def get_stats(self) -> dict:
        return {
            "session_id": self.session_id,
            "running": self.is_running,
            "queue_size": self._queue.qsize(),
            "queue_capacity": self.maxsize,
            "processed": self._processed_count,
            "dropped": self._dropped_count,
            "failed": self._failed_count,
        }


class ChannelRegistry:
    """One SessionChannel per session id."""

    def __init__(self):
        self._channels: Dict[str, SessionChannel] = {}

    def open(
        self,
        session_id: str,
        handler: EventHandler,
        on_result: Optional[ResultCallback] = None
    ) -> SessionChannel:
        """Return the running channel for a session, creating it if needed."""
        channel = self._channels.get(session_id)
        if channel is None:
            channel = SessionChannel(session_id, handler, on_result=on_result)
            self._channels[session_id] = channel
            channel.start()
        return channel

    def get(self, session_id: str) -> Optional[SessionChannel]:
        return self._channels.get(session_id)

    async def close(self, session_id: str) -> bool:
        channel = self._channels.pop(session_id, None)
        if channel is None:
            return False
        await channel.stop()
        return True

    async def shutdown(self):
        for session_id in list(self._channels.keys()):
            await self.close(session_id)
        logger.info("All session channels closed")

    def get_stats(self) -> dict:
        return {
            "open_channels": len(self._channels),
            "channels": [c.get_stats() for c in self._channels.values()],
        }


# Global channel registry
channel_registry = ChannelRegistry()
