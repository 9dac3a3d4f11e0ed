"""
Push channel: one open server-to-client Server-Sent Events connection.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from shared.errors import ChannelWriteError

HEARTBEAT_FRAME = ": ping\n\n"


def serialize_payload(payload: Any) -> str:
    """Serialize an event payload once; strings are sent verbatim."""
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, default=str, separators=(",", ":"))


def format_event(event_name: str, data: str) -> str:
    """Format a named SSE frame from already-serialized data."""
    return f"event: {event_name}\ndata: {data}\n\n"


@dataclass(eq=False)
class SSEChannel:
    """A single open push connection owned by one user.

    Frames are queued without blocking; the HTTP response drains them via
    :meth:`frames`. Identity semantics (``eq=False``) let channels live in sets.
    """

    user_id: str
    queue_size: int = 256
    channel_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)
    last_write_at: Optional[datetime] = None
    closed: bool = False

    def __post_init__(self):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def write(self, frame: str) -> None:
        """Enqueue a raw frame; raises ChannelWriteError if it cannot be accepted."""
        if self.closed:
            raise ChannelWriteError(
                "Channel is closed",
                details={"channel_id": self.channel_id, "user_id": self.user_id}
            )
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull as exc:
            raise ChannelWriteError(
                "Channel queue is full",
                details={"channel_id": self.channel_id, "user_id": self.user_id}
            ) from exc
        self.last_write_at = datetime.now()

    def send(self, event_name: str, data: str) -> None:
        """Write a named event with pre-serialized data."""
        self.write(format_event(event_name, data))

    def close(self) -> None:
        """Mark the channel closed and wake the reader. Safe to call twice."""
        if self.closed:
            return
        self.closed = True
        # Pending frames are dropped; the reader only needs the sentinel.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[str]:
        """Yield queued frames until the channel is closed."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame
