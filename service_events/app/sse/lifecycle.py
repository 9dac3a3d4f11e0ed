"""
Lifecycle of long-lived push connections: open, heartbeat, teardown.
"""

import asyncio
import time
from typing import AsyncIterator, Dict, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .channel import HEARTBEAT_FRAME, SSEChannel, serialize_payload
from .registry import ConnectionRegistry


class ChannelLifecycleHandler:
    """Accepts push channels, keeps them alive and tears them down exactly once."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        heartbeat_interval: float = 15.0,
        max_missed_heartbeats: int = 3,
        queue_size: int = 256,
        metrics: Optional[MetricsCollector] = None
    ):
        self.registry = registry
        self.heartbeat_interval = heartbeat_interval
        self.max_missed_heartbeats = max(1, max_missed_heartbeats)
        self.queue_size = queue_size
        self.metrics = metrics
        self.logger = get_logger("events.sse.lifecycle")

        self._heartbeats: Dict[str, asyncio.Task] = {}
        self._open: Dict[str, SSEChannel] = {}

    def open(self, user_id: str) -> SSEChannel:
        """Create a channel for an authenticated user and start keeping it alive.

        The ``connected`` frame is queued before the channel becomes visible
        to publishers, so it is always the first frame on the wire.
        """
        channel = SSEChannel(user_id=user_id, queue_size=self.queue_size)
        channel.send("connected", serialize_payload({"connected": True, "userId": user_id}))

        self.registry.register(user_id, channel)
        self._open[channel.channel_id] = channel
        self._heartbeats[channel.channel_id] = asyncio.create_task(
            self._heartbeat_loop(channel),
            name=f"sse-heartbeat-{channel.channel_id}"
        )
        self._update_gauge()

        self.logger.info(
            "Channel opened",
            user_id=user_id,
            channel_id=channel.channel_id,
            channels_for_user=len(self.registry.get_channels(user_id))
        )
        return channel

    def close(self, channel: SSEChannel, reason: str = "disconnect") -> bool:
        """Stop the heartbeat, unregister and release the channel.

        Returns False if the channel was already torn down.
        """
        if self._open.pop(channel.channel_id, None) is None:
            return False

        heartbeat = self._heartbeats.pop(channel.channel_id, None)
        if heartbeat is not None and heartbeat is not asyncio.current_task():
            heartbeat.cancel()

        self.registry.unregister(channel.user_id, channel)
        channel.close()
        self._update_gauge()

        lifetime = time.time() - channel.created_at.timestamp()
        if self.metrics:
            self.metrics.observe_histogram("channel_duration_seconds", lifetime)

        self.logger.info(
            "Channel closed",
            user_id=channel.user_id,
            channel_id=channel.channel_id,
            reason=reason,
            lifetime_seconds=round(lifetime, 2)
        )
        return True

    async def stream(self, channel: SSEChannel) -> AsyncIterator[str]:
        """Yield frames for the HTTP response; tears the channel down on exit."""
        try:
            async for frame in channel.frames():
                yield frame
        finally:
            self.close(channel, reason="stream_ended")

    async def shutdown(self) -> None:
        """Tear down every open channel (service stop)."""
        channels = list(self._open.values())
        pending = [task for task in self._heartbeats.values() if not task.done()]
        for channel in channels:
            self.close(channel, reason="shutdown")

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if channels:
            self.logger.info("Closed open channels on shutdown", count=len(channels))

    def is_open(self, channel: SSEChannel) -> bool:
        return channel.channel_id in self._open

    def heartbeat_task(self, channel: SSEChannel) -> Optional[asyncio.Task]:
        return self._heartbeats.get(channel.channel_id)

    @property
    def open_count(self) -> int:
        return len(self._open)

    async def _heartbeat_loop(self, channel: SSEChannel) -> None:
        missed = 0
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                channel.write(HEARTBEAT_FRAME)
            except Exception as exc:
                missed += 1
                if self.metrics:
                    self.metrics.increment_counter("channel_write_failures_total", source="heartbeat")
                self.logger.warning(
                    "Heartbeat write failed",
                    user_id=channel.user_id,
                    channel_id=channel.channel_id,
                    missed=missed,
                    error=str(exc)
                )
                if missed >= self.max_missed_heartbeats:
                    self.close(channel, reason="heartbeat_failed")
                    return
            else:
                missed = 0

    def _update_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("active_channels", self.registry.channel_count())
