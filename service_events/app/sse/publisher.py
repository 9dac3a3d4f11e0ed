"""
Publisher: writes named events to every open channel of a user.

Delivery is best-effort. A user with no open channel simply misses the event;
clients recover by re-fetching state from the API.
"""

from typing import Any, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .channel import SSEChannel, format_event, serialize_payload
from .registry import ConnectionRegistry


class Publisher:
    """Fan-out of event frames onto registered channels."""

    def __init__(self, registry: ConnectionRegistry, metrics: Optional[MetricsCollector] = None):
        self.registry = registry
        self.metrics = metrics
        self.logger = get_logger("events.sse.publisher")

    def publish(self, user_id: str, event_name: str, payload: Any) -> bool:
        """Deliver one event to all of a user's channels.

        Returns True if at least one channel accepted the frame. Channels that
        fail are unregistered and closed; the remaining ones still receive it.
        """
        if not user_id:
            return False
        channels = self.registry.get_channels(user_id)
        if not channels:
            return False

        frame = format_event(event_name, serialize_payload(payload))
        delivered = False
        for channel in channels:
            if self._write(channel, frame, event_name):
                delivered = True

        self.logger.debug(
            "Event published",
            user_id=user_id,
            event_name=event_name,
            channels=len(channels),
            delivered=delivered
        )
        return delivered

    def broadcast(self, event_name: str, payload: Any) -> int:
        """Deliver one event to every open channel. Operational use only."""
        frame = format_event(event_name, serialize_payload(payload))
        sent_count = 0
        for channel in self.registry.all_channels():
            if self._write(channel, frame, event_name):
                sent_count += 1

        self.logger.info("Event broadcast", event_name=event_name, sent_count=sent_count)
        return sent_count

    def _write(self, channel: SSEChannel, frame: str, event_name: str) -> bool:
        try:
            channel.write(frame)
        except Exception as exc:
            self.logger.warning(
                "Dropping broken channel",
                user_id=channel.user_id,
                channel_id=channel.channel_id,
                event_name=event_name,
                error=str(exc)
            )
            self.registry.unregister(channel.user_id, channel)
            channel.close()
            if self.metrics:
                self.metrics.increment_counter("channel_write_failures_total", source="publish")
            return False

        if self.metrics:
            self.metrics.increment_counter("events_published_total", event=event_name)
        return True
