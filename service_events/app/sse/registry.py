"""
In-memory registry of open push channels, keyed by user identity.

One registry exists per process and is handed to the lifecycle handler and the
publisher at startup. It is not shared across instances: running more than one
replica requires a shared pub/sub backend in front of it.
"""

from typing import Any, Dict, List, Set

from shared.logging import get_logger

from .channel import SSEChannel


class ConnectionRegistry:
    """Tracks which channels are currently open for each user.

    All operations are synchronous and never yield to the event loop, so the
    check-then-delete in :meth:`unregister` cannot interleave with a
    concurrent :meth:`register` for the same user.
    """

    def __init__(self):
        self.logger = get_logger("events.sse.registry")
        self._channels: Dict[str, Set[SSEChannel]] = {}

    def register(self, user_id: str, channel: SSEChannel) -> None:
        """Add a channel to the user's set, creating the set if needed."""
        if not user_id:
            return
        channels = self._channels.setdefault(user_id, set())
        channels.add(channel)

        self.logger.debug(
            "Channel registered",
            user_id=user_id,
            channel_id=channel.channel_id,
            total_for_user=len(channels),
            total_users=len(self._channels)
        )

    def unregister(self, user_id: str, channel: SSEChannel) -> bool:
        """Remove a channel; drops the user once their set is empty.

        Returns False when the channel was not registered, which makes a
        repeated teardown a no-op.
        """
        if not user_id:
            return False
        channels = self._channels.get(user_id)
        if channels is None or channel not in channels:
            return False

        channels.discard(channel)
        if not channels:
            del self._channels[user_id]

        self.logger.debug(
            "Channel unregistered",
            user_id=user_id,
            channel_id=channel.channel_id,
            remaining_for_user=len(channels),
            total_users=len(self._channels)
        )
        return True

    def get_channels(self, user_id: str) -> Set[SSEChannel]:
        """Snapshot of a user's channels; empty when the user is offline."""
        return set(self._channels.get(user_id, ()))

    def is_registered(self, user_id: str, channel: SSEChannel) -> bool:
        return channel in self._channels.get(user_id, ())

    def list_users(self) -> List[str]:
        """User identities with at least one open channel."""
        return list(self._channels.keys())

    def all_channels(self) -> List[SSEChannel]:
        return [channel for channels in self._channels.values() for channel in channels]

    def channel_count(self) -> int:
        return sum(len(channels) for channels in self._channels.values())

    def get_stats(self) -> Dict[str, Any]:
        """Registry statistics for diagnostics."""
        return {
            "connected_users": len(self._channels),
            "open_channels": self.channel_count(),
            "channels_per_user": {
                user_id: len(channels) for user_id, channels in self._channels.items()
            }
        }

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._channels
