"""
Collaborator interfaces the emitter depends on.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Set, runtime_checkable


@dataclass(frozen=True)
class GroupRecipients:
    """Members of a group currently entitled to see its events."""
    tag: str
    owner_id: Optional[str]
    member_ids: Set[str] = field(default_factory=set)


@dataclass(frozen=True)
class ActorProfile:
    """Server-side profile fields used to build the actor projection."""
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    custom_picture: Optional[str] = None

    @property
    def has_custom_picture(self) -> bool:
        return bool(self.custom_picture)


@runtime_checkable
class RecipientResolver(Protocol):
    """Computes who may receive an event from durable membership state."""

    async def resolve_group_recipients(self, group_tag: str) -> Optional[GroupRecipients]:
        """Owner plus accepted collaborators; None if the group does not exist."""
        ...

    async def resolve_task_recipients(self, task: Dict[str, Any]) -> Set[str]:
        """Task owner plus current assignees."""
        ...


@runtime_checkable
class ActorProfileLookup(Protocol):
    """Reads the acting user's current profile."""

    async def get_actor_profile(self, user_id: str) -> Optional[ActorProfile]:
        ...
