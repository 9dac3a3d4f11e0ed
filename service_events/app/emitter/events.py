"""
Domain event types pushed to clients.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

PERSONAL_GROUP_TAG = "@personal"


class EventKind(str, Enum):
    """Event names as they appear on the wire."""
    ACTIVITY = "activity"
    NOTIFICATION = "notification"
    NOTIFICATION_REMOVED = "notification_removed"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    CONNECTED = "connected"


def normalize_user_id(value: Any) -> Optional[str]:
    """Stringify and strip a user id; empty values become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_user_ids(values: Optional[List[Any]]) -> List[str]:
    """Normalize a list of user ids, dropping blanks and duplicates in order."""
    seen: Set[str] = set()
    result: List[str] = []
    for value in values or []:
        user_id = normalize_user_id(value)
        if user_id and user_id not in seen:
            seen.add(user_id)
            result.append(user_id)
    return result


@dataclass
class ActivitySubject:
    """An activity document (task created/moved/deleted, member changes)."""
    activity: Dict[str, Any]

    @property
    def group_tag(self) -> Optional[str]:
        tag = self.activity.get("groupTag")
        return tag.strip().lower() if isinstance(tag, str) and tag.strip() else None

    @property
    def is_personal(self) -> bool:
        return self.group_tag in (None, PERSONAL_GROUP_TAG)

    @property
    def author_id(self) -> Optional[str]:
        return normalize_user_id(self.activity.get("userId"))


@dataclass
class TaskSubject:
    """A task document plus the assignment delta of the mutation."""
    task: Dict[str, Any]
    added_assignees: List[str] = field(default_factory=list)
    removed_assignees: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.added_assignees = normalize_user_ids(self.added_assignees)
        self.removed_assignees = normalize_user_ids(self.removed_assignees)

    @property
    def task_id(self) -> Optional[str]:
        value = self.task.get("_id", self.task.get("id"))
        return str(value) if value is not None else None

    @property
    def owner_id(self) -> Optional[str]:
        return normalize_user_id(self.task.get("userId"))

    @property
    def assignees(self) -> List[str]:
        return normalize_user_ids(self.task.get("assignedTo"))


@dataclass
class InvitationSubject:
    """A group invitation addressed to a single user."""
    group: Dict[str, Any]
    invitee_id: str

    def __post_init__(self):
        self.invitee_id = normalize_user_id(self.invitee_id) or ""

    @property
    def group_id(self) -> Optional[str]:
        value = self.group.get("_id", self.group.get("id"))
        return str(value) if value is not None else None

    @property
    def notification_id(self) -> str:
        return f"invitation_{self.group_id}"

    def invited_at(self) -> Any:
        for collaborator in self.group.get("collaborators") or []:
            if normalize_user_id(collaborator.get("userId")) == self.invitee_id:
                return collaborator.get("invitedAt") or self.group.get("createdAt")
        return self.group.get("createdAt")


Subject = Union[ActivitySubject, TaskSubject, InvitationSubject]


@dataclass
class DomainEvent:
    """An in-process description of a state change eligible for push."""
    kind: EventKind
    subject: Subject
    actor_id: Optional[str] = None

    def __post_init__(self):
        self.kind = EventKind(self.kind)
        self.actor_id = normalize_user_id(self.actor_id)


@dataclass
class EmissionResult:
    """Outcome of one emission attempt."""
    kind: EventKind
    recipients: Set[str] = field(default_factory=set)
    delivered: Set[str] = field(default_factory=set)
    failed: Set[str] = field(default_factory=set)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
