"""
MongoDB-backed recipient resolver and actor profile lookup.
"""

from typing import Any, Dict, Optional, Set

from bson import ObjectId
from pymongo import AsyncMongoClient

from shared.logging import get_logger
from shared.errors import ExternalServiceError

from ..emitter.events import normalize_user_id, normalize_user_ids
from .base import ActorProfile, GroupRecipients

ACCEPTED = "accepted"


def _as_object_id(value: Any) -> Any:
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


class MongoRecipientResolver:
    """Resolves recipients and actor profiles from the Efficio collections.

    Reads ``groups`` (tag, owner, collaborators), ``tasks`` (userId,
    assignedTo) and ``users`` (auth0Id, name, email, customPicture). Nothing
    is cached: membership is read fresh for every event.
    """

    def __init__(self, mongo_url: str, database: str, timeout_ms: int = 5000, client: Optional[Any] = None):
        self.logger = get_logger("events.resolver.mongo")
        self._owns_client = client is None
        self.client = client if client is not None else AsyncMongoClient(
            mongo_url,
            serverSelectionTimeoutMS=timeout_ms,
            tz_aware=True
        )
        self.db = self.client[database]
        self.groups = self.db["groups"]
        self.tasks = self.db["tasks"]
        self.users = self.db["users"]

    async def close(self) -> None:
        if self._owns_client:
            await self.client.close()

    async def ping(self) -> str:
        """Return 'ok' if the database answers, otherwise 'error'."""
        try:
            await self.client.admin.command("ping")
            return "ok"
        except Exception as exc:
            self.logger.error("MongoDB ping failed", error=str(exc))
            return "error"

    async def resolve_group_recipients(self, group_tag: str) -> Optional[GroupRecipients]:
        tag = (group_tag or "").strip().lower()
        if not tag:
            return None

        try:
            group = await self.groups.find_one(
                {"tag": tag},
                {"tag": 1, "owner": 1, "collaborators.userId": 1, "collaborators.status": 1}
            )
        except Exception as exc:
            raise ExternalServiceError("mongodb", "group lookup failed", {"tag": tag, "error": str(exc)}) from exc

        if group is None:
            self.logger.debug("Group not found for recipients", group_tag=tag)
            return None

        owner_id = normalize_user_id(group.get("owner"))
        members: Set[str] = {owner_id} if owner_id else set()
        for collaborator in group.get("collaborators") or []:
            user_id = normalize_user_id(collaborator.get("userId"))
            if user_id and collaborator.get("status") == ACCEPTED:
                members.add(user_id)

        return GroupRecipients(tag=tag, owner_id=owner_id, member_ids=members)

    async def resolve_task_recipients(self, task: Dict[str, Any]) -> Set[str]:
        current = task
        task_id = task.get("_id", task.get("id"))
        if task_id is not None:
            try:
                stored = await self.tasks.find_one(
                    {"_id": _as_object_id(task_id)},
                    {"userId": 1, "assignedTo": 1}
                )
            except Exception as exc:
                raise ExternalServiceError("mongodb", "task lookup failed", {"task_id": str(task_id), "error": str(exc)}) from exc
            # A deleted task is gone from the store; use the caller's snapshot.
            if stored is not None:
                current = stored

        recipients = set(normalize_user_ids(current.get("assignedTo")))
        owner_id = normalize_user_id(current.get("userId"))
        if owner_id:
            recipients.add(owner_id)
        return recipients

    async def get_actor_profile(self, user_id: str) -> Optional[ActorProfile]:
        if not user_id:
            return None
        try:
            user = await self.users.find_one(
                {"auth0Id": user_id},
                {"auth0Id": 1, "name": 1, "email": 1, "customPicture": 1}
            )
        except Exception as exc:
            raise ExternalServiceError("mongodb", "user lookup failed", {"user_id": user_id, "error": str(exc)}) from exc

        if user is None:
            return None
        return ActorProfile(
            user_id=user_id,
            name=user.get("name") or None,
            email=user.get("email") or None,
            custom_picture=user.get("customPicture") or None
        )
