"""
Activity/notification emitter.

Turns one domain mutation into zero or more per-recipient pushes:
resolve recipients, drop the actor, build the base payload, project it per
recipient, publish. Emission is best-effort and never transactional with the
write that triggered it.
"""

import asyncio
from typing import Any, Dict, List, NamedTuple, Optional, Set

from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..resolver.base import ActorProfile, ActorProfileLookup, GroupRecipients, RecipientResolver
from ..sse.publisher import Publisher
from .background import spawn_best_effort
from .events import (
    ActivitySubject,
    DomainEvent,
    EmissionResult,
    EventKind,
    InvitationSubject,
    Subject,
    TaskSubject,
)
from .projection import project_for_recipient


class Delivery(NamedTuple):
    recipient_id: str
    event_name: str
    payload: Dict[str, Any]


class UnsupportedEventError(ValueError):
    """The event kind cannot be emitted for the given subject."""


class ActivityEmitter:
    """Computes recipients and payloads for domain events and publishes them."""

    def __init__(
        self,
        publisher: Publisher,
        resolver: RecipientResolver,
        profiles: ActorProfileLookup,
        metrics: Optional[MetricsCollector] = None
    ):
        self.publisher = publisher
        self.resolver = resolver
        self.profiles = profiles
        self.metrics = metrics
        self.logger = get_logger("events.emitter")

    def emit(self, kind: EventKind, subject: Subject, actor_id: Optional[str] = None) -> Optional[asyncio.Task]:
        """Fire-and-forget emission; returns the scheduled task.

        Never raises: CRUD handlers call this after their own write has
        completed and do not wait for delivery.
        """
        coro = None
        try:
            event = DomainEvent(kind=kind, subject=subject, actor_id=actor_id)
            coro = self.dispatch(event)
            return spawn_best_effort(
                coro,
                name=f"emit-{event.kind.value}",
                kind=event.kind.value,
                actor_id=event.actor_id
            )
        except Exception as exc:
            if coro is not None:
                coro.close()
            self.logger.error("Emission not scheduled", kind=str(kind), error=str(exc), exc_info=True)
            return None

    async def dispatch(self, event: DomainEvent) -> EmissionResult:
        """Run one emission to completion and report what happened."""
        result = EmissionResult(kind=event.kind)

        try:
            deliveries = await self._plan(event)
        except Exception as exc:
            result.error = str(exc)
            self.logger.error(
                "Emission abandoned",
                kind=event.kind.value,
                subject=type(event.subject).__name__,
                actor_id=event.actor_id,
                error=str(exc),
                exc_info=not isinstance(exc, UnsupportedEventError)
            )
            self._record(event.kind, "abandoned")
            return result

        for delivery in deliveries:
            result.recipients.add(delivery.recipient_id)
            try:
                if self.publisher.publish(delivery.recipient_id, delivery.event_name, delivery.payload):
                    result.delivered.add(delivery.recipient_id)
            except Exception as exc:
                result.failed.add(delivery.recipient_id)
                self.logger.warning(
                    "Publish to recipient failed",
                    kind=event.kind.value,
                    recipient_id=delivery.recipient_id,
                    error=str(exc)
                )

        self.logger.debug(
            "Emission done",
            kind=event.kind.value,
            actor_id=event.actor_id,
            recipients=len(result.recipients),
            delivered=len(result.delivered)
        )
        self._record(event.kind, "failed" if result.failed else "done")
        return result

    async def _plan(self, event: DomainEvent) -> List[Delivery]:
        kind, subject = event.kind, event.subject

        if kind is EventKind.ACTIVITY and isinstance(subject, ActivitySubject):
            return await self._plan_activity(subject, event.actor_id)

        if isinstance(subject, TaskSubject):
            if kind is EventKind.NOTIFICATION:
                return [
                    Delivery(user_id, EventKind.NOTIFICATION.value, self._task_assigned_payload(subject))
                    for user_id in self._exclude(subject.added_assignees, event.actor_id)
                ]
            if kind is EventKind.NOTIFICATION_REMOVED:
                return [
                    Delivery(user_id, EventKind.NOTIFICATION_REMOVED.value, self._task_notification_removed_payload(subject))
                    for user_id in self._exclude(subject.removed_assignees, event.actor_id)
                ]
            if kind is EventKind.TASK_UPDATED:
                recipients = await self.resolver.resolve_task_recipients(subject.task)
                payload = dict(subject.task)
                return [
                    Delivery(user_id, EventKind.TASK_UPDATED.value, payload)
                    for user_id in self._exclude(recipients, event.actor_id)
                ]
            if kind is EventKind.TASK_DELETED:
                return await self._plan_task_deleted(subject, event.actor_id)

        if isinstance(subject, InvitationSubject):
            if kind is EventKind.NOTIFICATION:
                payload = self._invitation_payload(subject)
            elif kind is EventKind.NOTIFICATION_REMOVED:
                payload = {"id": subject.notification_id, "type": "invitation", "groupId": subject.group_id}
            else:
                payload = None
            if payload is not None:
                return [
                    Delivery(user_id, kind.value, payload)
                    for user_id in self._exclude([subject.invitee_id], event.actor_id)
                ]

        raise UnsupportedEventError(f"{kind.value} cannot be emitted for {type(subject).__name__}")

    async def _plan_activity(self, subject: ActivitySubject, actor_id: Optional[str]) -> List[Delivery]:
        author_id = subject.author_id
        actor_id = actor_id or author_id

        group: Optional[GroupRecipients] = None
        if subject.is_personal:
            candidates: Set[str] = {author_id} if author_id else set()
        else:
            group = await self.resolver.resolve_group_recipients(subject.group_tag)
            candidates = set(group.member_ids) if group else set()

        recipients = self._exclude(candidates, actor_id)
        if not recipients:
            return []

        base = dict(subject.activity)
        actor = await self._load_actor(author_id)
        owner_id = group.owner_id if group else None

        deliveries = []
        for recipient_id in recipients:
            try:
                payload = project_for_recipient(base, actor, recipient_id, owner_id)
            except Exception as exc:
                self.logger.warning(
                    "Actor projection failed",
                    recipient_id=recipient_id,
                    actor_id=author_id,
                    error=str(exc)
                )
                continue
            deliveries.append(Delivery(recipient_id, EventKind.ACTIVITY.value, payload))
        return deliveries

    async def _plan_task_deleted(self, subject: TaskSubject, actor_id: Optional[str]) -> List[Delivery]:
        recipients = await self.resolver.resolve_task_recipients(subject.task)
        deleted = {"_id": subject.task_id, "groupTag": subject.task.get("groupTag")}
        deliveries = [
            Delivery(user_id, EventKind.TASK_DELETED.value, deleted)
            for user_id in self._exclude(recipients, actor_id)
        ]
        removed = self._task_notification_removed_payload(subject)
        deliveries.extend(
            Delivery(user_id, EventKind.NOTIFICATION_REMOVED.value, removed)
            for user_id in self._exclude(subject.assignees, actor_id)
        )
        return deliveries

    async def _load_actor(self, user_id: Optional[str]) -> Optional[ActorProfile]:
        if not user_id:
            return None
        try:
            return await self.profiles.get_actor_profile(user_id)
        except Exception as exc:
            # Fall back to the denormalised name carried by the activity.
            self.logger.warning("Actor profile lookup failed", actor_id=user_id, error=str(exc))
            return None

    @staticmethod
    def _exclude(user_ids, actor_id: Optional[str]) -> List[str]:
        """Deduplicated recipients without the actor, in stable order."""
        return sorted({user_id for user_id in user_ids if user_id and user_id != actor_id})

    @staticmethod
    def _task_assigned_payload(subject: TaskSubject) -> Dict[str, Any]:
        task = subject.task
        return {
            "id": subject.task_id,
            "type": "task_assigned",
            "taskId": subject.task_id,
            "taskTitle": task.get("title"),
            "groupTag": task.get("groupTag"),
            "createdAt": task.get("createdAt"),
            "read": False,
        }

    @staticmethod
    def _task_notification_removed_payload(subject: TaskSubject) -> Dict[str, Any]:
        return {"id": subject.task_id, "type": "task_assigned", "taskId": subject.task_id}

    @staticmethod
    def _invitation_payload(subject: InvitationSubject) -> Dict[str, Any]:
        group = subject.group
        return {
            "id": subject.notification_id,
            "type": "invitation",
            "groupId": subject.group_id,
            "groupName": group.get("name"),
            "groupTag": group.get("tag"),
            "invitedAt": subject.invited_at(),
            "read": False,
        }

    def _record(self, kind: EventKind, outcome: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("emissions_total", kind=kind.value, outcome=outcome)
