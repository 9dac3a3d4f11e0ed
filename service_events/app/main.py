"""
Events service for Efficio: live activity and notification push over SSE.
"""

from typing import Any, Optional

from fastapi import Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

from shared.base_service import BaseService
from shared.errors import ValidationError

from .auth.jwks import AuthContext, JWKSAuthenticator
from .auth.query_token import QueryTokenMiddleware
from .emitter.background import active_task_count, drain
from .emitter.emitter import ActivityEmitter
from .resolver.mongo import MongoRecipientResolver
from .sse.lifecycle import ChannelLifecycleHandler
from .sse.publisher import Publisher
from .sse.registry import ConnectionRegistry

STREAM_PATH = "/events/stream"


class DebugSendRequest(BaseModel):
    """Body of the debug send endpoint."""
    userId: Optional[str] = None
    eventName: Optional[str] = None
    data: Any = None


class EventsService(BaseService):
    """Events service implementation."""

    def __init__(
        self,
        resolver: Optional[Any] = None,
        authenticator: Optional[Any] = None,
        **config_overrides
    ):
        super().__init__("events", 4000, **config_overrides)

        self.registry = ConnectionRegistry()
        self.publisher = Publisher(self.registry, metrics=self.metrics)
        self.lifecycle = ChannelLifecycleHandler(
            self.registry,
            heartbeat_interval=self.config.heartbeat_interval,
            max_missed_heartbeats=self.config.max_missed_heartbeats,
            queue_size=self.config.channel_queue_size,
            metrics=self.metrics
        )
        self.resolver = resolver or MongoRecipientResolver(
            self.config.mongo_url,
            self.config.mongo_database,
            timeout_ms=self.config.mongo_timeout_ms
        )
        self.emitter = ActivityEmitter(
            self.publisher,
            resolver=self.resolver,
            profiles=self.resolver,
            metrics=self.metrics
        )
        self.authenticator = authenticator or JWKSAuthenticator(
            self.config.jwks_url,
            audience=self.config.auth0_audience,
            issuer=self.config.auth0_issuer
        )

        self.app.add_middleware(QueryTokenMiddleware, paths=(STREAM_PATH,))
        self._setup_events_routes()
        self.app.state.events_service = self

    def _setup_events_routes(self):
        """Set up events-specific routes."""

        async def current_user(request: Request) -> AuthContext:
            return await self.authenticator.authenticate(request)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "events",
                "message": "Efficio - Events Service",
                "version": "1.0.0",
                "stream": STREAM_PATH
            }

        @self.app.get(STREAM_PATH)
        async def event_stream(user: AuthContext = Depends(current_user)):
            """Long-lived Server-Sent Events stream for the caller."""
            channel = self.lifecycle.open(user.subject)
            self.metrics.record_business_event("channel_opened")

            async def release():
                # Covers responses whose body iterator never started.
                self.lifecycle.close(channel, reason="response_finished")

            return StreamingResponse(
                self.lifecycle.stream(channel),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache, no-transform",
                    "Connection": "keep-alive",
                    "X-Accel-Buffering": "no"
                },
                background=BackgroundTask(release)
            )

        @self.app.get("/stats")
        async def get_stats():
            """Get events service statistics."""
            return {
                "registry": self.registry.get_stats(),
                "open_channels": self.lifecycle.open_count,
                "heartbeat_interval": self.lifecycle.heartbeat_interval,
                "background_tasks": active_task_count()
            }

        if self.config.enable_debug_routes:
            self._setup_debug_routes()

    def _setup_debug_routes(self):
        """Non-production helpers for inspecting and poking live channels."""

        @self.app.get("/events/debug/clients")
        async def debug_clients():
            """List users with an open channel."""
            return {"success": True, "clients": self.registry.list_users()}

        @self.app.post("/events/debug/send")
        async def debug_send(body: DebugSendRequest):
            """Send a test event to a user without going through domain flows."""
            if not body.userId or not body.eventName:
                raise ValidationError("userId and eventName required")

            delivered = self.publisher.publish(
                body.userId.strip(),
                body.eventName,
                {} if body.data is None else body.data
            )
            self.logger.info(
                "Debug event sent",
                user_id=body.userId,
                event_name=body.eventName,
                delivered=delivered
            )
            return {"success": True, "delivered": delivered}

        self.logger.warning("Debug routes enabled", env=self.config.env)

    async def _check_dependencies(self):
        """Check events service dependencies."""
        dependencies = {}

        ping = getattr(self.resolver, "ping", None)
        dependencies["mongo"] = await ping() if ping else "unknown"

        check = getattr(self.authenticator, "check_health", None)
        dependencies["jwks"] = await check() if check else "unknown"

        return dependencies

    async def start(self):
        """Start events service components."""
        warmup = getattr(self.authenticator, "warmup", None)
        if warmup:
            await warmup()
        self.logger.info("Events service components started")

    async def stop(self):
        """Stop events service components."""
        await self.lifecycle.shutdown()
        await drain()

        for component in (self.resolver, self.authenticator):
            close = getattr(component, "close", None)
            if close:
                try:
                    await close()
                except Exception as exc:
                    self.logger.warning("Component close failed", component=type(component).__name__, error=str(exc))

        self.logger.info("Events service components stopped")


def create_app(**kwargs):
    """Create events service application."""
    service = EventsService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = EventsService()
    service.run()
