"""
Unit tests for the events service HTTP surface.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_events.app.dependencies import get_emitter, get_registry
from service_events.app.emitter.emitter import ActivityEmitter
from service_events.app.main import EventsService, STREAM_PATH
from service_events.app.sse.channel import SSEChannel
from shared.errors import AuthenticationError


def make_resolver():
    resolver = MagicMock()
    resolver.ping = AsyncMock(return_value="ok")
    resolver.close = AsyncMock()
    resolver.resolve_group_recipients = AsyncMock(return_value=None)
    resolver.resolve_task_recipients = AsyncMock(return_value=set())
    resolver.get_actor_profile = AsyncMock(return_value=None)
    return resolver


def make_authenticator():
    authenticator = MagicMock()
    authenticator.authenticate = AsyncMock(side_effect=AuthenticationError("Missing or invalid Authorization header"))
    authenticator.check_health = AsyncMock(return_value="ok")
    authenticator.warmup = AsyncMock()
    authenticator.close = AsyncMock()
    return authenticator


class TestEventsService:
    """Test cases for EventsService."""

    @pytest.fixture
    def resolver(self):
        return make_resolver()

    @pytest.fixture
    def authenticator(self):
        return make_authenticator()

    @pytest.fixture
    def events_service(self, resolver, authenticator):
        """Create EventsService with fake collaborators."""
        return EventsService(resolver=resolver, authenticator=authenticator, env="local")

    @pytest.fixture
    def client(self, events_service):
        """Create test client."""
        return TestClient(events_service.app)

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "events"
        assert data["stream"] == STREAM_PATH

    def test_health_reports_dependencies(self, client, resolver):
        """Health includes the store and the identity provider."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"mongo": "ok", "jwks": "ok"}
        resolver.ping.assert_awaited()

    def test_health_with_store_down(self, client, resolver):
        """A failing store is reported, not hidden."""
        resolver.ping.return_value = "error"

        response = client.get("/health")

        assert response.json()["dependencies"]["mongo"] == "error"

    def test_metrics_endpoint(self, client):
        """Prometheus exposition includes the channel gauge."""
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "active_channels" in response.text

    def test_stream_requires_token(self, client):
        """Unauthenticated stream requests get 401 and no channel."""
        response = client.get(STREAM_PATH)

        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    def test_stream_rejects_invalid_query_token(self, client, events_service, authenticator):
        """A bad ?token= is rejected like a bad header."""
        response = client.get(f"{STREAM_PATH}?token=garbage")

        assert response.status_code == 401
        request = authenticator.authenticate.await_args.args[0]
        assert request.headers["authorization"] == "Bearer garbage"
        assert len(events_service.registry) == 0

    def test_stats(self, client, events_service):
        """Stats reflect the registry."""
        events_service.registry.register("alice", SSEChannel(user_id="alice"))

        response = client.get("/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["registry"]["connected_users"] == 1
        assert data["registry"]["channels_per_user"] == {"alice": 1}

    def test_debug_clients(self, client, events_service):
        """Debug listing shows users with an open channel."""
        events_service.registry.register("alice", SSEChannel(user_id="alice"))
        events_service.registry.register("bob", SSEChannel(user_id="bob"))

        response = client.get("/events/debug/clients")

        assert response.json() == {"success": True, "clients": ["alice", "bob"]}

    def test_debug_send_delivers(self, client, events_service):
        """Debug send writes one frame to the user's channels."""
        channel = SSEChannel(user_id="alice")
        events_service.registry.register("alice", channel)

        response = client.post("/events/debug/send", json={
            "userId": "alice",
            "eventName": "notification",
            "data": {"id": "t1"}
        })

        assert response.status_code == 200
        assert response.json() == {"success": True, "delivered": True}
        assert channel._queue.get_nowait() == 'event: notification\ndata: {"id":"t1"}\n\n'

    def test_debug_send_to_offline_user(self, client):
        """Offline targets are reported as not delivered."""
        response = client.post("/events/debug/send", json={"userId": "ghost", "eventName": "ping"})

        assert response.status_code == 200
        assert response.json()["delivered"] is False

    @pytest.mark.parametrize("body", [
        {"eventName": "notification"},
        {"userId": "alice"},
        {"userId": "", "eventName": "notification"},
    ])
    def test_debug_send_requires_fields(self, client, body):
        """Missing target or event name is a 400."""
        response = client.post("/events/debug/send", json=body)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_debug_routes_absent_in_production(self, resolver, authenticator):
        """Production does not expose debug endpoints."""
        service = EventsService(resolver=resolver, authenticator=authenticator, env="production")
        client = TestClient(service.app)

        assert client.get("/events/debug/clients").status_code == 404
        assert client.post("/events/debug/send", json={"userId": "a", "eventName": "b"}).status_code in (404, 405)

    def test_debug_routes_forced_on(self, resolver, authenticator):
        """An explicit flag overrides the environment default."""
        service = EventsService(
            resolver=resolver,
            authenticator=authenticator,
            env="production",
            enable_debug_routes=True
        )

        assert TestClient(service.app).get("/events/debug/clients").status_code == 200

    def test_config_drives_lifecycle(self, resolver, authenticator):
        """Heartbeat settings come from configuration."""
        service = EventsService(
            resolver=resolver,
            authenticator=authenticator,
            heartbeat_interval=5.0,
            max_missed_heartbeats=2
        )

        assert service.lifecycle.heartbeat_interval == 5.0
        assert service.lifecycle.max_missed_heartbeats == 2

    def test_dependencies_expose_components(self, events_service):
        """CRUD routers reach the emitter and registry through app state."""
        request = MagicMock()
        request.app = events_service.app

        assert isinstance(get_emitter(request), ActivityEmitter)
        assert get_registry(request) is events_service.registry

    @pytest.mark.asyncio
    async def test_stop_tears_down_channels(self, events_service, resolver, authenticator):
        """Service stop closes channels and releases collaborators."""
        channel = events_service.lifecycle.open("alice")

        await events_service.stop()

        assert channel.closed is True
        assert len(events_service.registry) == 0
        resolver.close.assert_awaited_once()
        authenticator.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_warms_up_jwks(self, events_service, authenticator):
        """Keys are fetched before the first request."""
        await events_service.start()

        authenticator.warmup.assert_awaited_once()
