"""
Unit tests for shared configuration.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import get_config


class TestServiceConfig:
    """Test cases for ServiceConfig."""

    def test_defaults(self):
        """Local defaults enable debug routes and derive the JWKS URL."""
        config = get_config("events", 4000, env="local")

        assert config.service_name == "events"
        assert config.port == 4000
        assert config.heartbeat_interval == 15.0
        assert config.max_missed_heartbeats == 3
        assert config.enable_debug_routes is True
        assert config.jwks_url == f"https://{config.auth0_domain}/.well-known/jwks.json"
        assert config.auth0_issuer == f"https://{config.auth0_domain}/"

    def test_explicit_jwks_url_wins(self):
        """A configured JWKS URL is not overwritten."""
        config = get_config("events", 4000, jwks_url="https://keys.example.com/jwks.json")

        assert config.jwks_url == "https://keys.example.com/jwks.json"

    def test_production_disables_debug_routes(self):
        """Debug routes default off in production."""
        config = get_config("events", 4000, env="production")

        assert config.is_production is True
        assert config.enable_debug_routes is False
        assert config.allowed_origins() == []

    def test_cors_origins_parsed(self):
        """Comma separated origins become a list."""
        config = get_config("events", 4000, cors_origins="https://app.efficio.io, http://localhost:5173 ,")

        assert config.allowed_origins() == ["https://app.efficio.io", "http://localhost:5173"]

    def test_local_allows_any_origin(self):
        """Outside production CORS is open when unset."""
        assert get_config("events", 4000, env="local", cors_origins="").allowed_origins() == ["*"]

    def test_environment_variables(self, monkeypatch):
        """Settings are read from EFFICIO_ prefixed variables."""
        monkeypatch.setenv("EFFICIO_ENV", "staging")
        monkeypatch.setenv("EFFICIO_HEARTBEAT_INTERVAL", "5")
        monkeypatch.setenv("EFFICIO_AUTH0_DOMAIN", "tenant.eu.auth0.com")
        monkeypatch.setenv("EFFICIO_MONGO_DATABASE", "efficio_test")

        config = get_config("events", 4000)

        assert config.env == "staging"
        assert config.heartbeat_interval == 5.0
        assert config.mongo_database == "efficio_test"
        assert config.jwks_url == "https://tenant.eu.auth0.com/.well-known/jwks.json"

    @pytest.mark.parametrize("env,expected", [
        ("production", True),
        ("PRODUCTION", True),
        ("staging", False),
        ("local", False),
    ])
    def test_is_production(self, env, expected):
        """Only the production environment counts as production."""
        assert get_config("events", 4000, env=env).is_production is expected
