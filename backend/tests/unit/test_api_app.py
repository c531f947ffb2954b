"""Tests for the FastAPI application wiring (ping, health, CORS, routes)."""

import pytest
from fastapi.testclient import TestClient

from shared.config import ReconciliationSettings


class TestHealthCheck:
    """Tests for the /ping and /health endpoints."""

    def test_ping_returns_ok(self, api_client: TestClient):
        response = api_client.get("/api/ping")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "agricapital-payments-api"
        assert "timestamp" in data

    def test_health_reports_configured_integrations(self, api_client: TestClient):
        response = api_client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["environment"] == "test"
        assert data["webhook_signature_check"] is True
        assert data["providers"] == {"kkiapay": True, "fedapay": True}

    def test_health_without_secrets(self, api_client: TestClient):
        from api import dependencies
        from api.main import app

        app.dependency_overrides[dependencies.get_settings] = lambda: ReconciliationSettings(
            environment="test"
        )

        data = api_client.get("/api/health").json()

        assert data["webhook_signature_check"] is False
        assert data["providers"] == {"kkiapay": False, "fedapay": False}


class TestCorsConfiguration:
    def test_preflight_from_browser_origin(self, api_client: TestClient):
        response = api_client.options(
            "/api/payments/return",
            headers={
                "Origin": "https://app.agricapital.ci",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"


class TestRoutesRegistered:
    @pytest.mark.parametrize(
        "path",
        [
            "/api/ping",
            "/api/health",
            "/api/webhooks/fedapay",
            "/api/payments/return",
            "/api/payments/verify/{provider}",
        ],
    )
    def test_route_registered(self, path: str):
        from api.main import app

        assert path in [route.path for route in app.routes]

    def test_lambda_handler_exported(self):
        from mangum import Mangum

        from api.main import handler

        assert isinstance(handler, Mangum)
