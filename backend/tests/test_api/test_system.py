"""
API tests for liveness, store check and metrics endpoints
"""
import logging

import pytest
from unittest.mock import MagicMock, patch

from app.core.errors import StoreUnavailableError
from app.middleware.logging_middleware import route_group
from app.models.system_setting import SystemSetting
from tests.conftest import make_token


class TestLiveness:

    def test_root(self, api_client):
        response = api_client.get("/")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "online"
        assert body["fcm_configured"] is True
        assert "timestamp" in body

    def test_health(self, api_client):
        assert api_client.get("/health").json() == {"status": "healthy"}

    def test_request_id_header(self, api_client):
        response = api_client.get("/api/v1/tokens/count", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_generated(self, api_client):
        response = api_client.get("/api/v1/tokens/count")
        assert len(response.headers["X-Request-ID"]) == 36

    def test_error_body_carries_request_id(self, api_client):
        response = api_client.post(
            "/api/v1/tokens",
            json={"user_id": "u1", "token": "abc"},
            headers={"X-Request-ID": "req-err-1"},
        )

        assert response.status_code == 400
        assert response.json()["request_id"] == "req-err-1"
        assert response.headers["X-Request-ID"] == "req-err-1"


class TestRouteGroup:
    """Request logs are tagged with the push route they hit."""

    @pytest.mark.parametrize("path,group", [
        ("/api/v1/notifications/broadcast", "broadcast"),
        ("/api/v1/tokens", "registry"),
        ("/api/v1/tokens/count", "registry"),
        ("/api/v1/shop/auto-close/status", "shop"),
        ("/api/v1/system/store-check", "system"),
        ("/api/v1/tokensX", "other"),
        ("/health", "other"),
    ])
    def test_route_group(self, path, group):
        assert route_group(path) == group

    def test_request_logs_carry_route_group(self, api_client, caplog):
        with caplog.at_level(logging.INFO, logger="app.middleware.logging_middleware"):
            api_client.get("/api/v1/tokens/count")

        completed = [r for r in caplog.records if getattr(r, "event_type", None) == "request_complete"]
        assert completed
        assert completed[-1].route_group == "registry"


class TestStoreCheck:
    """GET /api/v1/system/store-check"""

    def test_store_check_writes_check_row(self, api_client, registry, session_factory):
        registry.register("u1", make_token("u1"))

        response = api_client.get("/api/v1/system/store-check")

        assert response.status_code == 200
        assert response.json() == {"success": True, "store": "connected", "tokens_count": 1}
        db = session_factory()
        try:
            assert db.get(SystemSetting, "store_check").document()["message"] == "Store connection successful"
        finally:
            db.close()

    def test_store_check_failure(self, api_client, store):
        with patch.object(store, "list_all", side_effect=StoreUnavailableError("down")):
            response = api_client.get("/api/v1/system/store-check")

        assert response.status_code == 503
        assert response.json()["success"] is False


class TestMetricsEndpoint:

    def test_metrics_exposes_push_counters(self, api_client, registry):
        registry.register("u1", make_token("u1"))
        api_client.post("/api/v1/notifications/broadcast", json={"title": "Hi", "body": "There"})

        response = api_client.get("/metrics")

        assert response.status_code == 200
        assert "push_broadcasts_total" in response.text
        assert "registry_registrations" in response.text


class TestRegistrationSweepJob:

    @pytest.mark.asyncio
    async def test_sweep_prunes_with_configured_age(self):
        from app.core.config import settings
        from main import scheduled_registration_sweep_job

        registry = MagicMock()
        registry.prune_stale.return_value = ["u1", "u2"]
        with patch("main.get_token_registry", return_value=registry), \
                patch.object(settings, "REGISTRATION_MAX_AGE_DAYS", 30):
            await scheduled_registration_sweep_job()

        registry.prune_stale.assert_called_once_with(30)

    @pytest.mark.asyncio
    async def test_sweep_failure_is_logged_not_raised(self):
        from main import scheduled_registration_sweep_job

        registry = MagicMock()
        registry.prune_stale.side_effect = StoreUnavailableError("down")
        with patch("main.get_token_registry", return_value=registry):
            await scheduled_registration_sweep_job()


class TestSchemas:

    def test_store_check_schema_example(self):
        from app.schemas.system import StoreCheckResponse

        schema = StoreCheckResponse.model_json_schema()
        assert schema["example"] == {"success": True, "store": "connected", "tokens_count": 42}
