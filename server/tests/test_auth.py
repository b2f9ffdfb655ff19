"""
Tests for API authentication and authorization.
"""

import pytest
import os
from unittest.mock import patch
from fastapi.testclient import TestClient

from conftest import ADMIN_ID, CUSTOMER_ID, STORE_OWNER_ID, client_with_keys


class TestAuth:
    """Test authentication on API endpoints."""

    @pytest.fixture
    def client_no_auth(self, app_state):
        """Client with no API keys configured (dev mode)."""
        yield from client_with_keys("")

    @pytest.fixture
    def client_with_auth(self, app_state):
        """Client with API keys configured."""
        yield from client_with_keys("test-key-1,test-key-2")

    @pytest.fixture
    def order_id(self, app_state):
        store, _ = app_state
        return store.add_order(user_id=CUSTOMER_ID, store_id=10).id

    def test_health_no_auth_required(self, client_with_auth):
        """Health endpoint should work without authentication."""
        response = client_with_auth.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "version" in data
        assert data["auth_required"] is True

    def test_dev_mode_requires_user_header(self, client_no_auth, order_id):
        """Without keys configured the acting user must still be named."""
        response = client_no_auth.get(f"/orders/{order_id}")
        assert response.status_code == 401
        assert "X-User-Id" in response.json()["detail"]

    def test_dev_mode_with_user_header(self, client_no_auth, order_id):
        response = client_no_auth.get(f"/orders/{order_id}", headers={"X-User-Id": str(CUSTOMER_ID)})
        assert response.status_code == 200

    def test_requires_key_when_configured(self, client_with_auth, order_id):
        """Endpoints should require a service key when API keys are configured."""
        response = client_with_auth.get(f"/orders/{order_id}", headers={"X-User-Id": str(CUSTOMER_ID)})
        assert response.status_code == 401
        assert "Missing API key" in response.json()["detail"]

    def test_with_valid_key(self, client_with_auth, order_id):
        response = client_with_auth.get(
            f"/orders/{order_id}",
            headers={"X-API-Key": "test-key-1", "X-User-Id": str(CUSTOMER_ID)},
        )
        assert response.status_code == 200

    def test_with_valid_bearer_key(self, client_with_auth, order_id):
        """A service key may also be sent as Authorization: Bearer."""
        response = client_with_auth.get(
            f"/orders/{order_id}",
            headers={"Authorization": "Bearer test-key-2", "X-User-Id": str(STORE_OWNER_ID)},
        )
        assert response.status_code == 200

    def test_with_invalid_key(self, client_with_auth, order_id):
        response = client_with_auth.get(
            f"/orders/{order_id}",
            headers={"X-API-Key": "wrong-key", "X-User-Id": str(CUSTOMER_ID)},
        )
        assert response.status_code == 401
        assert "Invalid API key" in response.json()["detail"]

    def test_with_invalid_bearer_key(self, client_with_auth, order_id):
        response = client_with_auth.get(
            f"/orders/{order_id}",
            headers={"Authorization": "Bearer wrong-key"},
        )
        assert response.status_code == 401
        assert "Invalid API key" in response.json()["detail"]

    def test_service_key_without_user_acts_as_admin(self, client_with_auth, order_id):
        """A service caller that names no user can read any order."""
        response = client_with_auth.get(f"/orders/{order_id}", headers={"X-API-Key": "test-key-1"})
        assert response.status_code == 200

    def test_unknown_user(self, client_no_auth, order_id):
        response = client_no_auth.get(f"/orders/{order_id}", headers={"X-User-Id": "31337"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Unknown user."

    def test_malformed_user_header(self, client_no_auth, order_id):
        response = client_no_auth.get(f"/orders/{order_id}", headers={"X-User-Id": "abc"})
        assert response.status_code == 400

    def test_search_history_needs_concrete_user(self, client_with_auth):
        """Service key without X-User-Id cannot record searches."""
        response = client_with_auth.post(
            "/searches",
            json={"keyword": "pizza", "region": "Seoul"},
            headers={"X-API-Key": "test-key-1"},
        )
        assert response.status_code == 400


class TestAdminAccess:
    """Broadcast announcements are ADMIN only."""

    @pytest.fixture
    def client(self, app_state):
        yield from client_with_keys("")

    def test_admin_user_can_broadcast(self, client, app_state):
        _, notifier = app_state
        response = client.post(
            "/admin/notifications/broadcast",
            json={"text": "서비스 점검 안내"},
            headers={"X-User-Id": str(ADMIN_ID)},
        )
        assert response.status_code == 202
        assert response.json() == {"status": "queued", "audience": "BROADCAST"}
        assert [m.text for m in notifier.dispatched] == ["서비스 점검 안내"]

    def test_non_admin_rejected(self, client, app_state):
        _, notifier = app_state
        response = client.post(
            "/admin/notifications/broadcast",
            json={"text": "hello"},
            headers={"X-User-Id": str(STORE_OWNER_ID)},
        )
        assert response.status_code == 403
        assert "Admin access required" in response.json()["detail"]
        assert notifier.dispatched == []

    def test_empty_announcement_rejected(self, client):
        response = client.post(
            "/admin/notifications/broadcast",
            json={"text": ""},
            headers={"X-User-Id": str(ADMIN_ID)},
        )
        assert response.status_code == 422


class TestCORS:
    """Test CORS configuration."""

    def test_cors_headers_present(self):
        """CORS preflight should be handled."""
        from delivery.main import app
        client = TestClient(app)

        response = client.options(
            "/health",
            headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
        )
        assert response.status_code in [200, 204, 400, 405]


class TestRateLimiting:
    """Test rate limit keys."""

    def _request(self, headers):
        from starlette.requests import Request
        scope = {
            "type": "http",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
            "client": ("10.0.0.7", 5000),
        }
        return Request(scope)

    def test_key_hashes_api_key(self):
        from delivery.rate_limit import get_rate_limit_key
        key = get_rate_limit_key(self._request({"X-API-Key": "secret", "X-User-Id": "1"}))
        assert "secret" not in key
        assert key.startswith("key:")
        assert key.endswith(":user:1")

    def test_key_falls_back_to_user_then_ip(self):
        from delivery.rate_limit import get_rate_limit_key
        assert get_rate_limit_key(self._request({"X-User-Id": "4"})) == "user:4"
        assert get_rate_limit_key(self._request({})) == "10.0.0.7"

    @pytest.fixture
    def fresh_limiter(self):
        from delivery.rate_limit import limiter
        limiter.reset()
        yield limiter
        limiter.reset()

    @pytest.fixture
    def client(self, app_state):
        yield from client_with_keys("")

    def test_search_recording_is_rate_limited(self, client, fresh_limiter):
        """Requests beyond search_rate_limit per minute get 429."""
        from delivery.settings import settings as app_settings

        body = {"keyword": "pizza", "region": "Seoul"}
        headers = {"X-User-Id": str(CUSTOMER_ID)}

        for _ in range(app_settings.search_rate_limit):
            assert client.post("/searches", json=body, headers=headers).status_code == 201

        response = client.post("/searches", json=body, headers=headers)
        assert response.status_code == 429

        # Limits are per caller
        other = client.post("/searches", json=body, headers={"X-User-Id": str(STORE_OWNER_ID)})
        assert other.status_code == 201


class TestSettingsParsing:
    """Test settings module parsing."""

    def test_parse_api_keys_from_env(self):
        """API keys should be parsed from comma-separated env var."""
        with patch.dict(os.environ, {"DELIVERY_API_KEYS_RAW": "key1,key2,key3"}, clear=False):
            from delivery.settings import Settings
            settings = Settings()
            assert settings.api_keys == ["key1", "key2", "key3"]

    def test_parse_allowed_origins_from_env(self):
        """Allowed origins should be parsed from comma-separated env var."""
        with patch.dict(os.environ, {"DELIVERY_ALLOWED_ORIGINS_RAW": "https://app.example.com,https://other.com"}, clear=False):
            from delivery.settings import Settings
            settings = Settings()
            assert settings.allowed_origins == ["https://app.example.com", "https://other.com"]

    def test_empty_api_keys_default(self):
        """Empty API keys should default to empty list."""
        with patch.dict(os.environ, {}, clear=True):
            os.environ.pop("DELIVERY_API_KEYS_RAW", None)
            from delivery.settings import Settings
            settings = Settings(_env_file=None)
            assert settings.api_keys == []
            assert settings.notify_max_retries == 0
            assert settings.transition_max_attempts == 3
