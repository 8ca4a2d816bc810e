"""
Tests for endpoint-type rate limiting.
"""
from unittest.mock import AsyncMock, patch

import pytest

from assettracer.dependencies.rate_limit import (
    EndpointType,
    check_rate_limit,
    classify_path,
)


@pytest.mark.parametrize("path,expected", [
    ("/api/v1/auth/session", EndpointType.AUTH),
    ("/api/v1/auth/health", EndpointType.API),
    ("/api/v1/auth/me", EndpointType.API),
    ("/api/v1/subscription/webhook", EndpointType.WEBHOOK),
    ("/api/v1/payments/dpo/webhook", EndpointType.WEBHOOK),
    ("/api/v1/notifications/cron/weekly-reports", EndpointType.WEBHOOK),
    ("/api/v1/assets", EndpointType.API),
])
def test_classify_path(path, expected):
    assert classify_path(path) == expected


class TestFixedWindow:
    def test_counts_down_then_blocks(self):
        assert check_rate_limit("k", 2, 60, now=1000.0) == (True, 1, 60)
        assert check_rate_limit("k", 2, 60, now=1010.0) == (True, 0, 50)
        assert check_rate_limit("k", 2, 60, now=1020.0) == (False, 0, 40)

    def test_window_resets(self):
        check_rate_limit("k", 1, 60, now=0.0)
        assert check_rate_limit("k", 1, 60, now=30.0)[0] is False
        assert check_rate_limit("k", 1, 60, now=60.0)[0] is True

    def test_keys_are_independent(self):
        check_rate_limit("a", 1, 60, now=0.0)
        assert check_rate_limit("b", 1, 60, now=0.0)[0] is True


class TestMiddleware:
    def test_auth_routes_allow_five_per_window(self, anon_client):
        for _ in range(5):
            assert anon_client.get("/api/v1/auth/session").status_code == 401

        response = anon_client.get("/api/v1/auth/session")

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.json()["retry_after"] > 0

    def test_headers_on_normal_responses(self, anon_client):
        response = anon_client.get("/api/v1/auth/health")
        assert response.headers["X-RateLimit-Limit"] == "200"
        assert response.headers["X-RateLimit-Remaining"] == "199"

    def test_health_is_exempt(self, anon_client):
        for _ in range(10):
            response = anon_client.get("/health")
        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers

    def test_forwarded_clients_are_counted_separately(self, anon_client):
        for _ in range(5):
            anon_client.get("/api/v1/auth/session", headers={"X-Forwarded-For": "203.0.113.1"})

        blocked = anon_client.get("/api/v1/auth/session", headers={"X-Forwarded-For": "203.0.113.1"})
        other = anon_client.get("/api/v1/auth/session", headers={"X-Forwarded-For": "203.0.113.2"})

        assert blocked.status_code == 429
        assert other.status_code == 401


class TestRouteLimiter:
    def test_test_email_three_per_hour(self, client):
        with patch(
            "assettracer.api.v1.notifications.notification_service.send_test_email",
            AsyncMock(return_value=None),
        ):
            statuses = [client.post("/api/v1/notifications/test-email").status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]
