"""
Tests for application wiring: health probes and request correlation.
"""

from unittest.mock import AsyncMock, patch

from fastapi import status
from redis.exceptions import ConnectionError as RedisConnectionError


class TestHealthEndpoints:
    def test_health(self, client) -> None:
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "healthy"
        assert response.json()["environment"] == "test"

    def test_ready(self, client) -> None:
        redis_client = AsyncMock()
        redis_client.health_check.return_value = True

        with patch("storefront.main.check_database_health", AsyncMock(return_value=True)), patch(
            "storefront.main.get_redis_client", AsyncMock(return_value=redis_client)
        ):
            response = client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["database"] == "healthy"
        assert response.json()["redis"] == "healthy"

    def test_redis_down_is_not_fatal(self, client) -> None:
        with patch("storefront.main.check_database_health", AsyncMock(return_value=True)), patch(
            "storefront.main.get_redis_client",
            AsyncMock(side_effect=RedisConnectionError("refused")),
        ):
            response = client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["redis"] == "unhealthy"

    def test_database_down(self, client) -> None:
        with patch("storefront.main.check_database_health", AsyncMock(return_value=False)), patch(
            "storefront.main.get_redis_client",
            AsyncMock(side_effect=RedisConnectionError("refused")),
        ):
            response = client.get("/ready")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["status"] == "not_ready"


class TestRequestCorrelation:
    def test_request_id_generated(self, client) -> None:
        response = client.get("/health")

        assert response.headers["X-Request-ID"]

    def test_request_id_echoed(self, client) -> None:
        response = client.get("/health", headers={"X-Request-ID": "trace-123"})

        assert response.headers["X-Request-ID"] == "trace-123"

    def test_unknown_route_uses_envelope(self, client) -> None:
        response = client.get("/api/v1/nope", headers={"X-Request-ID": "trace-404"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        body = response.json()
        assert body["success"] is False
        assert body["data"] == {"code": "not_found", "request_id": "trace-404", "details": None}
