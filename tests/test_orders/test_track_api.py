"""
Tests for the public tracking endpoint.
"""

from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import status

import storefront.api.v1.track as track_module
from storefront.api.deps import get_order_service
from storefront.core.config import get_settings
from storefront.services.orders.exceptions import OrderNotFoundError
from storefront.services.orders.tracking import OrderTrackingProjector

TRACK_URL = "/api/v1/track"


@pytest.fixture
def order_service(app) -> Mock:
    service = Mock()
    service.track_order = AsyncMock()
    app.dependency_overrides[get_order_service] = lambda: service
    return service


def test_track_without_authentication(
    client, order_service, make_order, customer, store_config
) -> None:
    order = make_order(customer)
    order_service.track_order.return_value = OrderTrackingProjector().project(order, store_config)

    response = client.get(
        f"{TRACK_URL}/{order.order_number}", params={"email": " Jane@Example.com "}
    )

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["message"] == "Order tracking retrieved successfully"
    assert body["data"]["order_number"] == order.order_number
    assert [step["status"] for step in body["data"]["timeline"]][0] == "confirmed"
    order_service.track_order.assert_awaited_once_with(order.order_number, "Jane@Example.com")


def test_email_required(client, order_service) -> None:
    response = client.get(f"{TRACK_URL}/ORD-1")

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    order_service.track_order.assert_not_awaited()


def test_mismatch_is_not_found(client, order_service) -> None:
    order_service.track_order.side_effect = OrderNotFoundError()

    response = client.get(f"{TRACK_URL}/ORD-1", params={"email": "wrong@example.com"})

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["message"] == "Order not found"


def test_rate_limited(client, order_service, monkeypatch) -> None:
    limited = get_settings().model_copy(update={"track_rate_limit": "2/minute"})
    monkeypatch.setattr(track_module, "get_settings", lambda: limited)
    order_service.track_order.side_effect = OrderNotFoundError()

    codes = [
        client.get(f"{TRACK_URL}/ORD-1", params={"email": "a@example.com"}).status_code
        for _ in range(3)
    ]

    assert codes == [404, 404, 429]
    response = client.get(f"{TRACK_URL}/ORD-1", params={"email": "a@example.com"})
    assert response.json()["data"]["code"] == "rate_limited"
