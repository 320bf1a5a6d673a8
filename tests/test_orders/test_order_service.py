"""
Tests for OrderService.

The repository is mocked; the state machine and tracking projector are real
so status changes run their side effects.
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from storefront.services.orders.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from storefront.services.orders.exceptions import (
    InvalidTransitionError,
    OrderNotCancellableError,
    OrderNotFoundError,
)
from storefront.services.orders.repository import OrderFilters
from storefront.services.orders.service import OrderService
from storefront.services.orders.state_machine import OrderStateMachine

NOW = datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def products() -> Mock:
    products = Mock()
    products.restore_stock = AsyncMock(return_value=True)
    return products


@pytest.fixture
def repository() -> Mock:
    repository = Mock()
    repository.get = AsyncMock()
    repository.find_by_id = AsyncMock()
    repository.find_by_order_number_and_email = AsyncMock()
    repository.list = AsyncMock()
    repository.list_for_user = AsyncMock(return_value=[])
    repository.save = AsyncMock(side_effect=lambda order: order)
    repository.update = AsyncMock()
    repository.overview_statistics = AsyncMock()
    return repository


@pytest.fixture
def settings_provider(store_config) -> Mock:
    provider = Mock()
    provider.get = AsyncMock(return_value=store_config)
    return provider


@pytest.fixture
def service(mock_session, settings_provider, repository, products) -> OrderService:
    return OrderService(
        mock_session,
        settings_provider,
        repository=repository,
        state_machine=OrderStateMachine(products, clock=lambda: NOW),
    )


# ============================================================================
# Customer Operations
# ============================================================================


class TestCustomerOperations:
    @pytest.mark.asyncio
    async def test_get_order_checks_requester(self, service, repository, make_order, customer) -> None:
        order = make_order(customer)
        repository.find_by_id.return_value = order

        assert await service.get_order(order.id, customer) is order
        repository.find_by_id.assert_awaited_once_with(order.id, customer)

    @pytest.mark.asyncio
    async def test_list_my_orders_passes_archive_filter(self, service, repository, customer) -> None:
        await service.list_my_orders(customer, is_archived=True)

        repository.list_for_user.assert_awaited_once_with(customer.id, is_archived=True)

    @pytest.mark.asyncio
    async def test_cancel_pending_order_restores_stock(
        self, service, repository, products, make_order, customer
    ) -> None:
        order = make_order(customer)
        repository.get.return_value = order

        result = await service.cancel_order(order.id, customer)

        assert result.order_status == OrderStatus.CANCELLED
        assert result.cancelled_at == NOW
        item = order.items[0]
        products.restore_stock.assert_awaited_once_with(item.product_id, item.quantity)
        repository.save.assert_awaited_once_with(order)

    @pytest.mark.asyncio
    async def test_cancel_processing_order(self, service, repository, make_order, customer) -> None:
        order = make_order(customer, order_status=OrderStatus.PROCESSING)
        repository.get.return_value = order

        result = await service.cancel_order(order.id, customer)

        assert result.order_status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_shipped_order_rejected(
        self, service, repository, make_order, customer
    ) -> None:
        order = make_order(customer, order_status=OrderStatus.SHIPPED)
        repository.get.return_value = order

        with pytest.raises(OrderNotCancellableError) as exc_info:
            await service.cancel_order(order.id, customer)

        assert "shipped" in exc_info.value.message
        assert order.order_status == OrderStatus.SHIPPED
        repository.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_twice_is_noop(
        self, service, repository, products, make_order, customer
    ) -> None:
        order = make_order(customer, order_status=OrderStatus.CANCELLED, cancelled_at=NOW)
        repository.get.return_value = order

        result = await service.cancel_order(order.id, customer)

        assert result.order_status == OrderStatus.CANCELLED
        products.restore_stock.assert_not_awaited()
        repository.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_other_customers_order(
        self, service, repository, make_order, make_user, customer
    ) -> None:
        order = make_order(make_user(email="other@example.com"))
        repository.get.return_value = order

        with pytest.raises(OrderNotFoundError):
            await service.cancel_order(order.id, customer)

        assert order.order_status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_archive_own_order(self, service, repository, make_order, customer) -> None:
        order = make_order(customer)
        repository.get.return_value = order

        archived = await service.set_archived(order.id, customer, True)

        assert archived is order
        assert order.is_archived is True
        repository.get.assert_awaited_once_with(order.id)
        repository.save.assert_awaited_once_with(order)
        repository.update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_archive_other_customers_order(
        self, service, repository, make_order, make_user, customer
    ) -> None:
        order = make_order(make_user(email="other@example.com"))
        repository.get.return_value = order

        with pytest.raises(OrderNotFoundError):
            await service.set_archived(order.id, customer, True)

        repository.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_place_order_requires_checkout(self, service, customer) -> None:
        with pytest.raises(RuntimeError):
            await service.place_order(customer, Mock())


# ============================================================================
# Staff Operations
# ============================================================================


class TestStaffOperations:
    @pytest.mark.asyncio
    async def test_ship_pending_order_backfills_processing(
        self, service, repository, make_order, customer, admin
    ) -> None:
        order = make_order(customer)
        repository.get.return_value = order

        result = await service.update_order_status(order.id, OrderStatus.SHIPPED, admin)

        assert result.order_status == OrderStatus.SHIPPED
        assert result.processing_at == NOW
        assert result.shipped_at == NOW
        repository.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deliver_cod_order_marks_paid(
        self, service, repository, make_order, customer, admin
    ) -> None:
        order = make_order(customer, order_status=OrderStatus.SHIPPED, shipped_at=NOW)
        repository.get.return_value = order

        result = await service.update_order_status(order.id, OrderStatus.DELIVERED, admin)

        assert result.delivered_at == NOW
        assert result.payment_status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_deliver_card_order_keeps_payment_status(
        self, service, repository, make_order, customer, admin
    ) -> None:
        order = make_order(
            customer,
            order_status=OrderStatus.SHIPPED,
            payment_method=PaymentMethod.CARD,
            payment_status=PaymentStatus.FAILED,
        )
        repository.get.return_value = order

        result = await service.update_order_status(order.id, OrderStatus.DELIVERED, admin)

        assert result.payment_status == PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_reactivation_rejected(
        self, service, repository, make_order, customer, admin
    ) -> None:
        order = make_order(customer, order_status=OrderStatus.CANCELLED)
        repository.get.return_value = order

        with pytest.raises(InvalidTransitionError, match="NEW order"):
            await service.update_order_status(order.id, OrderStatus.PENDING, admin)

        repository.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_same_status_is_noop(
        self, service, repository, make_order, customer, admin
    ) -> None:
        order = make_order(customer, order_status=OrderStatus.PROCESSING)
        repository.get.return_value = order

        await service.update_order_status(order.id, OrderStatus.PROCESSING, admin)

        repository.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_payment_status(
        self, service, repository, make_order, customer, admin
    ) -> None:
        order = make_order(customer)
        repository.get.return_value = order

        result = await service.update_payment_status(order.id, PaymentStatus.FAILED, admin)

        assert result.payment_status == PaymentStatus.FAILED
        assert result.updated_at == NOW
        repository.save.assert_awaited_once_with(order)

    @pytest.mark.asyncio
    async def test_list_orders_delegates(self, service, repository) -> None:
        filters = OrderFilters(status=OrderStatus.SHIPPED)

        await service.list_orders(filters, page=3, limit=10)

        repository.list.assert_awaited_once_with(filters, page=3, limit=10)

    @pytest.mark.asyncio
    async def test_statistics_overview(self, service, repository) -> None:
        repository.overview_statistics.return_value = {"total_orders": 4}

        assert await service.get_statistics_overview() == {"total_orders": 4}


# ============================================================================
# Tracking
# ============================================================================


class TestTrackOrder:
    @pytest.mark.asyncio
    async def test_track_order(self, service, repository, settings_provider, make_order, customer) -> None:
        order = make_order(customer)
        repository.find_by_order_number_and_email.return_value = order

        view = await service.track_order(order.order_number, customer.email)

        assert view.order_number == order.order_number
        assert view.total == Decimal("33.49")
        settings_provider.get.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_track_unknown_order(self, service, repository) -> None:
        repository.find_by_order_number_and_email.side_effect = OrderNotFoundError()

        with pytest.raises(OrderNotFoundError):
            await service.track_order("ORD-UNKNOWN", "nobody@example.com")


def test_unknown_id_not_leaked_through_message() -> None:
    error = OrderNotFoundError(order_id=str(uuid4()))

    assert error.message == "Order not found"
