"""
Tests for the order status tables and OrderStateMachine.

Covers transition legality, same-status no-ops, customer cancellation,
milestone timestamps, cash on delivery reconciliation and stock restoration.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from storefront.services.orders.enums import (
    ORDER_STATUS_TRANSITIONS,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from storefront.services.orders.exceptions import (
    InvalidTransitionError,
    OrderNotCancellableError,
)
from storefront.services.orders.state_machine import (
    REACTIVATION_MESSAGE,
    OrderStateMachine,
)

NOW = datetime(2024, 3, 2, 9, 30, tzinfo=timezone.utc)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def mock_products() -> Mock:
    products = Mock()
    products.restore_stock = AsyncMock()
    return products


@pytest.fixture
def state_machine(mock_products: Mock) -> OrderStateMachine:
    return OrderStateMachine(products=mock_products, clock=lambda: NOW)


@pytest.fixture
def order(make_order, customer):
    return make_order(customer)


# ============================================================================
# Transition Table Tests
# ============================================================================


class TestTransitionTable:
    """Test the exhaustive status transition table."""

    def test_every_status_has_an_entry(self) -> None:
        assert set(ORDER_STATUS_TRANSITIONS) == set(OrderStatus)

    @pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_terminal_statuses_have_no_exits(self, terminal: OrderStatus) -> None:
        assert get_allowed_order_transitions(terminal) == set()
        assert terminal.is_terminal()

    def test_admin_may_move_backwards_before_delivery(self) -> None:
        assert validate_order_status_transition(OrderStatus.SHIPPED, OrderStatus.PENDING)
        assert validate_order_status_transition(OrderStatus.PROCESSING, OrderStatus.PENDING)

    def test_same_status_is_allowed(self) -> None:
        assert validate_order_status_transition(OrderStatus.DELIVERED, OrderStatus.DELIVERED)

    def test_allowed_transitions_returns_copy(self) -> None:
        allowed = get_allowed_order_transitions(OrderStatus.PENDING)
        allowed.clear()

        assert get_allowed_order_transitions(OrderStatus.PENDING)

    def test_customer_cancellable_statuses(self) -> None:
        assert OrderStatus.PENDING.can_cancel()
        assert OrderStatus.PROCESSING.can_cancel()
        assert not OrderStatus.SHIPPED.can_cancel()
        assert not OrderStatus.DELIVERED.can_cancel()

    def test_from_string_rejects_unknown_status(self) -> None:
        with pytest.raises(ValueError, match="Invalid order status"):
            OrderStatus.from_string("returned")


class TestPaymentMethod:
    """Test legacy payment method handling."""

    @pytest.mark.parametrize("stored", ["paypal", "bitcoin", "", None])
    def test_unknown_values_read_as_cod(self, stored) -> None:
        assert PaymentMethod.from_storage(stored) == PaymentMethod.COD

    def test_current_values_round_trip(self) -> None:
        assert PaymentMethod.from_storage("card") == PaymentMethod.CARD
        assert PaymentMethod.from_storage("COD") == PaymentMethod.COD

    def test_only_card_requires_confirmation(self) -> None:
        assert PaymentMethod.CARD.requires_confirmation()
        assert not PaymentMethod.COD.requires_confirmation()


# ============================================================================
# Validation Tests
# ============================================================================


class TestValidateTransition:
    """Test OrderStateMachine.validate_transition."""

    def test_initialization_covers_every_status(self, state_machine: OrderStateMachine) -> None:
        assert set(state_machine._side_effects) == set(OrderStatus)

    def test_valid_transition(self, state_machine, order) -> None:
        assert state_machine.validate_transition(order, OrderStatus.PROCESSING) is True

    def test_same_status_is_noop(self, state_machine, order) -> None:
        assert state_machine.validate_transition(order, OrderStatus.PENDING) is False

    def test_leaving_delivered_is_rejected(self, state_machine, order) -> None:
        order.order_status = OrderStatus.DELIVERED

        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.validate_transition(order, OrderStatus.SHIPPED)

        assert exc_info.value.current_state == OrderStatus.DELIVERED
        assert exc_info.value.target_state == OrderStatus.SHIPPED
        assert exc_info.value.context["allowed_transitions"] == []

    def test_reactivating_cancelled_order_explains_why(self, state_machine, order) -> None:
        order.order_status = OrderStatus.CANCELLED

        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.validate_transition(order, OrderStatus.PENDING)

        assert exc_info.value.message == REACTIVATION_MESSAGE
        assert exc_info.value.status_code == 409

    def test_validation_does_not_mutate(self, state_machine, order) -> None:
        state_machine.validate_transition(order, OrderStatus.SHIPPED)

        assert order.order_status == OrderStatus.PENDING
        assert order.shipped_at is None


# ============================================================================
# Side Effect Tests
# ============================================================================


class TestApplyTransition:
    """Test status changes and their side effects."""

    @pytest.mark.asyncio
    async def test_processing_sets_timestamp(self, state_machine, order) -> None:
        changed = await state_machine.apply_transition(order, OrderStatus.PROCESSING)

        assert changed is True
        assert order.order_status == OrderStatus.PROCESSING
        assert order.processing_at == NOW
        assert order.updated_at == NOW

    @pytest.mark.asyncio
    async def test_same_status_changes_nothing(self, state_machine, order) -> None:
        before = order.updated_at

        changed = await state_machine.apply_transition(order, OrderStatus.PENDING)

        assert changed is False
        assert order.updated_at == before

    @pytest.mark.asyncio
    async def test_shipping_fills_missing_milestones(self, state_machine, order) -> None:
        await state_machine.apply_transition(order, OrderStatus.SHIPPED)

        assert order.processing_at == NOW
        assert order.shipped_at == NOW

    @pytest.mark.asyncio
    async def test_existing_milestones_are_kept(self, state_machine, order) -> None:
        earlier = NOW - timedelta(days=1)
        order.order_status = OrderStatus.PROCESSING
        order.processing_at = earlier

        await state_machine.apply_transition(order, OrderStatus.SHIPPED)

        assert order.processing_at == earlier
        assert order.shipped_at == NOW

    @pytest.mark.asyncio
    async def test_delivery_marks_cod_order_paid(self, state_machine, order) -> None:
        order.order_status = OrderStatus.SHIPPED

        await state_machine.apply_transition(order, OrderStatus.DELIVERED)

        assert order.delivered_at == NOW
        assert order.payment_status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_delivery_keeps_failed_card_payment(self, state_machine, order) -> None:
        order.payment_method = PaymentMethod.CARD
        order.payment_status = PaymentStatus.FAILED

        await state_machine.apply_transition(order, OrderStatus.DELIVERED)

        assert order.payment_status == PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_cancellation_restores_stock(self, state_machine, order, mock_products) -> None:
        item = order.items[0]

        await state_machine.apply_transition(order, OrderStatus.CANCELLED, actor_id=uuid4())

        assert order.cancelled_at == NOW
        mock_products.restore_stock.assert_awaited_once_with(item.product_id, item.quantity)

    @pytest.mark.asyncio
    async def test_cancellation_without_product_repository(self, order) -> None:
        machine = OrderStateMachine(clock=lambda: NOW)

        assert await machine.apply_transition(order, OrderStatus.CANCELLED) is True
        assert order.cancelled_at == NOW


# ============================================================================
# Customer Cancellation Tests
# ============================================================================


class TestCancelByCustomer:
    """Test the customer cancellation rule."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [OrderStatus.PENDING, OrderStatus.PROCESSING])
    async def test_cancel_before_shipping(self, state_machine, order, customer, status) -> None:
        order.order_status = status

        assert await state_machine.cancel_by_customer(order, customer.id) is True
        assert order.order_status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    async def test_cannot_cancel_after_shipping(
        self, state_machine, order, customer, mock_products, status
    ) -> None:
        order.order_status = status

        with pytest.raises(OrderNotCancellableError, match="Current status"):
            await state_machine.cancel_by_customer(order, customer.id)

        assert order.order_status == status
        mock_products.restore_stock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancelling_twice_is_idempotent(
        self, state_machine, order, customer, mock_products
    ) -> None:
        order.order_status = OrderStatus.CANCELLED

        assert await state_machine.cancel_by_customer(order, customer.id) is False
        mock_products.restore_stock.assert_not_awaited()


class TestUpdatePaymentStatus:
    """Test free-form payment status changes."""

    def test_any_change_is_allowed(self, state_machine, order) -> None:
        order.payment_status = PaymentStatus.PAID

        assert state_machine.update_payment_status(order, PaymentStatus.FAILED) is True
        assert order.payment_status == PaymentStatus.FAILED
        assert order.updated_at == NOW

    def test_same_value_is_noop(self, state_machine, order) -> None:
        assert state_machine.update_payment_status(order, PaymentStatus.PENDING) is False
