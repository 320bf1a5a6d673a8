"""
Tests for OrderRepository against a mocked async session.
"""

import re
from decimal import Decimal
from unittest.mock import MagicMock, Mock
from uuid import uuid4

import pytest
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError

from storefront.database.models.cart import Cart, CartItem
from storefront.database.models.order import Order, OrderItem
from storefront.database.models.user import User
from storefront.services.orders.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingMethod,
)
from storefront.services.orders.exceptions import OrderNotFoundError, PersistenceError
from storefront.services.orders.pricing import PricingBreakdown
from storefront.services.orders.repository import (
    OrderDraft,
    OrderFilters,
    OrderItemDraft,
    OrderRepository,
    generate_order_number,
)


def scalar_result(value) -> Mock:
    result = Mock()
    result.scalar_one_or_none.return_value = value
    result.scalar_one.return_value = value
    return result


def order_number_conflict() -> IntegrityError:
    return IntegrityError(
        "INSERT INTO orders",
        {},
        Exception('duplicate key value violates unique constraint "ix_orders_order_number"'),
    )


@pytest.fixture
def repository(mock_session) -> OrderRepository:
    return OrderRepository(mock_session, max_number_attempts=3)


@pytest.fixture
def draft(customer, shipping_address) -> OrderDraft:
    return OrderDraft(
        user_id=customer.id,
        items=[
            OrderItemDraft(
                product_id=uuid4(),
                name="Ceramic Mug",
                quantity=2,
                price=Decimal("12.50"),
            )
        ],
        shipping_address=shipping_address,
        payment_method=PaymentMethod.COD,
        shipping_method=ShippingMethod.STANDARD,
        pricing=PricingBreakdown(
            subtotal=Decimal("25.00"),
            shipping_cost=Decimal("5.99"),
            tax=Decimal("2.50"),
            grand_total=Decimal("33.49"),
            shipping_method=ShippingMethod.STANDARD,
        ),
    )


# ============================================================================
# Order Number Tests
# ============================================================================


def test_order_number_format() -> None:
    assert re.fullmatch(r"ORD-\d{14}-[0-9A-F]{6}", generate_order_number())


# ============================================================================
# Create Tests
# ============================================================================


class TestCreate:
    @pytest.mark.asyncio
    async def test_creates_pending_order_with_items(self, repository, mock_session, draft) -> None:
        order = await repository.create(draft)

        assert order.order_status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.total_amount == Decimal("33.49")
        assert order.is_archived is False
        assert [item.name for item in order.items] == ["Ceramic Mug"]
        assert order.items[0].position == 0
        mock_session.add.assert_called_once_with(order)
        mock_session.begin_nested.assert_called_once()

    @pytest.mark.asyncio
    async def test_retries_on_order_number_collision(self, repository, mock_session, draft) -> None:
        mock_session.flush.side_effect = [order_number_conflict(), None]

        order = await repository.create(draft)

        assert mock_session.add.call_count == 2
        assert mock_session.begin_nested.call_count == 2
        assert order is mock_session.add.call_args_list[1].args[0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, repository, mock_session, draft) -> None:
        mock_session.flush.side_effect = order_number_conflict()

        with pytest.raises(PersistenceError):
            await repository.create(draft)

        assert mock_session.flush.await_count == 3

    @pytest.mark.asyncio
    async def test_other_integrity_errors_are_not_retried(
        self, repository, mock_session, draft
    ) -> None:
        mock_session.flush.side_effect = IntegrityError(
            "INSERT INTO orders", {}, Exception("violates check constraint")
        )

        with pytest.raises(PersistenceError):
            await repository.create(draft)

        assert mock_session.flush.await_count == 1

    def test_draft_requires_items(self, draft) -> None:
        with pytest.raises(ValueError):
            OrderDraft(**{**draft.model_dump(), "items": []})


# ============================================================================
# Lookup Tests
# ============================================================================


class TestFind:
    @pytest.mark.asyncio
    async def test_owner_can_read(self, repository, mock_session, make_order, customer) -> None:
        order = make_order(customer)
        mock_session.execute.return_value = scalar_result(order)

        assert await repository.find_by_id(order.id, customer) is order

    @pytest.mark.asyncio
    async def test_admin_can_read_any_order(
        self, repository, mock_session, make_order, customer, admin
    ) -> None:
        order = make_order(customer)
        mock_session.execute.return_value = scalar_result(order)

        assert await repository.find_by_id(order.id, admin) is order

    @pytest.mark.asyncio
    async def test_other_customer_gets_not_found(
        self, repository, mock_session, make_order, make_user, customer
    ) -> None:
        order = make_order(customer)
        mock_session.execute.return_value = scalar_result(order)

        with pytest.raises(OrderNotFoundError):
            await repository.find_by_id(order.id, make_user(email="other@example.com"))

    @pytest.mark.asyncio
    async def test_deleted_owner_order_hidden_from_customers(
        self, repository, mock_session, make_order, customer
    ) -> None:
        order = make_order(None)
        mock_session.execute.return_value = scalar_result(order)

        with pytest.raises(OrderNotFoundError):
            await repository.find_by_id(order.id, customer)

    @pytest.mark.asyncio
    async def test_missing_order(self, repository, mock_session, customer) -> None:
        mock_session.execute.return_value = scalar_result(None)

        with pytest.raises(OrderNotFoundError):
            await repository.find_by_id(uuid4(), customer)

    @pytest.mark.asyncio
    async def test_database_error_becomes_persistence_error(
        self, repository, mock_session
    ) -> None:
        mock_session.execute.side_effect = OperationalError("SELECT", {}, Exception("gone"))

        with pytest.raises(PersistenceError):
            await repository.get(uuid4())

    @pytest.mark.asyncio
    async def test_tracking_lookup_normalizes_email(self, repository, mock_session, make_order) -> None:
        order = make_order(None)
        mock_session.execute.return_value = scalar_result(order)

        found = await repository.find_by_order_number_and_email(
            " ORD-1 ", "  Jane@Example.COM "
        )

        assert found is order
        stmt = mock_session.execute.await_args.args[0]
        compiled = stmt.compile(dialect=postgresql.dialect())
        assert "jane@example.com" in compiled.params.values()
        assert "ORD-1" in compiled.params.values()

    @pytest.mark.asyncio
    async def test_tracking_lookup_mismatch(self, repository, mock_session) -> None:
        mock_session.execute.return_value = scalar_result(None)

        with pytest.raises(OrderNotFoundError):
            await repository.find_by_order_number_and_email("ORD-1", "x@example.com")


# ============================================================================
# Listing Tests
# ============================================================================


class TestList:
    def test_statistics_statement_covers_whole_filtered_set(self) -> None:
        stmt = OrderRepository.build_statistics_statement(
            OrderFilters(status=OrderStatus.PENDING)
        )
        sql = str(stmt.compile(dialect=postgresql.dialect()))

        assert "LIMIT" not in sql
        assert "OFFSET" not in sql
        assert "FILTER (WHERE" in sql
        assert "coalesce" in sql.lower()

    @pytest.mark.asyncio
    async def test_list_returns_page_with_statistics(
        self, repository, mock_session, make_order, customer
    ) -> None:
        orders = [make_order(customer), make_order(customer)]
        stats_result = Mock()
        stats_result.one.return_value = Mock(
            total_orders=45,
            total_revenue=Decimal("1234.5"),
            pending_orders=7,
            delivered_orders=30,
        )
        page_result = MagicMock()
        page_result.scalars.return_value.all.return_value = orders
        mock_session.execute.side_effect = [stats_result, page_result]

        page = await repository.list(OrderFilters(), page=2, limit=20)

        assert page.orders == orders
        assert page.pagination.total_orders == 45
        assert page.pagination.total_pages == 3
        assert page.pagination.has_next_page is True
        assert page.pagination.has_prev_page is True
        assert page.statistics.total_revenue == Decimal("1234.50")
        assert page.statistics.pending_orders == 7
        assert page.statistics.delivered_orders == 30

    @pytest.mark.asyncio
    async def test_empty_listing(self, repository, mock_session) -> None:
        stats_result = Mock()
        stats_result.one.return_value = Mock(
            total_orders=0, total_revenue=None, pending_orders=0, delivered_orders=0
        )
        page_result = MagicMock()
        page_result.scalars.return_value.all.return_value = []
        mock_session.execute.side_effect = [stats_result, page_result]

        page = await repository.list()

        assert page.pagination.total_pages == 0
        assert page.pagination.has_next_page is False
        assert page.statistics.total_revenue == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_overview_excludes_cancelled_revenue(self, repository, mock_session) -> None:
        result = Mock()
        result.all.return_value = [
            ("pending", 2, Decimal("40.00")),
            ("delivered", 3, Decimal("100.00")),
            ("cancelled", 1, Decimal("999.00")),
        ]
        mock_session.execute.return_value = result

        overview = await repository.overview_statistics()

        assert overview["total_orders"] == 6
        assert overview["cancelled_orders"] == 1
        assert overview["shipped_orders"] == 0
        assert overview["total_revenue"] == Decimal("140.00")


# ============================================================================
# Update Tests
# ============================================================================


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_sets_fields_and_timestamp(
        self, repository, mock_session, make_order, customer
    ) -> None:
        order = make_order(customer)
        before = order.updated_at
        mock_session.execute.return_value = scalar_result(order)

        updated = await repository.update(order.id, is_archived=True)

        assert updated.is_archived is True
        assert updated.updated_at > before
        mock_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_immutable_fields_rejected(self, repository, mock_session) -> None:
        with pytest.raises(ValueError, match="order_number"):
            await repository.update(uuid4(), order_number="ORD-X")

        mock_session.execute.assert_not_awaited()


@pytest.mark.parametrize("model", [Order, OrderItem, Cart, CartItem, User])
def test_relationships_use_supported_loaders(model) -> None:
    for relationship in sa_inspect(model).relationships:
        assert relationship.lazy in {"selectin", "raise"}, f"{model.__name__}.{relationship.key}"
