"""
Pytest configuration and shared test fixtures.

Provides builders for transient ORM objects (users, products, carts and
orders), a mocked async session and the default store configuration.
Nothing here talks to PostgreSQL, Redis, Celery or AWS.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models.cart import Cart, CartItem
from storefront.database.models.order import Order, OrderItem
from storefront.database.models.product import Product
from storefront.database.models.user import AccountStatus, User, UserRole
from storefront.services.orders.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingMethod,
)
from storefront.services.settings.provider import StoreConfig

FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

SHIPPING_ADDRESS = {
    "street": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62701",
    "country": "US",
    "phone": "+1-555-0100",
}


class FakeSavepoint:
    """Async context manager standing in for ``session.begin_nested()``."""

    async def __aenter__(self) -> "FakeSavepoint":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


# ============================================================================
# Session
# ============================================================================


@pytest.fixture
def mock_session() -> AsyncMock:
    """Create mock async database session."""
    session = AsyncMock(spec=AsyncSession)
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    session.begin_nested = MagicMock(side_effect=lambda: FakeSavepoint())
    return session


@pytest.fixture
def store_config() -> StoreConfig:
    """Default store configuration: 10% tax, free shipping from 50."""
    return StoreConfig()


# ============================================================================
# Model builders
# ============================================================================


@pytest.fixture
def make_user() -> Callable[..., User]:
    def _make(**overrides: Any) -> User:
        values = {
            "id": uuid4(),
            "email": "jane@example.com",
            "name": "Jane Doe",
            "role": UserRole.CUSTOMER,
            "status": AccountStatus.ACTIVE,
            "is_email_verified": True,
            "total_orders": 0,
            "total_spent": Decimal("0.00"),
        }
        values.update(overrides)
        return User(**values)

    return _make


@pytest.fixture
def customer(make_user) -> User:
    return make_user()


@pytest.fixture
def admin(make_user) -> User:
    return make_user(email="admin@example.com", name="Store Admin", role=UserRole.ADMIN)


@pytest.fixture
def make_product() -> Callable[..., Product]:
    def _make(**overrides: Any) -> Product:
        values = {
            "id": uuid4(),
            "name": "Ceramic Mug",
            "price": Decimal("12.50"),
            "stock": 10,
            "thumbnail": "https://cdn.example.com/mug.jpg",
            "is_active": True,
        }
        values.update(overrides)
        return Product(**values)

    return _make


@pytest.fixture
def make_cart() -> Callable[..., Cart]:
    def _make(user: User, lines: Optional[list[tuple[Product, int]]] = None) -> Cart:
        cart = Cart(id=uuid4(), user_id=user.id, items=[])
        for product, quantity in lines or []:
            cart.items.append(
                CartItem(
                    id=uuid4(),
                    cart_id=cart.id,
                    product_id=product.id,
                    product=product,
                    quantity=quantity,
                    price=product.price,
                )
            )
        return cart

    return _make


@pytest.fixture
def make_order() -> Callable[..., Order]:
    def _make(
        user: Optional[User] = None,
        items: Optional[list[OrderItem]] = None,
        **overrides: Any,
    ) -> Order:
        values = {
            "id": uuid4(),
            "order_number": "ORD-20240301120000-ABC123",
            "user_id": user.id if user is not None else None,
            "shipping_address": dict(SHIPPING_ADDRESS),
            "payment_method": PaymentMethod.COD,
            "payment_status": PaymentStatus.PENDING,
            "order_status": OrderStatus.PENDING,
            "shipping_method": ShippingMethod.STANDARD,
            "subtotal": Decimal("25.00"),
            "shipping_cost": Decimal("5.99"),
            "tax": Decimal("2.50"),
            "total_amount": Decimal("33.49"),
            "is_archived": False,
            "created_at": FIXED_NOW,
            "updated_at": FIXED_NOW,
        }
        values.update(overrides)
        order = Order(**values)
        order.user = user
        order.items = items if items is not None else [
            OrderItem(
                id=uuid4(),
                position=0,
                product_id=uuid4(),
                name="Ceramic Mug",
                quantity=2,
                price=Decimal("12.50"),
                thumbnail="https://cdn.example.com/mug.jpg",
            )
        ]
        return order

    return _make


@pytest.fixture
def shipping_address() -> dict[str, str]:
    return dict(SHIPPING_ADDRESS)


# ============================================================================
# API
# ============================================================================


@pytest.fixture
def app(mock_session):
    """Application with the database session replaced by ``mock_session``."""
    from storefront.api.deps import get_optional_redis
    from storefront.core.rate_limit import limiter
    from storefront.database.connection import get_db
    from storefront.main import app

    async def _get_db():
        yield mock_session

    limiter.reset()
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_optional_redis] = lambda: None
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def auth_headers(mock_session) -> Callable[[User], dict[str, str]]:
    """Bearer headers for ``user``; the session resolves the token to it."""
    from storefront.core.security import create_access_token

    def _headers(user: User) -> dict[str, str]:
        mock_session.get.return_value = user
        token = create_access_token(user.id, role=user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers
