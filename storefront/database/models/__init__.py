"""
Database models.

Importing this package registers every table on ``Base.metadata`` for
Alembic and for relationship resolution.
"""

from storefront.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from storefront.database.models.cart import Cart, CartItem
from storefront.database.models.order import Order, OrderItem
from storefront.database.models.product import Product
from storefront.database.models.store_settings import StoreSettings
from storefront.database.models.user import AccountStatus, User, UserRole

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "AccountStatus",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "Product",
    "StoreSettings",
    "User",
    "UserRole",
]
