"""
Server-side shopping cart.

Each authenticated user owns at most one cart. Lines reference products and
cache the unit price seen when the line was last written; checkout charges
that cached price and snapshots it onto the order.
"""

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database.base import BaseModel
from storefront.database.models.product import Product

if TYPE_CHECKING:
    from storefront.database.models.user import User


class Cart(BaseModel):
    """Shopping cart owned by a single user."""

    __tablename__ = "carts"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    items: Mapped[list["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="CartItem.created_at",
    )

    user: Mapped["User"] = relationship("User", back_populates="cart", lazy="raise")

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def find_item(self, product_id: uuid.UUID) -> Optional["CartItem"]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None


class CartItem(BaseModel):
    """One product line in a cart."""

    __tablename__ = "cart_items"

    cart_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default="1",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Unit price when the line was last written",
    )

    cart: Mapped["Cart"] = relationship("Cart", back_populates="items", lazy="raise")

    product: Mapped[Product] = relationship("Product", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_cart_items_price_non_negative"),
    )

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity
