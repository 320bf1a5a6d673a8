"""Catalogue products as seen by checkout: price, stock and thumbnail."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database.base import BaseModel


class Product(BaseModel):
    """
    Sellable product.

    Orders snapshot ``name``, ``price`` and ``thumbnail`` so later catalogue
    edits never alter historical orders. ``stock`` is decremented at checkout
    and restored when an order is cancelled.
    """

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    price: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)

    stock: Mapped[int] = mapped_column(nullable=False, default=0)

    thumbnail: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name!r}, stock={self.stock})>"
