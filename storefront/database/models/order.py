"""
Order aggregate: the order row, its snapshotted items and pricing.

Amounts are stored as ``Numeric(10, 2)``. The database enforces the
pricing invariant ``total_amount = subtotal + shipping_cost + tax`` within
one cent, and ``order_number`` uniqueness.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from storefront.database.base import BaseModel
from storefront.services.orders.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingMethod,
)

if TYPE_CHECKING:
    from storefront.database.models.user import User

DELETED_USER_NAME = "Deleted User"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class PaymentMethodType(TypeDecorator):
    """
    Payment method column stored as plain text.

    Values written before the current method set (``paypal`` and anything
    else unknown) load as :attr:`PaymentMethod.COD` instead of failing.
    """

    impl = String(20)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return PaymentMethod(value).value

    def process_result_value(self, value, dialect):
        return PaymentMethod.from_storage(value)


class Order(BaseModel):
    """
    Customer order.

    Attributes:
        order_number: Human facing identifier, assigned once at creation
        user_id: Placing customer, null once the account is deleted
        shipping_address: street, city, state, zip_code, country, phone
        payment_method: cod or card
        payment_status: pending, paid or failed
        order_status: pending, processing, shipped, delivered or cancelled
        shipping_method: standard or express
        payment_intent_id: Payment confirmation token for card orders
        subtotal: Sum of item price times quantity
        shipping_cost: Shipping charged
        tax: Tax charged
        total_amount: subtotal + shipping_cost + tax
        notes: Optional customer notes
        is_archived: Customer controlled visibility flag
        processing_at: When the order entered processing
        shipped_at: When the order shipped
        delivered_at: When the order was delivered
        cancelled_at: When the order was cancelled
    """

    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
    )

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    shipping_address: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        PaymentMethodType(),
        nullable=False,
        default=PaymentMethod.COD,
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status", native_enum=False,
                values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )

    order_status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status", native_enum=False,
                values_callable=_enum_values),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )

    shipping_method: Mapped[ShippingMethod] = mapped_column(
        SQLEnum(ShippingMethod, name="shipping_method", native_enum=False,
                values_callable=_enum_values),
        nullable=False,
        default=ShippingMethod.STANDARD,
    )

    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)

    shipping_cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )

    tax: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_archived: Mapped[bool] = mapped_column(nullable=False, default=False)

    processing_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    shipped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    user: Mapped[Optional["User"]] = relationship("User", lazy="selectin")

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )

    __table_args__ = (
        Index("ix_orders_user_created", "user_id", "created_at"),
        Index("ix_orders_status_created", "order_status", "created_at"),
        CheckConstraint("subtotal >= 0", name="ck_orders_subtotal_non_negative"),
        CheckConstraint("shipping_cost >= 0", name="ck_orders_shipping_cost_non_negative"),
        CheckConstraint("tax >= 0", name="ck_orders_tax_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_amount_non_negative"),
        CheckConstraint(
            "abs(total_amount - (subtotal + shipping_cost + tax)) <= 0.01",
            name="ck_orders_total_matches_components",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, order_number={self.order_number}, "
            f"order_status={self.order_status.value}, total_amount={self.total_amount})>"
        )

    @property
    def customer_name(self) -> str:
        if self.user is None:
            return DELETED_USER_NAME
        return self.user.name

    @property
    def customer_email(self) -> Optional[str]:
        return self.user.email if self.user is not None else None

    @property
    def can_cancel(self) -> bool:
        return self.order_status.can_cancel()

    def is_owned_by(self, user_id: uuid.UUID) -> bool:
        return self.user_id is not None and self.user_id == user_id


class OrderItem(BaseModel):
    """
    Snapshot of a purchased product.

    ``product_id`` is kept for stock restoration but may dangle once the
    product is removed; ``name``, ``price`` and ``thumbnail`` are copies.
    """

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
    )

    position: Mapped[int] = mapped_column(nullable=False, default=0)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    quantity: Mapped[int] = mapped_column(nullable=False)

    price: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)

    thumbnail: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="items", lazy="raise")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_order_items_price_non_negative"),
    )

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity
