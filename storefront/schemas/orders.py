"""
Order request and response schemas.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.database.models.order import Order, OrderItem
from storefront.schemas.common import Money
from storefront.services.orders.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingMethod,
)


class ShippingAddress(BaseModel):
    """Delivery address; every field is a required non-empty string."""

    model_config = ConfigDict(str_strip_whitespace=True)

    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=1, max_length=30)


class CreateOrderRequest(BaseModel):
    """Checkout request. Items and prices come from the server-side cart."""

    shipping_address: ShippingAddress
    payment_method: PaymentMethod = PaymentMethod.COD
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    notes: Optional[str] = Field(None, max_length=1000)
    payment_intent_id: Optional[str] = Field(None, max_length=255)

    @field_validator("payment_method", mode="before")
    @classmethod
    def validate_payment_method(cls, v):
        if not isinstance(v, str) or v.strip().lower() not in {m.value for m in PaymentMethod}:
            raise ValueError(
                "Invalid payment method. Valid values are: "
                + ", ".join(m.value for m in PaymentMethod)
            )
        return v


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus


class UpdatePaymentStatusRequest(BaseModel):
    status: PaymentStatus


class OrderItemResponse(BaseModel):
    product_id: Optional[UUID]
    name: str
    quantity: int
    price: Money
    thumbnail: Optional[str] = None
    line_total: Money

    @classmethod
    def from_item(cls, item: OrderItem) -> "OrderItemResponse":
        return cls(
            product_id=item.product_id,
            name=item.name,
            quantity=item.quantity,
            price=item.price,
            thumbnail=item.thumbnail,
            line_total=item.line_total,
        )


class OrderResponse(BaseModel):
    """Order as returned to customers and staff."""

    id: UUID
    order_number: str
    user_id: Optional[UUID]
    customer_name: str
    customer_email: Optional[str]
    items: list[OrderItemResponse]
    shipping_address: dict[str, str]
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    order_status: OrderStatus
    shipping_method: ShippingMethod
    subtotal: Money
    shipping_cost: Money
    tax: Money
    total_amount: Money
    notes: Optional[str] = None
    is_archived: bool
    can_cancel: bool
    processing_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            items=[OrderItemResponse.from_item(item) for item in order.items],
            shipping_address=dict(order.shipping_address or {}),
            payment_method=order.payment_method,
            payment_status=order.payment_status,
            order_status=order.order_status,
            shipping_method=order.shipping_method,
            subtotal=order.subtotal,
            shipping_cost=order.shipping_cost,
            tax=order.tax,
            total_amount=order.total_amount,
            notes=order.notes,
            is_archived=order.is_archived,
            can_cancel=order.can_cancel,
            processing_at=order.processing_at,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
            cancelled_at=order.cancelled_at,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class CheckoutResponse(BaseModel):
    order: OrderResponse
    email_verification_required: bool = False


class OrderStatisticsResponse(BaseModel):
    total_revenue: Money
    pending_orders: int
    delivered_orders: int


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    statistics: OrderStatisticsResponse


class OrdersOverviewResponse(BaseModel):
    total_orders: int
    pending_orders: int
    processing_orders: int
    shipped_orders: int
    delivered_orders: int
    cancelled_orders: int
    total_revenue: Money
