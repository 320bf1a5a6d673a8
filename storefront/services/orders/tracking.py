"""
Public order tracking view.

The timeline always lists the same five fulfillment steps. ``completed``
follows the order's position on the fulfillment path and ``date`` comes from
the recorded milestone timestamps. A cancelled order shows only the steps it
reached, followed by a ``cancelled`` step.
"""

from datetime import datetime, timedelta
from typing import Callable, NamedTuple, Optional

from pydantic import BaseModel

from storefront.core.logging import get_logger
from storefront.database.models.order import Order
from storefront.schemas.common import Money
from storefront.services.orders.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingMethod,
)
from storefront.services.settings.provider import StoreConfig

logger = get_logger(__name__)


class TrackingStep(BaseModel):
    status: str
    title: str
    description: str
    completed: bool
    date: Optional[datetime] = None


class TrackingItem(BaseModel):
    name: str
    quantity: int
    price: Money
    thumbnail: Optional[str] = None


class TrackingView(BaseModel):
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    shipping_method: ShippingMethod
    created_at: datetime
    estimated_delivery: Optional[datetime]
    delivery_days: str
    timeline: list[TrackingStep]
    shipping_address: dict[str, str]
    items: list[TrackingItem]
    subtotal: Money
    shipping_cost: Money
    tax: Money
    total: Money


class _StepDefinition(NamedTuple):
    status: str
    title: str
    description: str
    rank: int
    timestamp: Callable[[Order], Optional[datetime]]


STEPS: list[_StepDefinition] = [
    _StepDefinition(
        status="confirmed",
        title="Order Confirmed",
        description="Your order has been received and confirmed",
        rank=OrderStatus.PENDING.rank,
        timestamp=lambda order: order.created_at,
    ),
    _StepDefinition(
        status="processing",
        title="Processing",
        description="Your order is being prepared",
        rank=OrderStatus.PROCESSING.rank,
        timestamp=lambda order: order.processing_at,
    ),
    _StepDefinition(
        status="shipped",
        title="Shipped",
        description="Your order has been shipped",
        rank=OrderStatus.SHIPPED.rank,
        timestamp=lambda order: order.shipped_at,
    ),
    # No status of its own; completes together with delivery.
    _StepDefinition(
        status="out_for_delivery",
        title="Out for Delivery",
        description="Your order is out for delivery",
        rank=OrderStatus.DELIVERED.rank,
        timestamp=lambda order: None,
    ),
    _StepDefinition(
        status="delivered",
        title="Delivered",
        description="Your order has been delivered",
        rank=OrderStatus.DELIVERED.rank,
        timestamp=lambda order: order.delivered_at,
    ),
]

PENDING_DELIVERY_DESCRIPTION = "Estimated delivery"


class OrderTrackingProjector:
    """Builds :class:`TrackingView` objects; pure apart from logging."""

    def estimated_delivery(self, order: Order, config: StoreConfig) -> Optional[datetime]:
        if order.order_status == OrderStatus.CANCELLED:
            return None
        if order.order_status == OrderStatus.DELIVERED and order.delivered_at is not None:
            return order.delivered_at
        if order.created_at is None:
            return None
        return order.created_at + timedelta(days=config.max_delivery_days(order.shipping_method))

    def timeline(self, order: Order) -> list[TrackingStep]:
        if order.order_status == OrderStatus.CANCELLED:
            return self._cancelled_timeline(order)

        current_rank = order.order_status.rank
        steps = []
        for step in STEPS:
            completed = current_rank >= step.rank
            description = step.description
            if step.status == "delivered" and not completed:
                description = PENDING_DELIVERY_DESCRIPTION
            steps.append(
                TrackingStep(
                    status=step.status,
                    title=step.title,
                    description=description,
                    completed=completed,
                    date=step.timestamp(order) if completed else None,
                )
            )
        return steps

    def _cancelled_timeline(self, order: Order) -> list[TrackingStep]:
        steps = []
        for step in STEPS:
            reached_at = step.timestamp(order)
            if reached_at is None:
                break
            steps.append(
                TrackingStep(
                    status=step.status,
                    title=step.title,
                    description=step.description,
                    completed=True,
                    date=reached_at,
                )
            )
        steps.append(
            TrackingStep(
                status=OrderStatus.CANCELLED.value,
                title="Cancelled",
                description="Your order has been cancelled",
                completed=True,
                date=order.cancelled_at,
            )
        )
        return steps

    def project(self, order: Order, config: StoreConfig) -> TrackingView:
        view = TrackingView(
            order_number=order.order_number,
            status=order.order_status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            shipping_method=order.shipping_method,
            created_at=order.created_at,
            estimated_delivery=self.estimated_delivery(order, config),
            delivery_days=config.delivery_days(order.shipping_method),
            timeline=self.timeline(order),
            shipping_address=dict(order.shipping_address or {}),
            items=[
                TrackingItem(
                    name=item.name,
                    quantity=item.quantity,
                    price=item.price,
                    thumbnail=item.thumbnail,
                )
                for item in order.items
            ],
            subtotal=order.subtotal,
            shipping_cost=order.shipping_cost,
            tax=order.tax,
            total=order.total_amount,
        )
        logger.debug(
            "Tracking view projected",
            order_number=order.order_number,
            status=order.order_status.value,
            steps=len(view.timeline),
        )
        return view
