"""Order state machine with transition validation and side effects.

Legality comes from the exhaustive tables in :mod:`.enums`; this module adds
the customer cancellation rule and the side effects each target status
carries (milestone timestamps, cash-on-delivery reconciliation, stock
restoration).
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional, Set
from uuid import UUID

from storefront.core.logging import get_logger
from storefront.database.models.order import Order
from storefront.services.cart.repository import ProductRepository
from storefront.services.orders.enums import (
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

logger = get_logger(__name__)

REACTIVATION_MESSAGE = (
    "Cannot reactivate a cancelled order. Please ask the customer to place a "
    "NEW order instead. This ensures proper payment authorization, inventory "
    "reservation, and transaction tracking."
)

SideEffect = Callable[[Order, datetime], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStateMachine:
    """State machine for order status changes.

    Validation never mutates the order. :meth:`apply_transition` validates,
    sets the new status and runs the side effect registered for it.
    """

    def __init__(
        self,
        products: Optional[ProductRepository] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.products = products
        self._clock = clock
        self._side_effects: Dict[OrderStatus, SideEffect] = self._initialize_side_effects()

        missing = set(OrderStatus) - set(self._side_effects)
        if missing:
            raise RuntimeError(
                "Side effects missing for: " + ", ".join(sorted(s.value for s in missing))
            )

    def _initialize_side_effects(self) -> Dict[OrderStatus, SideEffect]:
        return {
            OrderStatus.PENDING: self._effect_pending,
            OrderStatus.PROCESSING: self._effect_processing,
            OrderStatus.SHIPPED: self._effect_shipped,
            OrderStatus.DELIVERED: self._effect_delivered,
            OrderStatus.CANCELLED: self._effect_cancelled,
        }

    def validate_transition(self, order: Order, target_status: OrderStatus) -> bool:
        """Check a status change.

        Returns:
            True if the order actually changes status, False for a
            same-status no-op

        Raises:
            InvalidTransitionError: If the move is not allowed
        """
        current_status = order.order_status

        if current_status == target_status:
            return False

        if validate_order_status_transition(current_status, target_status):
            return True

        if current_status == OrderStatus.CANCELLED:
            message = REACTIVATION_MESSAGE
        else:
            message = (
                f"Invalid transition from {current_status.value} to "
                f"{target_status.value}"
            )
        raise InvalidTransitionError(
            message,
            current_state=current_status,
            target_state=target_status,
            order_id=str(order.id),
            allowed_transitions=sorted(
                s.value for s in get_allowed_order_transitions(current_status)
            ),
        )

    async def apply_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        actor_id: Optional[UUID] = None,
    ) -> bool:
        """Move an order to ``target_status`` and run its side effect.

        The caller persists the order.

        Returns:
            True if the order changed, False for a same-status no-op
        """
        if not self.validate_transition(order, target_status):
            logger.info(
                "Status unchanged, skipping transition",
                order_id=str(order.id),
                status=target_status.value,
            )
            return False

        old_status = order.order_status
        now = self._clock()
        order.order_status = target_status
        order.updated_at = now
        await self._side_effects[target_status](order, now)

        logger.info(
            "State transition applied",
            order_id=str(order.id),
            transition=f"{old_status.value}->{target_status.value}",
            actor_id=str(actor_id) if actor_id else None,
        )
        return True

    def ensure_customer_can_cancel(self, order: Order) -> None:
        """Raise unless the customer may still cancel the order themselves."""
        if order.order_status.can_cancel():
            return
        raise OrderNotCancellableError(
            f"Order cannot be cancelled. Current status: {order.order_status.value}",
            current_state=order.order_status,
            target_state=OrderStatus.CANCELLED,
            order_id=str(order.id),
        )

    async def cancel_by_customer(self, order: Order, customer_id: UUID) -> bool:
        if order.order_status == OrderStatus.CANCELLED:
            return False
        self.ensure_customer_can_cancel(order)
        return await self.apply_transition(order, OrderStatus.CANCELLED, actor_id=customer_id)

    def update_payment_status(self, order: Order, payment_status: PaymentStatus) -> bool:
        """Set the payment status; any value is allowed from any value."""
        if order.payment_status == payment_status:
            return False
        old_status = order.payment_status
        order.payment_status = payment_status
        order.updated_at = self._clock()
        logger.info(
            "Payment status updated",
            order_id=str(order.id),
            transition=f"{old_status.value}->{payment_status.value}",
        )
        return True

    def get_allowed_transitions(self, order: Order) -> Set[OrderStatus]:
        return get_allowed_order_transitions(order.order_status)

    async def _effect_pending(self, order: Order, now: datetime) -> None:
        return None

    async def _effect_processing(self, order: Order, now: datetime) -> None:
        if order.processing_at is None:
            order.processing_at = now

    async def _effect_shipped(self, order: Order, now: datetime) -> None:
        if order.processing_at is None:
            order.processing_at = now
        if order.shipped_at is None:
            order.shipped_at = now

    async def _effect_delivered(self, order: Order, now: datetime) -> None:
        await self._effect_shipped(order, now)
        order.delivered_at = now
        # Cash is collected by the courier.
        if (
            order.payment_method == PaymentMethod.COD
            and order.payment_status == PaymentStatus.PENDING
        ):
            order.payment_status = PaymentStatus.PAID
            logger.info("Cash on delivery order marked paid", order_id=str(order.id))

    async def _effect_cancelled(self, order: Order, now: datetime) -> None:
        order.cancelled_at = now
        if self.products is None:
            logger.warning("No product repository, stock not restored", order_id=str(order.id))
            return
        for item in order.items:
            await self.products.restore_stock(item.product_id, item.quantity)
        logger.info(
            "Stock restored for cancelled order",
            order_id=str(order.id),
            item_count=len(order.items),
        )
