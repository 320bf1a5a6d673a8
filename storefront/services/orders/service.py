"""
Order service for customer and staff use cases.

Composes the repository, the state machine and the tracking projector. The
service never commits; the request scoped session commits once the handler
returns successfully.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.order import Order
from storefront.database.models.user import User
from storefront.schemas.orders import CreateOrderRequest
from storefront.services.cart.repository import ProductRepository
from storefront.services.orders.checkout import CheckoutOrchestrator, CheckoutResult
from storefront.services.orders.enums import OrderStatus, PaymentStatus
from storefront.services.orders.exceptions import OrderNotFoundError
from storefront.services.orders.repository import (
    OrderFilters,
    OrderPage,
    OrderRepository,
)
from storefront.services.orders.state_machine import OrderStateMachine
from storefront.services.orders.tracking import OrderTrackingProjector, TrackingView
from storefront.services.settings.provider import StoreSettingsProvider

logger = get_logger(__name__)


class OrderService:
    """
    High level order operations.

    Ownership failures surface as :class:`OrderNotFoundError` so callers
    cannot probe for other customers' order ids.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings_provider: StoreSettingsProvider,
        checkout: Optional[CheckoutOrchestrator] = None,
        repository: Optional[OrderRepository] = None,
        state_machine: Optional[OrderStateMachine] = None,
        tracking: Optional[OrderTrackingProjector] = None,
    ):
        self.session = session
        self.settings_provider = settings_provider
        self.checkout = checkout
        self.repository = repository or OrderRepository(session)
        self.state_machine = state_machine or OrderStateMachine(ProductRepository(session))
        self.tracking = tracking or OrderTrackingProjector()

    async def place_order(self, customer: User, request: CreateOrderRequest) -> CheckoutResult:
        if self.checkout is None:
            raise RuntimeError("OrderService was created without a checkout orchestrator")
        return await self.checkout.place_order(customer, request)

    async def get_order(self, order_id: uuid.UUID, requester: User) -> Order:
        return await self.repository.find_by_id(order_id, requester)

    async def list_my_orders(
        self,
        customer: User,
        is_archived: Optional[bool] = None,
    ) -> Sequence[Order]:
        orders = await self.repository.list_for_user(customer.id, is_archived=is_archived)
        logger.debug("Customer orders listed", user_id=str(customer.id), count=len(orders))
        return orders

    async def cancel_order(self, order_id: uuid.UUID, customer: User) -> Order:
        """
        Cancel one of the customer's own orders.

        Cancelling an already cancelled order succeeds without changes.

        Raises:
            OrderNotFoundError: Unknown order or owned by someone else
            OrderNotCancellableError: Order has already shipped
        """
        order = await self._get_owned(order_id, customer)
        if await self.state_machine.cancel_by_customer(order, customer.id):
            await self.repository.save(order)
            logger.info(
                "Order cancelled by customer",
                order_id=str(order.id),
                user_id=str(customer.id),
            )
        return order

    async def set_archived(self, order_id: uuid.UUID, customer: User, archived: bool) -> Order:
        """Hide or show an order in the customer's own list."""
        order = await self._get_owned(order_id, customer)
        order.is_archived = archived
        order.updated_at = datetime.now(timezone.utc)
        await self.repository.save(order)
        logger.info(
            "Order archive flag changed",
            order_id=str(order_id),
            user_id=str(customer.id),
            is_archived=archived,
        )
        return order

    async def list_orders(
        self,
        filters: Optional[OrderFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> OrderPage:
        return await self.repository.list(filters, page=page, limit=limit)

    async def update_order_status(
        self,
        order_id: uuid.UUID,
        status: OrderStatus,
        admin: User,
    ) -> Order:
        """
        Staff status change.

        Raises:
            OrderNotFoundError: Unknown order
            InvalidTransitionError: Status cannot be left or reached
        """
        order = await self.repository.get(order_id)
        if await self.state_machine.apply_transition(order, status, actor_id=admin.id):
            await self.repository.save(order)
        return order

    async def update_payment_status(
        self,
        order_id: uuid.UUID,
        payment_status: PaymentStatus,
        admin: User,
    ) -> Order:
        order = await self.repository.get(order_id)
        if self.state_machine.update_payment_status(order, payment_status):
            await self.repository.save(order)
            logger.info(
                "Payment status changed by staff",
                order_id=str(order.id),
                admin_id=str(admin.id),
                payment_status=payment_status.value,
            )
        return order

    async def track_order(self, order_number: str, email: str) -> TrackingView:
        order = await self.repository.find_by_order_number_and_email(order_number, email)
        config = await self.settings_provider.get()
        return self.tracking.project(order, config)

    async def get_statistics_overview(self) -> dict[str, Any]:
        return await self.repository.overview_statistics()

    async def _get_owned(self, order_id: uuid.UUID, customer: User) -> Order:
        order = await self.repository.get(order_id)
        if not order.is_owned_by(customer.id):
            logger.info(
                "Order access denied",
                order_id=str(order_id),
                requester_id=str(customer.id),
            )
            raise OrderNotFoundError(order_id=str(order_id))
        return order
