"""
Order persistence boundary.

The repository is the only writer of order rows. It assigns order numbers
(retrying on unique-index collisions), enforces read ownership, and builds
paginated listings whose statistics cover the whole filtered set rather than
the current page.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import and_, case, func, select, true
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.database.models.order import Order, OrderItem
from storefront.database.models.user import User
from storefront.schemas.common import Pagination
from storefront.services.orders.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingMethod,
)
from storefront.services.orders.exceptions import OrderNotFoundError, PersistenceError
from storefront.services.orders.pricing import PricingBreakdown

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "order_status",
        "payment_status",
        "is_archived",
        "processing_at",
        "shipped_at",
        "delivered_at",
        "cancelled_at",
        "notes",
    }
)


class Requester(Protocol):
    id: uuid.UUID

    @property
    def is_admin(self) -> bool: ...


class OrderItemDraft(BaseModel):
    product_id: Optional[uuid.UUID]
    name: str
    quantity: int = Field(ge=1)
    price: Decimal = Field(ge=0)
    thumbnail: Optional[str] = None


class OrderDraft(BaseModel):
    """Everything needed to insert an order except its number."""

    user_id: uuid.UUID
    items: list[OrderItemDraft] = Field(min_length=1)
    shipping_address: dict[str, str]
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING
    shipping_method: ShippingMethod
    pricing: PricingBreakdown
    payment_intent_id: Optional[str] = None
    notes: Optional[str] = None


class OrderFilters(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    user_id: Optional[uuid.UUID] = None
    is_archived: Optional[bool] = None


class OrderStatistics(BaseModel):
    total_revenue: Decimal = Decimal("0.00")
    pending_orders: int = 0
    delivered_orders: int = 0


class OrderPage(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    orders: list[Order]
    pagination: Pagination
    statistics: OrderStatistics


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Build an order number such as ``ORD-20240131120000-1A2B3C``."""
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now.strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:6].upper()}"


def _is_order_number_conflict(error: IntegrityError) -> bool:
    return "order_number" in str(getattr(error, "orig", error))


class OrderRepository:
    """Async data access for orders."""

    def __init__(self, session: AsyncSession, max_number_attempts: Optional[int] = None):
        self.session = session
        self.max_number_attempts = (
            max_number_attempts
            if max_number_attempts is not None
            else get_settings().order_number_max_attempts
        )

    @staticmethod
    def _build_order(draft: OrderDraft, order_number: str) -> Order:
        return Order(
            order_number=order_number,
            user_id=draft.user_id,
            shipping_address=dict(draft.shipping_address),
            payment_method=draft.payment_method,
            payment_status=draft.payment_status,
            order_status=OrderStatus.PENDING,
            shipping_method=draft.shipping_method,
            payment_intent_id=draft.payment_intent_id,
            subtotal=draft.pricing.subtotal,
            shipping_cost=draft.pricing.shipping_cost,
            tax=draft.pricing.tax,
            total_amount=draft.pricing.grand_total,
            notes=draft.notes,
            is_archived=False,
            items=[
                OrderItem(
                    position=position,
                    product_id=item.product_id,
                    name=item.name,
                    quantity=item.quantity,
                    price=item.price,
                    thumbnail=item.thumbnail,
                )
                for position, item in enumerate(draft.items)
            ],
        )

    async def create(self, draft: OrderDraft) -> Order:
        """
        Insert an order with its items.

        Each attempt runs inside a savepoint so a failed insert leaves
        nothing behind. A collision on ``order_number`` triggers a new number.

        Raises:
            PersistenceError: If the insert fails for any other reason or
                every generated number collided
        """
        for attempt in range(1, self.max_number_attempts + 1):
            order = self._build_order(draft, generate_order_number())
            try:
                async with self.session.begin_nested():
                    self.session.add(order)
                    await self.session.flush()
            except IntegrityError as e:
                if _is_order_number_conflict(e) and attempt < self.max_number_attempts:
                    logger.warning(
                        "Order number collision, regenerating",
                        order_number=order.order_number,
                        attempt=attempt,
                    )
                    continue
                logger.error(
                    "Order creation failed - integrity error",
                    user_id=str(draft.user_id),
                    attempt=attempt,
                    error=str(e),
                )
                raise PersistenceError(
                    "Failed to save order",
                    user_id=str(draft.user_id),
                ) from e
            except SQLAlchemyError as e:
                logger.error(
                    "Order creation failed - database error",
                    user_id=str(draft.user_id),
                    error=str(e),
                )
                raise PersistenceError(
                    "Failed to save order",
                    user_id=str(draft.user_id),
                ) from e

            logger.info(
                "Order created",
                order_id=str(order.id),
                order_number=order.order_number,
                item_count=len(order.items),
                total_amount=str(order.total_amount),
            )
            return order

        raise PersistenceError("Could not allocate a unique order number")

    async def get(self, order_id: uuid.UUID) -> Order:
        """
        Load an order without an ownership check.

        Raises:
            OrderNotFoundError: If no order has this id
        """
        try:
            result = await self.session.execute(select(Order).where(Order.id == order_id))
            order = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", order_id=str(order_id), error=str(e))
            raise PersistenceError("Failed to fetch order", order_id=str(order_id)) from e

        if order is None:
            raise OrderNotFoundError(order_id=str(order_id))
        return order

    async def find_by_id(self, order_id: uuid.UUID, requester: Requester) -> Order:
        """
        Load an order the requester is allowed to read.

        Orders owned by someone else are reported exactly like missing ones.

        Raises:
            OrderNotFoundError: If missing or not visible to the requester
        """
        order = await self.get(order_id)
        if requester.is_admin or order.is_owned_by(requester.id):
            return order

        logger.info(
            "Order access denied",
            order_id=str(order_id),
            requester_id=str(requester.id),
        )
        raise OrderNotFoundError(order_id=str(order_id))

    async def find_by_order_number_and_email(self, order_number: str, email: str) -> Order:
        """
        Public tracking lookup.

        Both the order number and the owner's email (case-insensitive) must
        match.

        Raises:
            OrderNotFoundError: If either does not match
        """
        normalized_email = email.strip().lower()
        stmt = (
            select(Order)
            .join(User, Order.user_id == User.id)
            .where(
                and_(
                    Order.order_number == order_number.strip(),
                    func.lower(User.email) == normalized_email,
                )
            )
        )
        try:
            result = await self.session.execute(stmt)
            order = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to look up order for tracking", error=str(e))
            raise PersistenceError("Failed to fetch order") from e

        if order is None:
            raise OrderNotFoundError(order_number=order_number)
        return order

    @staticmethod
    def _build_conditions(filters: OrderFilters) -> list[Any]:
        conditions: list[Any] = []
        if filters.status is not None:
            conditions.append(Order.order_status == filters.status)
        if filters.payment_status is not None:
            conditions.append(Order.payment_status == filters.payment_status)
        if filters.start_date is not None:
            conditions.append(Order.created_at >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(Order.created_at <= filters.end_date)
        if filters.user_id is not None:
            conditions.append(Order.user_id == filters.user_id)
        if filters.is_archived is not None:
            conditions.append(Order.is_archived == filters.is_archived)
        return conditions

    @staticmethod
    def build_statistics_statement(filters: OrderFilters):
        """Aggregate over every order matching ``filters``, unpaginated."""
        conditions = OrderRepository._build_conditions(filters)
        return select(
            func.count(Order.id).label("total_orders"),
            func.coalesce(
                func.sum(
                    case(
                        (Order.order_status != OrderStatus.CANCELLED, Order.total_amount),
                        else_=0,
                    )
                ),
                0,
            ).label("total_revenue"),
            func.count(Order.id)
            .filter(Order.order_status == OrderStatus.PENDING)
            .label("pending_orders"),
            func.count(Order.id)
            .filter(Order.order_status == OrderStatus.DELIVERED)
            .label("delivered_orders"),
        ).where(and_(true(), *conditions))

    async def list(
        self,
        filters: Optional[OrderFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> OrderPage:
        """
        List orders newest first with whole-set statistics.

        Args:
            filters: Optional status, payment status, date range, owner filters
            page: 1-based page number
            limit: Page size

        Returns:
            OrderPage with the page of orders, pagination and statistics
        """
        filters = filters or OrderFilters()
        page = max(page, 1)
        limit = max(limit, 1)
        conditions = self._build_conditions(filters)

        page_stmt = (
            select(Order)
            .where(and_(true(), *conditions))
            .order_by(Order.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        try:
            stats_row = (
                await self.session.execute(self.build_statistics_statement(filters))
            ).one()
            orders = (await self.session.execute(page_stmt)).scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list orders", error=str(e))
            raise PersistenceError("Failed to list orders") from e

        total = int(stats_row.total_orders or 0)
        statistics = OrderStatistics(
            total_revenue=Decimal(stats_row.total_revenue or 0).quantize(Decimal("0.01")),
            pending_orders=int(stats_row.pending_orders or 0),
            delivered_orders=int(stats_row.delivered_orders or 0),
        )

        logger.debug(
            "Orders listed",
            page=page,
            limit=limit,
            returned=len(orders),
            total=total,
        )

        return OrderPage(
            orders=list(orders),
            pagination=Pagination.build(page, limit, total),
            statistics=statistics,
        )

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        is_archived: Optional[bool] = None,
    ) -> Sequence[Order]:
        """All orders of a customer, newest first."""
        conditions = self._build_conditions(
            OrderFilters(user_id=user_id, is_archived=is_archived)
        )
        stmt = select(Order).where(and_(*conditions)).order_by(Order.created_at.desc())
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to list user orders", user_id=str(user_id), error=str(e))
            raise PersistenceError("Failed to list orders", user_id=str(user_id)) from e
        return result.scalars().all()

    async def count_for_user(self, user_id: uuid.UUID) -> int:
        try:
            result = await self.session.execute(
                select(func.count(Order.id)).where(Order.user_id == user_id)
            )
        except SQLAlchemyError as e:
            logger.error("Failed to count user orders", user_id=str(user_id), error=str(e))
            raise PersistenceError("Failed to count orders", user_id=str(user_id)) from e
        return int(result.scalar_one() or 0)

    async def update(self, order_id: uuid.UUID, **patch: Any) -> Order:
        """
        Apply a partial update.

        Raises:
            OrderNotFoundError: If no order has this id
            ValueError: If ``patch`` names a field that may not be updated
        """
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        order = await self.get(order_id)
        for field, value in patch.items():
            setattr(order, field, value)
        order.updated_at = datetime.now(timezone.utc)
        return await self.save(order)

    async def save(self, order: Order) -> Order:
        """Flush changes made to a loaded order."""
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to save order", order_id=str(order.id), error=str(e))
            raise PersistenceError("Failed to save order", order_id=str(order.id)) from e
        return order

    async def overview_statistics(self) -> dict[str, Any]:
        """Order counts per status plus revenue from non-cancelled orders."""
        stmt = select(
            Order.order_status,
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount), 0),
        ).group_by(Order.order_status)

        try:
            rows = (await self.session.execute(stmt)).all()
        except SQLAlchemyError as e:
            logger.error("Failed to compute order statistics", error=str(e))
            raise PersistenceError("Failed to compute order statistics") from e

        counts = {status: 0 for status in OrderStatus}
        revenue = Decimal("0.00")
        for status, count, amount in rows:
            status = OrderStatus(status)
            counts[status] = int(count)
            if status != OrderStatus.CANCELLED:
                revenue += Decimal(amount)

        return {
            "total_orders": sum(counts.values()),
            "pending_orders": counts[OrderStatus.PENDING],
            "processing_orders": counts[OrderStatus.PROCESSING],
            "shipped_orders": counts[OrderStatus.SHIPPED],
            "delivered_orders": counts[OrderStatus.DELIVERED],
            "cancelled_orders": counts[OrderStatus.CANCELLED],
            "total_revenue": revenue.quantize(Decimal("0.01")),
        }
