"""
Checkout orchestration: turns the customer's server-side cart into an order.

The sequence is fixed and each step may short-circuit with a domain error:

1. the cart must hold at least one line
2. card payments must carry a confirmation token
3. suspended accounts cannot order
4. unverified customers may place exactly one order
5. every line must still be in stock
6. totals are computed server side and card payments are confirmed
7. order, stock and customer statistics are written in one savepoint
8. the cart is emptied

Only after the savepoint commits are emails enqueued. Failures there are
logged without failing the checkout.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import StorefrontError
from storefront.core.logging import get_logger, log_performance
from storefront.database.models.cart import Cart
from storefront.database.models.order import Order
from storefront.database.models.user import User
from storefront.schemas.orders import CreateOrderRequest
from storefront.services.cart.repository import CartRepository, ProductRepository
from storefront.services.notifications.email_verification import EmailVerificationService
from storefront.services.notifications.service import NotificationService
from storefront.services.orders.enums import PaymentStatus
from storefront.services.orders.exceptions import (
    AccountSuspendedError,
    EmailVerificationRequiredError,
    EmptyCartError,
    InsufficientStockError,
)
from storefront.services.orders.payment_gate import PaymentGate
from storefront.services.orders.pricing import PricingCalculator
from storefront.services.orders.repository import (
    OrderDraft,
    OrderItemDraft,
    OrderRepository,
)
from storefront.services.settings.provider import StoreConfig, StoreSettingsProvider

logger = get_logger(__name__)


class CheckoutResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    order: Order
    email_verification_required: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckoutOrchestrator:
    """Runs :meth:`place_order` against one database session."""

    def __init__(
        self,
        session: AsyncSession,
        settings_provider: StoreSettingsProvider,
        payment_gate: PaymentGate,
        notifications: NotificationService,
        email_verification: Optional[EmailVerificationService] = None,
        orders: Optional[OrderRepository] = None,
        carts: Optional[CartRepository] = None,
        products: Optional[ProductRepository] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session = session
        self.settings_provider = settings_provider
        self.payment_gate = payment_gate
        self.notifications = notifications
        self.email_verification = email_verification or EmailVerificationService(
            session, notifications
        )
        self.orders = orders or OrderRepository(session)
        self.carts = carts or CartRepository(session)
        self.products = products or ProductRepository(session)
        self._clock = clock

    async def place_order(self, customer: User, request: CreateOrderRequest) -> CheckoutResult:
        """
        Place an order from the customer's cart.

        Raises:
            EmptyCartError: No cart or no lines
            PaymentRequiredError: Card order without a confirmed payment
            AccountSuspendedError: Customer account is blocked
            EmailVerificationRequiredError: Unverified customer with a
                previous order
            InsufficientStockError: A line exceeds the remaining stock
            PersistenceError: The order could not be stored
        """
        with log_performance(logger, "place_order", user_id=str(customer.id)):
            cart = await self.carts.get_by_user_id(customer.id)
            if cart is None or cart.is_empty:
                raise EmptyCartError(user_id=str(customer.id))

            self.payment_gate.check(request.payment_method, request.payment_intent_id)

            # Suspension is reported even when the email is also unverified.
            if customer.is_suspended:
                raise AccountSuspendedError(user_id=str(customer.id))

            previous_orders = await self.orders.count_for_user(customer.id)
            if not customer.is_email_verified and previous_orders >= 1:
                raise EmailVerificationRequiredError(
                    user_id=str(customer.id),
                    previous_orders=previous_orders,
                )

            self._check_stock(cart)

            config = await self.settings_provider.get()
            calculator = PricingCalculator(config)
            pricing = calculator.calculate_totals(
                calculator.calculate_subtotal(cart.items),
                request.shipping_method,
            )

            await self.payment_gate.confirm(
                request.payment_method,
                request.payment_intent_id,
                pricing.grand_total,
            )

            draft = OrderDraft(
                user_id=customer.id,
                items=[
                    OrderItemDraft(
                        product_id=item.product_id,
                        name=item.product.name,
                        quantity=item.quantity,
                        price=item.price,
                        thumbnail=item.product.thumbnail,
                    )
                    for item in cart.items
                ],
                shipping_address=request.shipping_address.model_dump(),
                payment_method=request.payment_method,
                payment_status=(
                    PaymentStatus.PAID
                    if request.payment_method.requires_confirmation()
                    else PaymentStatus.PENDING
                ),
                shipping_method=pricing.shipping_method,
                pricing=pricing,
                payment_intent_id=request.payment_intent_id,
                notes=request.notes,
            )

            async with self.session.begin_nested():
                order = await self.orders.create(draft)
                order.user = customer
                await self._decrement_stock(cart)
                self._record_customer_statistics(customer, order.total_amount)
                await self.carts.clear(cart)

            logger.info(
                "Order placed",
                order_id=str(order.id),
                order_number=order.order_number,
                user_id=str(customer.id),
                payment_method=order.payment_method.value,
                total_amount=str(order.total_amount),
            )

            verification_required = False
            if not customer.is_email_verified and previous_orders == 0:
                verification_required = True
                await self._send_verification(customer)

            await self._notify_staff(order, config)

        return CheckoutResult(order=order, email_verification_required=verification_required)

    @staticmethod
    def _check_stock(cart: Cart) -> None:
        for item in cart.items:
            product = item.product
            if product is None or not product.is_active:
                raise InsufficientStockError(
                    "A product in your cart is no longer available",
                    product_id=str(item.product_id),
                )
            if item.quantity > product.stock:
                raise InsufficientStockError(
                    f"Insufficient stock for {product.name}. Available: {product.stock}",
                    product_id=str(product.id),
                    requested=item.quantity,
                    available=product.stock,
                )

    async def _decrement_stock(self, cart: Cart) -> None:
        for item in cart.items:
            if not await self.products.decrement_stock(item.product_id, item.quantity):
                raise InsufficientStockError(
                    f"Insufficient stock for {item.product.name}",
                    product_id=str(item.product_id),
                    requested=item.quantity,
                )

    def _record_customer_statistics(self, customer: User, total_amount: Decimal) -> None:
        customer.total_orders = (customer.total_orders or 0) + 1
        customer.total_spent = (customer.total_spent or Decimal("0.00")) + total_amount
        customer.last_order_at = self._clock()

    async def _send_verification(self, customer: User) -> None:
        try:
            async with self.session.begin_nested():
                sent = await self.email_verification.send(customer, enforce_cooldown=False)
        except StorefrontError as e:
            logger.error(
                "Verification email failed after first order",
                user_id=str(customer.id),
                error=e.message,
            )
            return
        if not sent:
            logger.warning(
                "Verification email not enqueued after first order",
                user_id=str(customer.id),
            )

    async def _notify_staff(self, order: Order, config: StoreConfig) -> None:
        try:
            notified = await self.notifications.notify_new_order(order, config)
        except StorefrontError as e:
            logger.error("Staff new-order notification failed", order_id=str(order.id), error=e.message)
            return
        if not notified:
            logger.debug("Staff not notified of new order", order_id=str(order.id))
