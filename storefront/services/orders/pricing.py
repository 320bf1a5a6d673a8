"""
Checkout pricing: subtotal, shipping, tax and grand total.

All amounts are ``Decimal`` values quantized to cents with ROUND_HALF_UP.
The grand total is the sum of the already quantized components, so
``grand_total == subtotal + shipping_cost + tax`` holds exactly.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol, Union

from pydantic import BaseModel, ConfigDict

from storefront.core.logging import get_logger
from storefront.services.orders.enums import ShippingMethod
from storefront.services.orders.exceptions import PricingError
from storefront.services.settings.provider import StoreConfig

logger = get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Quantize a value to cents."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class PricedLine(Protocol):
    price: Decimal
    quantity: int


class PricingBreakdown(BaseModel):
    """Server authoritative totals for an order."""

    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    grand_total: Decimal
    shipping_method: ShippingMethod


class PricingCalculator:
    """
    Pure pricing rules driven by :class:`StoreConfig`.

    The same inputs always produce the same breakdown; nothing here touches
    the database or the network.
    """

    def __init__(self, config: StoreConfig):
        self.config = config

    def calculate_subtotal(self, lines: Iterable[PricedLine]) -> Decimal:
        """
        Sum ``price * quantity`` over cart or order lines.

        Raises:
            PricingError: If a line has a negative price or a quantity below 1
        """
        subtotal = ZERO
        for line in lines:
            if line.price < 0:
                raise PricingError("Line price cannot be negative", price=str(line.price))
            if line.quantity < 1:
                raise PricingError("Line quantity must be at least 1", quantity=line.quantity)
            subtotal += Decimal(line.price) * line.quantity
        return to_money(subtotal)

    def resolve_shipping_method(self, requested: ShippingMethod) -> ShippingMethod:
        """Downgrade express to standard when the store has express disabled."""
        if requested == ShippingMethod.EXPRESS and not self.config.express_shipping_enabled:
            logger.info("Express shipping disabled, using standard")
            return ShippingMethod.STANDARD
        return requested

    def calculate_shipping(self, subtotal: Decimal, method: ShippingMethod) -> Decimal:
        if subtotal >= self.config.free_shipping_threshold:
            return ZERO
        costs = {
            ShippingMethod.STANDARD: self.config.standard_shipping_cost,
            ShippingMethod.EXPRESS: self.config.express_shipping_cost,
        }
        return to_money(costs[self.resolve_shipping_method(method)])

    def calculate_tax(self, subtotal: Decimal) -> Decimal:
        """Tax on the subtotal, zero when prices already include tax."""
        if self.config.include_tax_in_prices:
            return ZERO
        return to_money(subtotal * self.config.tax_rate / Decimal(100))

    def calculate_totals(
        self,
        cart_subtotal: Decimal,
        shipping_method: ShippingMethod,
    ) -> PricingBreakdown:
        """
        Compute shipping, tax and the grand total for a subtotal.

        Args:
            cart_subtotal: Sum of cart line totals
            shipping_method: Shipping speed requested by the customer

        Returns:
            PricingBreakdown with the shipping method actually applied

        Raises:
            PricingError: If the subtotal is negative
        """
        if cart_subtotal < 0:
            raise PricingError("Subtotal cannot be negative", subtotal=str(cart_subtotal))

        subtotal = to_money(cart_subtotal)
        method = self.resolve_shipping_method(shipping_method)
        shipping_cost = self.calculate_shipping(subtotal, method)
        tax = self.calculate_tax(subtotal)

        breakdown = PricingBreakdown(
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            tax=tax,
            grand_total=subtotal + shipping_cost + tax,
            shipping_method=method,
        )

        logger.debug(
            "Calculated order totals",
            subtotal=str(breakdown.subtotal),
            shipping_cost=str(breakdown.shipping_cost),
            tax=str(breakdown.tax),
            grand_total=str(breakdown.grand_total),
            shipping_method=method.value,
        )
        return breakdown


def calculate_totals(
    cart_subtotal: Decimal,
    shipping_method: ShippingMethod,
    config: StoreConfig,
) -> PricingBreakdown:
    """Shortcut for ``PricingCalculator(config).calculate_totals(...)``."""
    return PricingCalculator(config).calculate_totals(cart_subtotal, shipping_method)
