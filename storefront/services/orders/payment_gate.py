"""
Payment precondition checks run before an order is created.

The gate never captures money. It only insists that a card payment was
completed in a separate step, and optionally asks a verifier to confirm
the completed payment matches the order total.
"""

from decimal import Decimal
from typing import Optional, Protocol

from storefront.core.logging import get_logger
from storefront.services.orders.enums import PaymentMethod
from storefront.services.orders.exceptions import PaymentRequiredError

logger = get_logger(__name__)


class PaymentConfirmationVerifier(Protocol):
    async def verify(self, payment_intent_id: str, expected_amount: Decimal): ...


def check_payment_precondition(
    payment_method: PaymentMethod,
    payment_confirmation_token: Optional[str],
) -> None:
    """
    Allow or deny checkout for a payment method.

    Raises:
        PaymentRequiredError: If a card order has no confirmation token
    """
    if not payment_method.requires_confirmation():
        return

    if payment_confirmation_token and payment_confirmation_token.strip():
        return

    raise PaymentRequiredError(
        "Payment intent ID is required for card payments. "
        "Please complete payment first.",
        payment_method=payment_method.value,
    )


class PaymentGate:
    """Precondition check plus confirmation of the captured amount."""

    def __init__(self, verifier: Optional[PaymentConfirmationVerifier] = None):
        self.verifier = verifier

    def check(
        self,
        payment_method: PaymentMethod,
        payment_confirmation_token: Optional[str],
    ) -> None:
        check_payment_precondition(payment_method, payment_confirmation_token)

    async def confirm(
        self,
        payment_method: PaymentMethod,
        payment_confirmation_token: Optional[str],
        grand_total: Decimal,
    ) -> None:
        """
        Confirm a card payment covers ``grand_total``.

        Cash on delivery needs no confirmation. Without a configured
        verifier the token is trusted as is.
        """
        if not payment_method.requires_confirmation():
            return
        self.check(payment_method, payment_confirmation_token)
        if self.verifier is None:
            logger.warning("No payment verifier configured, trusting confirmation token")
            return
        await self.verifier.verify(payment_confirmation_token.strip(), grand_total)
