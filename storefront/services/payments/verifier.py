"""
Payment confirmation verification against Stripe.

A card order may only be created once the customer's PaymentIntent has
succeeded for (roughly) the amount the server computed. The tolerance
absorbs currency rounding between the client and the server.
"""

import asyncio
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.services.orders.exceptions import (
    PaymentProviderError,
    PaymentRequiredError,
)
from storefront.services.payments.stripe_client import (
    StripeClient,
    StripeClientError,
    StripeConnectionError,
    get_stripe_client,
)

logger = get_logger(__name__)

SUCCEEDED = "succeeded"


class PaymentConfirmation(BaseModel):
    payment_intent_id: str
    status: str
    amount: Decimal
    currency: Optional[str] = None


class StripePaymentVerifier:
    """Confirms that a PaymentIntent succeeded for the expected amount."""

    def __init__(
        self,
        stripe_client: Optional[StripeClient] = None,
        tolerance: Optional[Decimal] = None,
    ):
        self.stripe_client = stripe_client or get_stripe_client()
        self.tolerance = (
            tolerance if tolerance is not None else get_settings().payment_amount_tolerance
        )

    async def verify(self, payment_intent_id: str, expected_amount: Decimal) -> PaymentConfirmation:
        """
        Verify a payment confirmation token.

        Args:
            payment_intent_id: Stripe PaymentIntent id sent by the client
            expected_amount: Grand total computed by the server

        Returns:
            PaymentConfirmation for the succeeded intent

        Raises:
            PaymentRequiredError: If the intent is unknown, not succeeded or
                was captured for a different amount
            PaymentProviderError: If Stripe could not be reached
        """
        try:
            intent = await asyncio.to_thread(
                self.stripe_client.retrieve_payment_intent, payment_intent_id
            )
        except StripeConnectionError as e:
            raise PaymentProviderError(
                "Payment provider is unavailable, please try again",
                payment_intent_id=payment_intent_id,
            ) from e
        except StripeClientError as e:
            raise PaymentRequiredError(
                "Payment could not be verified. Please complete payment first.",
                payment_intent_id=payment_intent_id,
                provider_code=e.code,
            ) from e

        amount = StripeClient.to_major_units(intent.amount)
        confirmation = PaymentConfirmation(
            payment_intent_id=intent.id,
            status=intent.status,
            amount=amount,
            currency=getattr(intent, "currency", None),
        )

        if confirmation.status != SUCCEEDED:
            logger.warning(
                "Payment intent not succeeded",
                payment_intent_id=payment_intent_id,
                status=confirmation.status,
            )
            raise PaymentRequiredError(
                f"Payment {confirmation.status}. Please complete payment before placing order.",
                payment_intent_id=payment_intent_id,
                status=confirmation.status,
            )

        expected = expected_amount.quantize(Decimal("0.01"))
        if abs(confirmation.amount - expected) > self.tolerance:
            logger.warning(
                "Payment amount mismatch",
                payment_intent_id=payment_intent_id,
                expected=str(expected),
                paid=str(confirmation.amount),
            )
            raise PaymentRequiredError(
                f"Payment amount mismatch. Expected: {expected:.2f}, "
                f"Paid: {confirmation.amount:.2f}",
                payment_intent_id=payment_intent_id,
                expected=str(expected),
                paid=str(confirmation.amount),
            )

        logger.info(
            "Payment verified",
            payment_intent_id=payment_intent_id,
            amount=str(confirmation.amount),
        )
        return confirmation
