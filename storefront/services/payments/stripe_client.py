"""
Stripe API wrapper with exponential backoff.

Only the calls the order core needs are exposed. Transient failures
(connection problems, rate limits, 5xx API errors) are retried; everything
else surfaces immediately as a :class:`StripeClientError`.
"""

import time
from decimal import Decimal
from typing import Any, Callable, Optional

import stripe
from stripe import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    InvalidRequestError,
    RateLimitError,
    StripeError,
)

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)


class StripeClientError(Exception):
    """Base exception for Stripe client errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        stripe_error: Optional[StripeError] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.code = code
        self.stripe_error = stripe_error
        self.context = context


class StripeAuthenticationError(StripeClientError):
    pass


class StripeConnectionError(StripeClientError):
    pass


class StripeClient:
    """Synchronous Stripe client with retry and backoff."""

    RETRYABLE_ERRORS = (APIConnectionError, RateLimitError, APIError)

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_retries: Optional[int] = None,
        initial_backoff: float = 0.5,
        max_backoff: float = 8.0,
        backoff_multiplier: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.stripe_secret_key
        self.max_retries = (
            max_retries if max_retries is not None else settings.stripe_max_retries
        )
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.backoff_multiplier = backoff_multiplier
        self._sleep = sleep

        stripe.api_key = self.api_key
        stripe.max_network_retries = 0

    def _calculate_backoff(self, attempt: int) -> float:
        return min(
            self.initial_backoff * (self.backoff_multiplier**attempt),
            self.max_backoff,
        )

    def _execute_with_retry(
        self,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """
        Call a Stripe API function, retrying transient failures.

        Raises:
            StripeClientError: If the call fails permanently or retries run out
        """
        last_error: Optional[StripeError] = None

        for attempt in range(self.max_retries + 1):
            try:
                result = func(*args, **kwargs)
                if attempt > 0:
                    logger.info(
                        "Stripe operation succeeded after retry",
                        operation=operation,
                        attempt=attempt,
                    )
                return result

            except AuthenticationError as e:
                logger.error("Stripe authentication error", operation=operation, error=str(e))
                raise StripeAuthenticationError(
                    "Payment provider authentication failed",
                    code=e.code,
                    stripe_error=e,
                ) from e

            except InvalidRequestError as e:
                logger.warning(
                    "Stripe invalid request",
                    operation=operation,
                    error=str(e),
                    code=e.code,
                    param=e.param,
                )
                raise StripeClientError(
                    f"Invalid request: {e.user_message or str(e)}",
                    code=e.code,
                    stripe_error=e,
                    param=e.param,
                ) from e

            except self.RETRYABLE_ERRORS as e:
                last_error = e
                if attempt >= self.max_retries:
                    break
                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    "Transient Stripe error, retrying",
                    operation=operation,
                    attempt=attempt,
                    backoff_seconds=backoff,
                    error_type=type(e).__name__,
                )
                self._sleep(backoff)

            except StripeError as e:
                logger.error(
                    "Unexpected Stripe error",
                    operation=operation,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise StripeClientError(
                    f"Stripe error: {e.user_message or str(e)}",
                    code=getattr(e, "code", None),
                    stripe_error=e,
                ) from e

        logger.error(
            "Stripe operation failed after all retries",
            operation=operation,
            max_retries=self.max_retries,
            last_error=str(last_error),
        )
        raise StripeConnectionError(
            f"Operation failed after {self.max_retries} retries",
            stripe_error=last_error,
        )

    def retrieve_payment_intent(self, payment_intent_id: str) -> stripe.PaymentIntent:
        """
        Retrieve a payment intent by id.

        Raises:
            StripeClientError: If retrieval fails
        """
        payment_intent = self._execute_with_retry(
            "retrieve_payment_intent",
            stripe.PaymentIntent.retrieve,
            payment_intent_id,
        )
        logger.debug(
            "Payment intent retrieved",
            payment_intent_id=payment_intent.id,
            status=payment_intent.status,
        )
        return payment_intent

    @staticmethod
    def to_major_units(amount: int) -> Decimal:
        """Convert an amount in minor units (cents) to a Decimal."""
        return Decimal(amount) / Decimal(100)


def get_stripe_client() -> StripeClient:
    return StripeClient()
