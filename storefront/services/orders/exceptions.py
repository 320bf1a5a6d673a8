"""Order domain errors."""

from typing import Any, Optional

from storefront.core.exceptions import StorefrontError
from storefront.services.orders.enums import OrderStatus


class OrderServiceError(StorefrontError):
    """Base exception for order lifecycle errors."""

    code = "order_error"


class OrderValidationError(OrderServiceError):
    """Raised when checkout input cannot produce an order."""

    code = "validation_error"
    status_code = 400


class EmptyCartError(OrderValidationError):
    code = "empty_cart"

    def __init__(self, message: str = "Cart is empty", **context: Any):
        super().__init__(message, **context)


class InsufficientStockError(OrderValidationError):
    code = "insufficient_stock"


class PricingError(OrderValidationError):
    code = "pricing_error"


class PaymentRequiredError(OrderServiceError):
    """Raised when a card order arrives without a completed payment."""

    code = "payment_required"
    status_code = 402


class AccountSuspendedError(OrderServiceError):
    code = "account_suspended"
    status_code = 403

    def __init__(
        self,
        message: str = "Your account has been suspended. Please contact support.",
        **context: Any,
    ):
        super().__init__(message, **context)


class EmailVerificationRequiredError(OrderServiceError):
    code = "email_verification_required"
    status_code = 403

    def __init__(
        self,
        message: str = (
            "Please verify your email to place additional orders. "
            "Check your inbox for the verification link."
        ),
        **context: Any,
    ):
        super().__init__(message, **context)


class InvalidTransitionError(OrderServiceError):
    """Raised when a status change is not allowed from the current status."""

    code = "invalid_transition"
    status_code = 409

    def __init__(
        self,
        message: str,
        current_state: Optional[OrderStatus] = None,
        target_state: Optional[OrderStatus] = None,
        **context: Any,
    ):
        super().__init__(message, **context)
        self.current_state = current_state
        self.target_state = target_state


class OrderNotCancellableError(InvalidTransitionError):
    """Raised when a customer tries to cancel an order that already shipped."""

    code = "order_not_cancellable"


class OrderNotFoundError(OrderServiceError):
    """Raised for unknown orders and for orders the requester may not see."""

    code = "not_found"
    status_code = 404

    def __init__(self, message: str = "Order not found", **context: Any):
        super().__init__(message, **context)


class PersistenceError(OrderServiceError):
    """Raised when the order store fails; never retried by the service."""

    code = "persistence_error"
    status_code = 500


class PaymentProviderError(OrderServiceError):
    """Raised when the payment provider cannot confirm a payment right now."""

    code = "payment_provider_unavailable"
    status_code = 502
