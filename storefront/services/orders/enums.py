"""Order, payment and shipping enums for the order lifecycle.

All enums are closed: every transition table below is keyed by every member
and the module refuses to import when a member is missing, so adding a new
status forces the tables to be updated with it.
"""

from enum import Enum
from typing import Dict, Optional, Set


class OrderStatus(str, Enum):
    """Order fulfillment status.

    Valid transitions:
    - PENDING, PROCESSING, SHIPPED -> any other status (admin corrections)
    - DELIVERED -> (terminal state)
    - CANCELLED -> (terminal state)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus.

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid order status: {value}. Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        return self in {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

    def can_cancel(self) -> bool:
        """Whether the customer may still cancel the order themselves."""
        return self in {OrderStatus.PENDING, OrderStatus.PROCESSING}

    @property
    def rank(self) -> int:
        """Position along the fulfillment path; cancelled has no position."""
        return ORDER_STATUS_RANK[self]

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class PaymentStatus(str, Enum):
    """Payment status, independent of the fulfillment status."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

    @classmethod
    def from_string(cls, value: str) -> "PaymentStatus":
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid payment status: {value}. Valid values are: {valid_values}"
            )

    @property
    def display_name(self) -> str:
        return self.value.title()


class PaymentMethod(str, Enum):
    """Accepted payment methods.

    Orders placed before card payments existed may hold ``paypal``; any
    value that is not a current member reads back as cash on delivery.
    """

    COD = "cod"
    CARD = "card"

    @classmethod
    def _missing_(cls, value: object) -> "PaymentMethod":
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.COD

    @classmethod
    def from_storage(cls, value: Optional[str]) -> "PaymentMethod":
        """Read a stored payment method, mapping legacy values to COD."""
        if value is None:
            return cls.COD
        return cls(value)

    def requires_confirmation(self) -> bool:
        """Whether checkout needs a payment confirmation token."""
        return {
            PaymentMethod.COD: False,
            PaymentMethod.CARD: True,
        }[self]


class ShippingMethod(str, Enum):
    """Shipping speed chosen at checkout."""

    STANDARD = "standard"
    EXPRESS = "express"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "ShippingMethod":
        if not value:
            return cls.STANDARD
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid shipping method: {value}. Valid values are: {valid_values}"
            )


ORDER_STATUS_RANK: Dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.PROCESSING: 1,
    OrderStatus.SHIPPED: 2,
    OrderStatus.DELIVERED: 3,
    OrderStatus.CANCELLED: -1,
}

ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.PENDING,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.SHIPPED: {
        OrderStatus.PENDING,
        OrderStatus.PROCESSING,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}


def _assert_exhaustive(table: Dict, enum_cls: type) -> None:
    missing = set(enum_cls) - set(table)
    if missing:
        names = ", ".join(sorted(m.value for m in missing))
        raise RuntimeError(f"{enum_cls.__name__} table is missing: {names}")


_assert_exhaustive(ORDER_STATUS_TRANSITIONS, OrderStatus)
_assert_exhaustive(ORDER_STATUS_RANK, OrderStatus)


def validate_order_status_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Check whether moving from ``current`` to ``new`` is allowed.

    Staying in the same status is always allowed and is treated as a no-op
    by the state machine.
    """
    if current == new:
        return True
    return new in ORDER_STATUS_TRANSITIONS[current]


def get_allowed_order_transitions(current: OrderStatus) -> Set[OrderStatus]:
    return ORDER_STATUS_TRANSITIONS[current].copy()
