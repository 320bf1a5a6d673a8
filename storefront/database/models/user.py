"""
Customer and staff accounts.

Only the fields the order lifecycle reads or writes live here: role and
account status for authorization, email verification state for the
checkout gate, and the denormalized order statistics updated at checkout.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database.base import BaseModel

if TYPE_CHECKING:
    from storefront.database.models.cart import Cart


class UserRole(str, enum.Enum):
    """User role for access control."""

    CUSTOMER = "customer"
    ADMIN = "admin"
    SUPER_ADMIN = "superadmin"

    @property
    def is_staff(self) -> bool:
        return self in {UserRole.ADMIN, UserRole.SUPER_ADMIN}


class AccountStatus(str, enum.Enum):
    """Administrative account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    VIP = "vip"
    BLOCKED = "blocked"

    @property
    def is_suspended(self) -> bool:
        return self == AccountStatus.BLOCKED


class User(BaseModel):
    """
    Storefront account.

    Attributes:
        email: Login email, unique
        name: Display name used on orders
        role: Access control role
        status: Administrative status, ``blocked`` suspends checkout
        is_email_verified: Whether the email ownership was confirmed
        email_verification_token_hash: sha256 of the outstanding token
        email_verification_expires_at: Expiry of the outstanding token
        email_verification_sent_at: Last time a verification email went out
        total_orders: Number of orders placed
        total_spent: Sum of order totals
        last_order_at: Timestamp of the most recent order
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name="user_role", native_enum=False,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.CUSTOMER,
        index=True,
    )

    status: Mapped[AccountStatus] = mapped_column(
        SQLEnum(AccountStatus, name="account_status", native_enum=False,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AccountStatus.ACTIVE,
    )

    is_email_verified: Mapped[bool] = mapped_column(default=False, nullable=False)

    email_verification_token_hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )

    email_verification_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    email_verification_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    total_orders: Mapped[int] = mapped_column(default=0, nullable=False)

    total_spent: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )

    last_order_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    cart: Mapped[Optional["Cart"]] = relationship(
        "Cart",
        back_populates="user",
        uselist=False,
        lazy="raise",
    )

    __table_args__ = (
        Index("ix_users_role_status", "role", "status"),
        CheckConstraint("total_orders >= 0", name="ck_users_total_orders_non_negative"),
        CheckConstraint("total_spent >= 0", name="ck_users_total_spent_non_negative"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role.is_staff

    @property
    def is_suspended(self) -> bool:
        return self.status.is_suspended
