"""Singleton row holding storefront pricing and shipping configuration."""

from decimal import Decimal

from sqlalchemy import CheckConstraint, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database.base import BaseModel


class StoreSettings(BaseModel):
    """
    Store wide settings edited from the admin panel.

    The order core only reads this table. When it is empty the defaults
    declared on the columns apply.
    """

    __tablename__ = "store_settings"

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2),
        nullable=False,
        default=Decimal("10"),
    )

    include_tax_in_prices: Mapped[bool] = mapped_column(nullable=False, default=False)

    free_shipping_threshold: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        default=Decimal("50"),
    )

    standard_shipping_cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        default=Decimal("5.99"),
    )

    express_shipping_cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        default=Decimal("12.99"),
    )

    express_shipping_enabled: Mapped[bool] = mapped_column(nullable=False, default=True)

    standard_delivery_days: Mapped[str] = mapped_column(
        String(20), nullable=False, default="5-7"
    )

    express_delivery_days: Mapped[str] = mapped_column(
        String(20), nullable=False, default="2-3"
    )

    order_notifications: Mapped[bool] = mapped_column(nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "tax_rate >= 0 AND tax_rate <= 100",
            name="ck_store_settings_tax_rate_range",
        ),
    )
