"""
Store settings provider.

Reads the singleton ``store_settings`` row through a Redis read-through
cache. The order core only ever sees the immutable :class:`StoreConfig`
snapshot returned here.
"""

import re
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.cache.redis_client import RedisClient, make_cache_key
from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.database.models.store_settings import StoreSettings
from storefront.services.orders.enums import ShippingMethod
from storefront.services.orders.exceptions import PersistenceError

logger = get_logger(__name__)

STORE_SETTINGS_CACHE_KEY = make_cache_key("settings", "store")

_DAYS_PATTERN = re.compile(r"\d+")


class StoreConfig(BaseModel):
    """Immutable snapshot of the pricing and shipping configuration."""

    model_config = ConfigDict(frozen=True)

    currency: str = "USD"
    tax_rate: Decimal = Field(default=Decimal("10"), ge=0, le=100)
    include_tax_in_prices: bool = False
    free_shipping_threshold: Decimal = Field(default=Decimal("50"), ge=0)
    standard_shipping_cost: Decimal = Field(default=Decimal("5.99"), ge=0)
    express_shipping_cost: Decimal = Field(default=Decimal("12.99"), ge=0)
    express_shipping_enabled: bool = True
    standard_delivery_days: str = "5-7"
    express_delivery_days: str = "2-3"
    order_notifications: bool = True

    @classmethod
    def from_row(cls, row: StoreSettings) -> "StoreConfig":
        return cls(
            currency=row.currency,
            tax_rate=row.tax_rate,
            include_tax_in_prices=row.include_tax_in_prices,
            free_shipping_threshold=row.free_shipping_threshold,
            standard_shipping_cost=row.standard_shipping_cost,
            express_shipping_cost=row.express_shipping_cost,
            express_shipping_enabled=row.express_shipping_enabled,
            standard_delivery_days=row.standard_delivery_days,
            express_delivery_days=row.express_delivery_days,
            order_notifications=row.order_notifications,
        )

    def delivery_days(self, method: ShippingMethod) -> str:
        """Human readable delivery estimate such as ``"5-7"``."""
        return {
            ShippingMethod.STANDARD: self.standard_delivery_days,
            ShippingMethod.EXPRESS: self.express_delivery_days,
        }[method]

    def max_delivery_days(self, method: ShippingMethod) -> int:
        """
        Upper bound of the delivery estimate in days.

        ``"5-7"`` gives 7, ``"3"`` gives 3. Unparseable estimates fall back
        to 7 for standard and 3 for express shipping.
        """
        numbers = [int(n) for n in _DAYS_PATTERN.findall(self.delivery_days(method))]
        if numbers:
            return max(numbers)
        return 3 if method == ShippingMethod.EXPRESS else 7


class StoreSettingsProvider:
    """Loads :class:`StoreConfig`, caching it in Redis when available."""

    def __init__(
        self,
        session: AsyncSession,
        redis_client: Optional[RedisClient] = None,
        cache_ttl: Optional[int] = None,
    ):
        self.session = session
        self.redis_client = redis_client
        self.cache_ttl = (
            cache_ttl if cache_ttl is not None else get_settings().store_settings_cache_ttl
        )

    async def get(self) -> StoreConfig:
        """
        Return the current store configuration.

        Falls back to defaults when the settings row does not exist yet.
        """
        cached = await self._read_cache()
        if cached is not None:
            return cached

        try:
            result = await self.session.execute(select(StoreSettings).limit(1))
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to load store settings", error=str(e))
            raise PersistenceError("Failed to load store settings") from e

        config = StoreConfig.from_row(row) if row is not None else StoreConfig()
        if row is None:
            logger.info("No store settings row, using defaults")

        await self._write_cache(config)
        return config

    async def invalidate(self) -> None:
        if self.redis_client is None:
            return
        try:
            await self.redis_client.delete(STORE_SETTINGS_CACHE_KEY)
        except (RedisError, ConnectionError) as e:
            logger.warning("Failed to invalidate store settings cache", error=str(e))

    async def _read_cache(self) -> Optional[StoreConfig]:
        if self.redis_client is None or self.cache_ttl <= 0:
            return None
        try:
            payload: Optional[dict[str, Any]] = await self.redis_client.get_json(
                STORE_SETTINGS_CACHE_KEY
            )
        except (RedisError, ConnectionError) as e:
            logger.warning("Store settings cache read failed", error=str(e))
            return None
        if payload is None:
            return None
        return StoreConfig.model_validate(payload)

    async def _write_cache(self, config: StoreConfig) -> None:
        if self.redis_client is None or self.cache_ttl <= 0:
            return
        try:
            await self.redis_client.set_json(
                STORE_SETTINGS_CACHE_KEY,
                config.model_dump(mode="json"),
                ex=self.cache_ttl,
            )
        except (RedisError, ConnectionError) as e:
            logger.warning("Store settings cache write failed", error=str(e))
