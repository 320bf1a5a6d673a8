"""
Server-authoritative cart operations.

The cart the customer sees is always the one stored here; clients only cache
it. Lines that were held locally before sign-in are folded in through
:meth:`CartService.merge`, which may be retried safely when the client sends
the same idempotency key.
"""

import uuid
from collections import OrderedDict
from typing import Iterable, Optional

from redis.exceptions import RedisError

from storefront.cache.redis_client import RedisClient, make_cache_key
from storefront.core.config import get_settings
from storefront.core.exceptions import StorefrontError
from storefront.core.logging import get_logger
from storefront.database.models.cart import Cart
from storefront.database.models.user import User
from storefront.schemas.cart import CartLineInput
from storefront.services.cart.repository import CartRepository, ProductRepository
from storefront.services.orders.exceptions import InsufficientStockError

logger = get_logger(__name__)


class CartServiceError(StorefrontError):
    code = "cart_error"
    status_code = 400


class ProductNotFoundError(CartServiceError):
    code = "product_not_found"
    status_code = 404

    def __init__(self, message: str = "Product not found", **context):
        super().__init__(message, **context)


class CartService:
    """Cart use cases for signed-in customers."""

    def __init__(
        self,
        carts: CartRepository,
        products: ProductRepository,
        redis_client: Optional[RedisClient] = None,
    ):
        self.carts = carts
        self.products = products
        self.redis_client = redis_client
        settings = get_settings()
        self.max_line_quantity = settings.cart_max_line_quantity
        self.merge_key_ttl = settings.cart_merge_idempotency_ttl

    async def get_cart(self, customer: User) -> Optional[Cart]:
        return await self.carts.get_by_user_id(customer.id)

    async def add_item(self, customer: User, product_id: uuid.UUID, quantity: int) -> Cart:
        """
        Add units of a product, summing with an existing line.

        Raises:
            ProductNotFoundError: Unknown or inactive product
            InsufficientStockError: The line would exceed the stock
        """
        product = await self.products.get(product_id)
        if product is None or not product.is_active:
            raise ProductNotFoundError(product_id=str(product_id))

        cart = await self.carts.get_or_create(customer.id)
        item = cart.find_item(product_id)
        requested = quantity + (item.quantity if item else 0)

        if requested > min(product.stock, self.max_line_quantity):
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}. Available: {product.stock}",
                product_id=str(product_id),
                requested=requested,
                available=product.stock,
            )

        if item is None:
            await self.carts.add_item(cart, product, quantity)
        else:
            item.quantity = requested
            item.price = product.price
            await self.carts.flush()

        logger.info(
            "Product added to cart",
            user_id=str(customer.id),
            product_id=str(product_id),
            quantity=requested,
        )
        return cart

    async def clear(self, customer: User) -> int:
        cart = await self.carts.get_by_user_id(customer.id)
        if cart is None:
            return 0
        return await self.carts.clear(cart)

    async def merge(
        self,
        customer: User,
        lines: Iterable[CartLineInput],
        idempotency_key: Optional[str] = None,
    ) -> Cart:
        """
        Fold client-held lines into the stored cart.

        Quantities for the same product are summed and capped at the
        product's stock. Unknown, inactive and sold out products are
        skipped. A repeated call with the same ``idempotency_key`` returns
        the cart without applying the lines again. A merge that fails frees
        its key so the client can retry it.
        """
        cart = await self.carts.get_or_create(customer.id)

        claimed = False
        if idempotency_key:
            claimed = await self._claim_merge_key(customer.id, idempotency_key)
            if not claimed:
                logger.info(
                    "Cart merge already applied",
                    user_id=str(customer.id),
                    idempotency_key=idempotency_key,
                )
                return cart

        try:
            merged, skipped = await self._apply_lines(cart, lines)
        except Exception:
            if claimed:
                await self._release_merge_key(customer.id, idempotency_key)
            raise

        logger.info(
            "Cart merged",
            user_id=str(customer.id),
            merged_lines=merged,
            skipped_lines=skipped,
        )
        return cart

    async def _apply_lines(self, cart: Cart, lines: Iterable[CartLineInput]) -> tuple[int, int]:
        incoming: "OrderedDict[uuid.UUID, int]" = OrderedDict()
        for line in lines:
            incoming[line.product_id] = incoming.get(line.product_id, 0) + line.quantity

        products = await self.products.get_many(list(incoming))
        merged = skipped = 0

        for product_id, quantity in incoming.items():
            product = products.get(product_id)
            if product is None or not product.is_active:
                skipped += 1
                continue

            limit = min(product.stock, self.max_line_quantity)
            item = cart.find_item(product_id)
            if item is None:
                capped = min(quantity, limit)
                if capped <= 0:
                    skipped += 1
                    continue
                await self.carts.add_item(cart, product, capped)
            else:
                item.quantity = max(item.quantity, min(item.quantity + quantity, limit))
                item.price = product.price
            merged += 1

        await self.carts.flush()
        return merged, skipped

    def _merge_key(self, user_id: uuid.UUID, idempotency_key: str) -> str:
        return make_cache_key("cart", "merge", str(user_id), idempotency_key)

    async def _claim_merge_key(self, user_id: uuid.UUID, idempotency_key: str) -> bool:
        """True when this key has not been used for a merge yet."""
        if self.redis_client is None or self.merge_key_ttl <= 0:
            return True
        try:
            return await self.redis_client.set_if_absent(
                self._merge_key(user_id, idempotency_key), 1, ex=self.merge_key_ttl
            )
        except (RedisError, ConnectionError) as e:
            logger.warning("Cart merge key check failed, applying merge", error=str(e))
            return True

    async def _release_merge_key(self, user_id: uuid.UUID, idempotency_key: str) -> None:
        """Free the key of a merge that did not complete so a retry applies it."""
        if self.redis_client is None or self.merge_key_ttl <= 0:
            return
        try:
            await self.redis_client.delete(self._merge_key(user_id, idempotency_key))
        except (RedisError, ConnectionError) as e:
            logger.warning("Cart merge key release failed", error=str(e))
