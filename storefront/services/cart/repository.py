"""
Cart and product stock data access.

Stock changes use conditional ``UPDATE`` statements so two checkouts racing
for the last unit cannot both succeed.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.cart import Cart, CartItem
from storefront.database.models.product import Product
from storefront.services.orders.exceptions import PersistenceError

logger = get_logger(__name__)


class CartRepository:
    """Async data access for carts and their lines."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_user_id(self, user_id: uuid.UUID) -> Optional[Cart]:
        """
        Retrieve a user's cart with its items loaded.

        Returns:
            Cart if the user has one, None otherwise
        """
        try:
            result = await self.session.execute(select(Cart).where(Cart.user_id == user_id))
            cart = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to retrieve cart for user",
                user_id=str(user_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PersistenceError("Failed to load cart", user_id=str(user_id)) from e

        if cart:
            logger.debug("Cart retrieved for user", user_id=str(user_id), item_count=len(cart.items))
        return cart

    async def create(self, user_id: uuid.UUID) -> Cart:
        try:
            cart = Cart(user_id=user_id, items=[])
            self.session.add(cart)
            await self.session.flush()
        except IntegrityError as e:
            logger.error("Cart creation failed - integrity error", user_id=str(user_id), error=str(e))
            raise PersistenceError("Failed to create cart", user_id=str(user_id)) from e
        except SQLAlchemyError as e:
            logger.error("Cart creation failed", user_id=str(user_id), error=str(e))
            raise PersistenceError("Failed to create cart", user_id=str(user_id)) from e

        logger.info("Cart created", cart_id=str(cart.id), user_id=str(user_id))
        return cart

    async def get_or_create(self, user_id: uuid.UUID) -> Cart:
        cart = await self.get_by_user_id(user_id)
        if cart is None:
            cart = await self.create(user_id)
        return cart

    async def add_item(
        self,
        cart: Cart,
        product: Product,
        quantity: int,
    ) -> CartItem:
        """Append a new line priced at the product's current price."""
        item = CartItem(
            cart_id=cart.id,
            product_id=product.id,
            product=product,
            quantity=quantity,
            price=product.price,
        )
        cart.items.append(item)
        await self.flush()
        logger.info(
            "Cart item added",
            cart_id=str(cart.id),
            product_id=str(product.id),
            quantity=quantity,
        )
        return item

    async def clear(self, cart: Cart) -> int:
        """Delete every line of ``cart``; returns the number removed."""
        removed = len(cart.items)
        try:
            cart.items.clear()
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to clear cart", cart_id=str(cart.id), error=str(e))
            raise PersistenceError("Failed to clear cart", cart_id=str(cart.id)) from e

        logger.info("Cart cleared", cart_id=str(cart.id), removed_items=removed)
        return removed

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to save cart", error=str(e))
            raise PersistenceError("Failed to save cart") from e


class ProductRepository:
    """Product reads and stock adjustments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, product_id: uuid.UUID) -> Optional[Product]:
        try:
            result = await self.session.execute(select(Product).where(Product.id == product_id))
        except SQLAlchemyError as e:
            logger.error("Failed to load product", product_id=str(product_id), error=str(e))
            raise PersistenceError("Failed to load product", product_id=str(product_id)) from e
        return result.scalar_one_or_none()

    async def get_many(self, product_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, Product]:
        if not product_ids:
            return {}
        try:
            result = await self.session.execute(
                select(Product).where(Product.id.in_(list(product_ids)))
            )
        except SQLAlchemyError as e:
            logger.error("Failed to load products", count=len(product_ids), error=str(e))
            raise PersistenceError("Failed to load products") from e
        return {product.id: product for product in result.scalars().all()}

    async def decrement_stock(self, product_id: uuid.UUID, quantity: int) -> bool:
        """
        Take ``quantity`` units out of stock.

        Returns:
            False when fewer than ``quantity`` units remain; nothing changes
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to decrement stock", product_id=str(product_id), error=str(e))
            raise PersistenceError("Failed to update stock", product_id=str(product_id)) from e

        decremented = result.rowcount == 1
        if not decremented:
            logger.warning(
                "Stock decrement refused",
                product_id=str(product_id),
                requested=quantity,
            )
        return decremented

    async def restore_stock(self, product_id: Optional[uuid.UUID], quantity: int) -> None:
        """Return units to stock; products deleted since the order are skipped."""
        if product_id is None:
            return
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        try:
            await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to restore stock", product_id=str(product_id), error=str(e))
            raise PersistenceError("Failed to update stock", product_id=str(product_id)) from e

        logger.debug("Stock restored", product_id=str(product_id), quantity=quantity)

