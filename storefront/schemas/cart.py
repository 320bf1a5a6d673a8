"""
Cart request and response schemas.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from storefront.database.models.cart import Cart, CartItem
from storefront.schemas.common import Money


class CartLineInput(BaseModel):
    product_id: UUID
    quantity: int = Field(..., ge=1, le=999)


class AddCartItemRequest(CartLineInput):
    pass


class MergeCartRequest(BaseModel):
    """Lines held by the client before it signed in."""

    items: list[CartLineInput] = Field(default_factory=list, max_length=100)


class CartItemResponse(BaseModel):
    id: UUID
    product_id: UUID
    name: str
    thumbnail: Optional[str] = None
    price: Money
    quantity: int
    stock: int
    line_total: Money

    @classmethod
    def from_item(cls, item: CartItem) -> "CartItemResponse":
        return cls(
            id=item.id,
            product_id=item.product_id,
            name=item.product.name,
            thumbnail=item.product.thumbnail,
            price=item.price,
            quantity=item.quantity,
            stock=item.product.stock,
            line_total=item.line_total,
        )


class CartResponse(BaseModel):
    id: Optional[UUID] = None
    items: list[CartItemResponse] = Field(default_factory=list)
    item_count: int = 0
    subtotal: Money = Decimal("0.00")

    @classmethod
    def from_cart(cls, cart: Optional[Cart]) -> "CartResponse":
        if cart is None:
            return cls()
        items = [CartItemResponse.from_item(item) for item in cart.items]
        return cls(
            id=cart.id,
            items=items,
            item_count=cart.item_count,
            subtotal=sum((item.line_total for item in cart.items), Decimal("0.00")),
        )
