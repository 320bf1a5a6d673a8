"""
Cart API endpoints.

The stored cart is authoritative. Clients call ``POST /cart/merge`` once
after sign-in to fold in lines they held while anonymous.
"""

from typing import Optional

from fastapi import APIRouter, Header

from storefront.api.deps import CartServiceDep, CurrentUser
from storefront.core.logging import get_logger
from storefront.schemas.cart import AddCartItemRequest, CartResponse, MergeCartRequest
from storefront.schemas.common import ApiResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=ApiResponse[CartResponse], summary="Get the current cart")
async def get_cart(
    current_user: CurrentUser,
    cart_service: CartServiceDep,
) -> ApiResponse[CartResponse]:
    cart = await cart_service.get_cart(current_user)
    return ApiResponse[CartResponse](
        message="Cart retrieved successfully",
        data=CartResponse.from_cart(cart),
    )


@router.post("/items", response_model=ApiResponse[CartResponse], summary="Add a product to the cart")
async def add_cart_item(
    request: AddCartItemRequest,
    current_user: CurrentUser,
    cart_service: CartServiceDep,
) -> ApiResponse[CartResponse]:
    cart = await cart_service.add_item(current_user, request.product_id, request.quantity)
    return ApiResponse[CartResponse](
        message="Product added to cart",
        data=CartResponse.from_cart(cart),
    )


@router.post("/merge", response_model=ApiResponse[CartResponse], summary="Merge client-held lines")
async def merge_cart(
    request: MergeCartRequest,
    current_user: CurrentUser,
    cart_service: CartServiceDep,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=128),
) -> ApiResponse[CartResponse]:
    """
    Fold lines into the stored cart.

    Quantities for a product already in the cart are added, capped at the
    available stock. Sending the same ``Idempotency-Key`` again leaves the
    cart unchanged.
    """
    cart = await cart_service.merge(current_user, request.items, idempotency_key=idempotency_key)
    return ApiResponse[CartResponse](
        message="Cart merged successfully",
        data=CartResponse.from_cart(cart),
    )


@router.delete("", response_model=ApiResponse[CartResponse], summary="Empty the cart")
async def clear_cart(
    current_user: CurrentUser,
    cart_service: CartServiceDep,
) -> ApiResponse[CartResponse]:
    removed = await cart_service.clear(current_user)
    logger.info("Cart cleared", user_id=str(current_user.id), removed_items=removed)
    return ApiResponse[CartResponse](message="Cart cleared", data=CartResponse())
