"""
Public order tracking.

Anyone holding an order number and the email it was placed with can follow
the order without signing in. The endpoint is rate limited per client
address because it answers unauthenticated lookups.
"""

from fastapi import APIRouter, Query, Request

from storefront.api.deps import OrderServiceDep
from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.core.rate_limit import limiter
from storefront.schemas.common import ApiResponse
from storefront.services.orders.tracking import TrackingView

logger = get_logger(__name__)

router = APIRouter(prefix="/track", tags=["tracking"])


@router.get(
    "/{order_number}",
    response_model=ApiResponse[TrackingView],
    summary="Track an order by number and email",
)
@limiter.limit(lambda: get_settings().track_rate_limit)
async def track_order(
    request: Request,
    order_number: str,
    order_service: OrderServiceDep,
    email: str = Query(..., min_length=3, max_length=320, description="Email used at checkout"),
) -> ApiResponse[TrackingView]:
    """
    Return the tracking view for an order.

    An unknown number and a number with a different email are both reported
    as not found.
    """
    logger.info("Tracking lookup", order_number=order_number)
    view = await order_service.track_order(order_number.strip(), email.strip())
    return ApiResponse[TrackingView](
        message="Order tracking retrieved successfully",
        data=view,
    )
