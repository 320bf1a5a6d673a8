"""
Order API endpoints.

Customers place, read, cancel and archive their own orders; staff list all
orders and change order and payment status. Domain errors propagate to the
application exception handler, which renders them into the error envelope.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from storefront.api.deps import CurrentAdmin, CurrentUser, OrderServiceDep
from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.schemas.common import ApiResponse, PaginatedResponse
from storefront.schemas.orders import (
    CheckoutResponse,
    CreateOrderRequest,
    OrderListResponse,
    OrderResponse,
    OrdersOverviewResponse,
    OrderStatisticsResponse,
    UpdateOrderStatusRequest,
    UpdatePaymentStatusRequest,
)
from storefront.services.orders.enums import OrderStatus, PaymentStatus
from storefront.services.orders.repository import OrderFilters

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

EMAIL_VERIFICATION_NOTICE = (
    "Order created successfully. Please check your inbox and verify your "
    "email to place future orders."
)


@router.post(
    "",
    response_model=ApiResponse[CheckoutResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Place an order from the cart",
)
async def create_order(
    request: CreateOrderRequest,
    current_user: CurrentUser,
    order_service: OrderServiceDep,
) -> ApiResponse[CheckoutResponse]:
    """
    Check out the current user's cart.

    Item prices and totals are computed server side; the request carries
    only the address, payment and shipping choices.
    """
    logger.info(
        "Creating order",
        user_id=str(current_user.id),
        payment_method=request.payment_method.value,
        shipping_method=request.shipping_method.value,
    )

    result = await order_service.place_order(current_user, request)

    return ApiResponse[CheckoutResponse](
        message=(
            EMAIL_VERIFICATION_NOTICE
            if result.email_verification_required
            else "Order created successfully"
        ),
        data=CheckoutResponse(
            order=OrderResponse.from_order(result.order),
            email_verification_required=result.email_verification_required,
        ),
    )


@router.get(
    "/my-orders",
    response_model=ApiResponse[list[OrderResponse]],
    summary="List the current user's orders",
)
async def get_my_orders(
    current_user: CurrentUser,
    order_service: OrderServiceDep,
    archived: Optional[bool] = Query(None, description="Only archived or only active orders"),
) -> ApiResponse[list[OrderResponse]]:
    orders = await order_service.list_my_orders(current_user, is_archived=archived)
    return ApiResponse[list[OrderResponse]](
        message="Orders retrieved successfully",
        data=[OrderResponse.from_order(order) for order in orders],
    )


@router.get(
    "/stats/overview",
    response_model=ApiResponse[OrdersOverviewResponse],
    summary="Order counts per status and revenue",
)
async def get_order_statistics(
    admin: CurrentAdmin,
    order_service: OrderServiceDep,
) -> ApiResponse[OrdersOverviewResponse]:
    overview = await order_service.get_statistics_overview()
    return ApiResponse[OrdersOverviewResponse](
        message="Order statistics retrieved successfully",
        data=OrdersOverviewResponse(**overview),
    )


@router.get(
    "",
    response_model=PaginatedResponse[OrderListResponse],
    summary="List all orders (staff)",
)
async def list_orders(
    admin: CurrentAdmin,
    order_service: OrderServiceDep,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
) -> PaginatedResponse[OrderListResponse]:
    """
    Paginated order list, newest first.

    The statistics cover every order matching the filters, not only the
    returned page.
    """
    filters = OrderFilters(
        status=status_filter,
        payment_status=payment_status,
        start_date=start_date,
        end_date=end_date,
    )
    result = await order_service.list_orders(
        filters,
        page=page,
        limit=limit or get_settings().orders_page_size,
    )

    return PaginatedResponse[OrderListResponse](
        message="Orders retrieved successfully",
        data=OrderListResponse(
            orders=[OrderResponse.from_order(order) for order in result.orders],
            statistics=OrderStatisticsResponse(**result.statistics.model_dump()),
        ),
        pagination=result.pagination,
    )


@router.get(
    "/{order_id}",
    response_model=ApiResponse[OrderResponse],
    summary="Get one order",
)
async def get_order(
    order_id: UUID,
    current_user: CurrentUser,
    order_service: OrderServiceDep,
) -> ApiResponse[OrderResponse]:
    order = await order_service.get_order(order_id, current_user)
    return ApiResponse[OrderResponse](
        message="Order retrieved successfully",
        data=OrderResponse.from_order(order),
    )


@router.put(
    "/{order_id}/cancel",
    response_model=ApiResponse[OrderResponse],
    summary="Cancel one of the current user's orders",
)
async def cancel_order(
    order_id: UUID,
    current_user: CurrentUser,
    order_service: OrderServiceDep,
) -> ApiResponse[OrderResponse]:
    order = await order_service.cancel_order(order_id, current_user)
    return ApiResponse[OrderResponse](
        message="Order cancelled",
        data=OrderResponse.from_order(order),
    )


@router.put(
    "/{order_id}/archive",
    response_model=ApiResponse[OrderResponse],
    summary="Archive an order",
)
async def archive_order(
    order_id: UUID,
    current_user: CurrentUser,
    order_service: OrderServiceDep,
) -> ApiResponse[OrderResponse]:
    order = await order_service.set_archived(order_id, current_user, archived=True)
    return ApiResponse[OrderResponse](
        message="Order archived successfully",
        data=OrderResponse.from_order(order),
    )


@router.put(
    "/{order_id}/unarchive",
    response_model=ApiResponse[OrderResponse],
    summary="Unarchive an order",
)
async def unarchive_order(
    order_id: UUID,
    current_user: CurrentUser,
    order_service: OrderServiceDep,
) -> ApiResponse[OrderResponse]:
    order = await order_service.set_archived(order_id, current_user, archived=False)
    return ApiResponse[OrderResponse](
        message="Order unarchived successfully",
        data=OrderResponse.from_order(order),
    )


@router.put(
    "/{order_id}/status",
    response_model=ApiResponse[OrderResponse],
    summary="Change order status (staff)",
)
async def update_order_status(
    order_id: UUID,
    request: UpdateOrderStatusRequest,
    admin: CurrentAdmin,
    order_service: OrderServiceDep,
) -> ApiResponse[OrderResponse]:
    logger.info(
        "Updating order status",
        order_id=str(order_id),
        new_status=request.status.value,
        admin_id=str(admin.id),
    )
    order = await order_service.update_order_status(order_id, request.status, admin)
    return ApiResponse[OrderResponse](
        message="Order status updated",
        data=OrderResponse.from_order(order),
    )


@router.put(
    "/{order_id}/payment",
    response_model=ApiResponse[OrderResponse],
    summary="Change payment status (staff)",
)
async def update_payment_status(
    order_id: UUID,
    request: UpdatePaymentStatusRequest,
    admin: CurrentAdmin,
    order_service: OrderServiceDep,
) -> ApiResponse[OrderResponse]:
    order = await order_service.update_payment_status(order_id, request.status, admin)
    return ApiResponse[OrderResponse](
        message="Payment status updated",
        data=OrderResponse.from_order(order),
    )
