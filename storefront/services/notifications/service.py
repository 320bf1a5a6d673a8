"""
Notification dispatch for the order core.

Emails are enqueued on Celery. Enqueue failures are logged and reported as
``False``; callers on the checkout path never fail because of them.
"""

import asyncio
from typing import Any, Callable, Optional

from celery.exceptions import CeleryError
from kombu.exceptions import KombuError

from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.database.models.order import Order
from storefront.database.models.user import User
from storefront.services.settings.provider import StoreConfig

logger = get_logger(__name__)

EMAIL_VERIFICATION_TEMPLATE = "email_verification"
NEW_ORDER_ADMIN_TEMPLATE = "new_order_admin"

Dispatcher = Callable[[list[str], str, dict[str, Any]], Any]


def _celery_dispatcher(to_addresses: list[str], template_name: str, context: dict[str, Any]) -> Any:
    from storefront.services.notifications.tasks import send_email_task

    return send_email_task.delay(to_addresses, template_name, context)


class NotificationService:
    """Enqueues transactional emails."""

    def __init__(self, dispatcher: Optional[Dispatcher] = None):
        self._dispatch = dispatcher or _celery_dispatcher
        self.settings = get_settings()

    async def send_email(
        self,
        to_addresses: list[str],
        template_name: str,
        context: dict[str, Any],
    ) -> bool:
        """
        Enqueue one templated email.

        Returns:
            True if the task was queued
        """
        try:
            await asyncio.to_thread(self._dispatch, to_addresses, template_name, context)
        except (CeleryError, KombuError, OSError) as e:
            logger.error(
                "Failed to enqueue email",
                template_name=template_name,
                recipients=len(to_addresses),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info("Email enqueued", template_name=template_name, recipients=len(to_addresses))
        return True

    async def send_verification_email(self, user: User, token: str) -> bool:
        verification_url = (
            f"{self.settings.frontend_url.rstrip('/')}/verify-email/{token}"
        )
        return await self.send_email(
            [user.email],
            EMAIL_VERIFICATION_TEMPLATE,
            {
                "customer_name": user.name,
                "verification_url": verification_url,
                "expires_in_hours": self.settings.email_verification_ttl_hours,
            },
        )

    async def notify_new_order(self, order: Order, config: StoreConfig) -> bool:
        """Tell the shop staff about a new order when the store wants that."""
        recipients = self.settings.admin_notification_emails
        if not config.order_notifications or not recipients:
            return False

        context = {
            "order_number": order.order_number,
            "customer_name": order.customer_name,
            "customer_email": order.customer_email,
            "created_at": order.created_at.isoformat() if order.created_at else None,
            "payment_method": order.payment_method.value,
            "payment_status": order.payment_status.value,
            "shipping_method": order.shipping_method.value,
            "currency": config.currency,
            "items": [
                {"name": item.name, "quantity": item.quantity, "price": str(item.price)}
                for item in order.items
            ],
            "subtotal": str(order.subtotal),
            "shipping_cost": str(order.shipping_cost),
            "tax": str(order.tax),
            "total_amount": str(order.total_amount),
        }
        return await self.send_email(list(recipients), NEW_ORDER_ADMIN_TEMPLATE, context)
