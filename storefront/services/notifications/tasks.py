"""
Celery application and background email tasks.

Web requests only enqueue; rendering and SES delivery happen in the worker.
Run a worker with::

    celery -A storefront.services.notifications.tasks worker --loglevel=info
"""

from typing import Any

from celery import Celery, Task

from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.services.notifications.aws_clients import SESClient, SESClientError
from storefront.services.notifications.templates import get_template_engine

logger = get_logger(__name__)
settings = get_settings()

celery_app = Celery(
    "storefront",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_always_eager=settings.environment == "test",
)


class NotificationTask(Task):
    """Base task with automatic retry on SES delivery errors."""

    autoretry_for = (SESClientError,)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

    def on_failure(self, exc, task_id, args, kwargs, einfo) -> None:
        logger.error(
            "Notification task failed",
            task_id=task_id,
            exception=str(exc),
            exc_info=einfo,
        )

    def on_retry(self, exc, task_id, args, kwargs, einfo) -> None:
        logger.warning(
            "Notification task retrying",
            task_id=task_id,
            exception=str(exc),
            retry_count=self.request.retries,
            max_retries=self.max_retries,
        )


@celery_app.task(
    bind=True,
    base=NotificationTask,
    name="notifications.send_email",
    time_limit=120,
    soft_time_limit=90,
)
def send_email_task(
    self: Task,
    to_addresses: list[str],
    template_name: str,
    context: dict[str, Any],
) -> dict[str, Any]:
    """
    Render ``template_name`` with ``context`` and send it through SES.

    Returns:
        SES delivery result
    """
    logger.info(
        "Processing email task",
        task_id=self.request.id,
        template_name=template_name,
        recipients=len(to_addresses),
    )

    rendered = get_template_engine().render_email(template_name, context)
    return SESClient().send_email(
        to_addresses=to_addresses,
        subject=rendered["subject"],
        body_text=rendered.get("text_body") or rendered["html_body"],
        body_html=rendered["html_body"],
    )
