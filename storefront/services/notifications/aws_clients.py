"""
AWS SES client wrapper with retry on throttling and connection errors.
"""

import time
from typing import Any, Callable, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
)

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)

PERMANENT_ERROR_CODES = frozenset(
    {
        "MessageRejected",
        "MailFromDomainNotVerified",
        "ConfigurationSetDoesNotExist",
    }
)


class SESClientError(Exception):
    """Raised when an email cannot be handed to SES."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.service = "SES"
        self.context = context


class SESClient:
    """Sends transactional email through AWS SES."""

    def __init__(
        self,
        region_name: Optional[str] = None,
        sender: Optional[str] = None,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        client: Any = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        settings = get_settings()
        self.region_name = region_name or settings.aws_region
        self.sender = sender or settings.ses_sender_email
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._sleep = sleep
        self._client = client or boto3.client("ses", region_name=self.region_name)

        logger.debug("SES client initialized", region=self.region_name, max_retries=max_retries)

    def send_email(
        self,
        to_addresses: list[str],
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Send one email.

        Returns:
            Dictionary with the SES message id and recipients

        Raises:
            SESClientError: If SES rejects the message or retries run out
        """
        if not to_addresses:
            raise SESClientError("At least one recipient email address is required")

        message: dict[str, Any] = {
            "Subject": {"Data": subject, "Charset": "UTF-8"},
            "Body": {"Text": {"Data": body_text, "Charset": "UTF-8"}},
        }
        if body_html:
            message["Body"]["Html"] = {"Data": body_html, "Charset": "UTF-8"}

        send_params = {
            "Source": self.sender,
            "Destination": {"ToAddresses": to_addresses},
            "Message": message,
        }

        last_exception: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                response = self._client.send_email(**send_params)
                logger.info(
                    "Email sent via SES",
                    message_id=response["MessageId"],
                    recipients=len(to_addresses),
                    subject=subject,
                )
                return {
                    "message_id": response["MessageId"],
                    "status": "sent",
                    "to_addresses": to_addresses,
                }

            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                error_message = e.response.get("Error", {}).get("Message", str(e))
                logger.warning(
                    "SES client error",
                    attempt=attempt + 1,
                    error_code=error_code,
                    error_message=error_message,
                )
                last_exception = e
                if error_code in PERMANENT_ERROR_CODES:
                    raise SESClientError(
                        f"SES error: {error_message}",
                        error_code=error_code,
                    ) from e

            except (EndpointConnectionError, BotoCoreError) as e:
                logger.warning("SES connection error", attempt=attempt + 1, error=str(e))
                last_exception = e

            if attempt < self.max_retries - 1:
                self._sleep(self.retry_backoff * (2**attempt))

        raise SESClientError(
            f"Failed to send email after {self.max_retries} attempts",
            last_error=str(last_exception),
        ) from last_exception
