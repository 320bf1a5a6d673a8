"""
Email ownership verification.

Tokens are 32 random bytes rendered as hex. Only their sha256 digest is
stored, together with an expiry and the time the last email went out so
resends can be rate limited per user.
"""

import hashlib
import math
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import get_settings
from storefront.core.exceptions import StorefrontError
from storefront.core.logging import get_logger
from storefront.database.models.user import User
from storefront.services.notifications.service import NotificationService
from storefront.services.orders.exceptions import PersistenceError

logger = get_logger(__name__)


class EmailVerificationError(StorefrontError):
    code = "email_verification_error"
    status_code = 400


class EmailAlreadyVerifiedError(EmailVerificationError):
    code = "email_already_verified"

    def __init__(self, message: str = "Email is already verified", **context: Any):
        super().__init__(message, **context)


class InvalidVerificationTokenError(EmailVerificationError):
    code = "invalid_verification_token"

    def __init__(self, message: str = "Invalid or expired verification link", **context: Any):
        super().__init__(message, **context)


class VerificationCooldownError(EmailVerificationError):
    code = "verification_cooldown"
    status_code = 429

    def __init__(self, retry_after: int, **context: Any):
        super().__init__(
            f"Please wait {retry_after} seconds before requesting another verification email",
            retry_after=retry_after,
            **context,
        )
        self.retry_after = retry_after


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmailVerificationService:
    """Issues, sends and redeems verification tokens."""

    def __init__(
        self,
        session: AsyncSession,
        notifications: NotificationService,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session = session
        self.notifications = notifications
        self._clock = clock
        settings = get_settings()
        self.ttl = timedelta(hours=settings.email_verification_ttl_hours)
        self.cooldown = timedelta(seconds=settings.email_verification_resend_cooldown_seconds)

    def issue_token(self, user: User) -> str:
        """Replace any outstanding token on ``user``; returns the raw token."""
        now = self._clock()
        token = secrets.token_hex(32)
        user.email_verification_token_hash = hash_token(token)
        user.email_verification_expires_at = now + self.ttl
        user.email_verification_sent_at = now
        return token

    def seconds_until_resend(self, user: User) -> int:
        if user.email_verification_sent_at is None:
            return 0
        remaining = (user.email_verification_sent_at + self.cooldown - self._clock()).total_seconds()
        if remaining <= 0:
            return 0
        return math.ceil(remaining)

    async def send(self, user: User, enforce_cooldown: bool = True) -> bool:
        """
        Issue a fresh token and enqueue the verification email.

        Raises:
            EmailAlreadyVerifiedError: If the user is already verified
            VerificationCooldownError: If the previous email is too recent
        """
        if user.is_email_verified:
            raise EmailAlreadyVerifiedError(user_id=str(user.id))

        if enforce_cooldown:
            retry_after = self.seconds_until_resend(user)
            if retry_after > 0:
                raise VerificationCooldownError(retry_after, user_id=str(user.id))

        token = self.issue_token(user)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to store verification token", user_id=str(user.id), error=str(e))
            raise PersistenceError("Failed to store verification token") from e

        sent = await self.notifications.send_verification_email(user, token)
        logger.info("Verification email requested", user_id=str(user.id), enqueued=sent)
        return sent

    async def verify(self, token: str) -> User:
        """
        Redeem a verification token.

        Raises:
            InvalidVerificationTokenError: If the token is unknown or expired
        """
        try:
            result = await self.session.execute(
                select(User).where(User.email_verification_token_hash == hash_token(token))
            )
            user = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to look up verification token", error=str(e))
            raise PersistenceError("Failed to verify email") from e

        if user is None:
            raise InvalidVerificationTokenError()

        expires_at = user.email_verification_expires_at
        if expires_at is None or expires_at <= self._clock():
            logger.info("Expired verification token used", user_id=str(user.id))
            raise InvalidVerificationTokenError(user_id=str(user.id))

        user.is_email_verified = True
        user.email_verification_token_hash = None
        user.email_verification_expires_at = None
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to mark email verified", user_id=str(user.id), error=str(e))
            raise PersistenceError("Failed to verify email") from e

        logger.info("Email verified", user_id=str(user.id))
        return user
