"""
FastAPI dependencies for authentication, authorization and service wiring.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.cache.redis_client import RedisClient, get_redis_client
from storefront.core.config import get_settings
from storefront.core.logging import get_logger, set_user_id
from storefront.core.security import TokenError, decode_access_token
from storefront.database.connection import get_db
from storefront.database.models.user import User
from storefront.services.cart.repository import CartRepository, ProductRepository
from storefront.services.cart.service import CartService
from storefront.services.notifications.email_verification import EmailVerificationService
from storefront.services.notifications.service import NotificationService
from storefront.services.orders.checkout import CheckoutOrchestrator
from storefront.services.orders.payment_gate import PaymentGate
from storefront.services.orders.service import OrderService
from storefront.services.payments.verifier import StripePaymentVerifier
from storefront.services.settings.provider import StoreSettingsProvider

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DatabaseSession,
) -> User:
    """
    Validate the bearer token and load the user it names.

    Raises:
        HTTPException: 401 if the token is missing or invalid or the user
            no longer exists
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    try:
        token_data = decode_access_token(credentials.credentials)
    except TokenError as e:
        logger.warning("Authentication failed", code=e.code)
        raise credentials_exception from e

    try:
        user = await db.get(User, token_data.sub)
    except SQLAlchemyError as e:
        logger.error("Database error during user retrieval", user_id=str(token_data.sub), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from e

    if user is None:
        logger.warning("Authentication failed: User not found", user_id=str(token_data.sub))
        raise credentials_exception

    set_user_id(str(user.id))
    return user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    Require a staff account.

    Raises:
        HTTPException: 403 for customers
    """
    if not current_user.is_admin:
        logger.warning(
            "Access denied: Insufficient permissions",
            user_id=str(current_user.id),
            user_role=current_user.role.value,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return current_user


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]


async def get_optional_redis() -> Optional[RedisClient]:
    """Redis when reachable; callers degrade to uncached behaviour otherwise."""
    try:
        return await get_redis_client()
    except (ConnectionError, RedisError) as e:
        logger.warning("Redis unavailable, continuing without cache", error=str(e))
        return None


OptionalRedis = Annotated[Optional[RedisClient], Depends(get_optional_redis)]


def get_settings_provider(db: DatabaseSession, redis_client: OptionalRedis) -> StoreSettingsProvider:
    return StoreSettingsProvider(db, redis_client=redis_client)


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_payment_gate() -> PaymentGate:
    if not get_settings().stripe_secret_key:
        return PaymentGate()
    return PaymentGate(StripePaymentVerifier())


SettingsProviderDep = Annotated[StoreSettingsProvider, Depends(get_settings_provider)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
PaymentGateDep = Annotated[PaymentGate, Depends(get_payment_gate)]


def get_order_service(
    db: DatabaseSession,
    settings_provider: SettingsProviderDep,
    payment_gate: PaymentGateDep,
    notifications: NotificationServiceDep,
) -> OrderService:
    checkout = CheckoutOrchestrator(
        session=db,
        settings_provider=settings_provider,
        payment_gate=payment_gate,
        notifications=notifications,
    )
    return OrderService(db, settings_provider, checkout=checkout)


def get_cart_service(db: DatabaseSession, redis_client: OptionalRedis) -> CartService:
    return CartService(CartRepository(db), ProductRepository(db), redis_client=redis_client)


def get_email_verification_service(
    db: DatabaseSession,
    notifications: NotificationServiceDep,
) -> EmailVerificationService:
    return EmailVerificationService(db, notifications)


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
CartServiceDep = Annotated[CartService, Depends(get_cart_service)]
EmailVerificationServiceDep = Annotated[
    EmailVerificationService, Depends(get_email_verification_service)
]
