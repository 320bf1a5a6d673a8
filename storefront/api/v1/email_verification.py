"""
Email verification endpoints.

A customer may place one order before verifying their address; the link
sent here lifts that limit.
"""

from fastapi import APIRouter

from storefront.api.deps import CurrentUser, EmailVerificationServiceDep
from storefront.core.logging import get_logger
from storefront.schemas.common import ApiResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/email-verification", tags=["email-verification"])


@router.post("/send", response_model=ApiResponse[None], summary="Send a verification email")
async def send_verification_email(
    current_user: CurrentUser,
    verification: EmailVerificationServiceDep,
) -> ApiResponse[None]:
    await verification.send(current_user)
    return ApiResponse[None](message="Verification email sent successfully")


@router.get("/verify/{token}", response_model=ApiResponse[None], summary="Redeem a verification link")
async def verify_email(
    token: str,
    verification: EmailVerificationServiceDep,
) -> ApiResponse[None]:
    user = await verification.verify(token)
    logger.info("Email verified", user_id=str(user.id))
    return ApiResponse[None](
        message="Email verified successfully! You can now place unlimited orders."
    )
