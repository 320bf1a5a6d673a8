"""
JWT helpers for the bearer tokens issued by the identity service.

The storefront does not log users in; it only needs to read the subject and
role from access tokens, and to mint tokens for tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"


class TokenError(Exception):
    """Raised when a token cannot be decoded or is not an access token."""

    def __init__(self, message: str, code: str, **context: Any):
        super().__init__(message)
        self.code = code
        self.context = context


class TokenPayload(BaseModel):
    sub: UUID
    role: Optional[str] = None
    exp: Optional[int] = None
    type: str = ACCESS_TOKEN_TYPE


def create_access_token(
    subject: UUID,
    role: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Create a signed access token.

    Example:
        >>> token = create_access_token(user.id, role="admin")
    """
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )
    claims: Dict[str, Any] = {
        "sub": str(subject),
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": ACCESS_TOKEN_TYPE,
    }
    if role:
        claims["role"] = role
    if additional_claims:
        claims.update(additional_claims)

    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenPayload:
    """
    Verify and decode an access token.

    Raises:
        TokenError: If the signature, expiry or claims are invalid
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.warning("JWT validation failed", error=str(e), error_type=type(e).__name__)
        raise TokenError("Could not validate credentials", code="INVALID_TOKEN") from e

    try:
        token_data = TokenPayload.model_validate(payload)
    except ValidationError as e:
        logger.warning("JWT claims invalid", error=str(e))
        raise TokenError("Could not validate credentials", code="INVALID_CLAIMS") from e

    if token_data.type != ACCESS_TOKEN_TYPE:
        raise TokenError(
            "Could not validate credentials",
            code="INVALID_TOKEN_TYPE",
            token_type=token_data.type,
        )
    return token_data
