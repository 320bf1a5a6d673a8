"""
Response envelope shared by every endpoint.

Successful responses are ``{success, message, data}`` plus ``pagination`` on
paginated listings. Errors use the same shape with ``success = false`` and
the machine readable details under ``data``.
"""

from decimal import Decimal
from typing import Annotated, Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

T = TypeVar("T")

Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]


class Pagination(BaseModel):
    """Page metadata for listings."""

    current_page: int = Field(..., ge=1)
    total_pages: int = Field(..., ge=0)
    total_orders: int = Field(..., ge=0)
    limit: int = Field(..., ge=1)
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = -(-total // limit) if total else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_orders=total,
            limit=limit,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )


class ApiResponse(BaseModel, Generic[T]):
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    message: str
    data: Optional[T] = None


class PaginatedResponse(ApiResponse[T], Generic[T]):
    pagination: Pagination


class ErrorDetail(BaseModel):
    code: str
    request_id: Optional[str] = None
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool = False
    message: str
    data: ErrorDetail
