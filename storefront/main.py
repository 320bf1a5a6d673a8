"""
FastAPI application entry point.

Wires logging, request correlation, CORS, rate limiting and the error
envelope around the v1 routers. Every error leaves the API as
``{success: false, message, data: {code, request_id, details}}``.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.api.v1 import api_router
from storefront.cache.redis_client import close_redis_client, get_redis_client
from storefront.core.config import get_settings
from storefront.core.exceptions import StorefrontError
from storefront.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from storefront.core.rate_limit import limiter
from storefront.database.connection import check_database_health, close_database_connections
from storefront.schemas.common import ErrorDetail, ErrorResponse
from storefront.services.orders.exceptions import PersistenceError

configure_logging()
logger = get_logger(__name__)

HTTP_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    429: "rate_limited",
}


def _request_id(request: Request) -> Optional[str]:
    # Unhandled errors are rendered after the logging middleware cleared the context
    return getattr(request.state, "request_id", None) or get_request_id() or None


def error_response(
    request: Request,
    status_code: int,
    message: str,
    code: str,
    details: Optional[Any] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    body = ErrorResponse(
        message=message,
        data=ErrorDetail(code=code, request_id=_request_id(request), details=details),
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json"),
        headers=headers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
    )

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        await close_redis_client()
        await close_database_connections()
        logger.info("Resources cleaned up successfully")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Storefront order lifecycle and checkout API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Set the correlation id for the request and log its outcome.

    The id is taken from ``X-Request-ID`` when the caller sends one and is
    echoed back on the response.
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    request.state.request_id = request_id

    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
    )

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )
        return response
    finally:
        clear_context()


@app.exception_handler(StorefrontError)
async def storefront_exception_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Render service errors with their own code and status."""
    if isinstance(exc, PersistenceError):
        logger.error(
            "Persistence failure",
            method=request.method,
            path=request.url.path,
            error=str(exc),
            exc_info=exc.__cause__ is not None,
        )
        return error_response(request, exc.status_code, "An unexpected error occurred", exc.code)

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request rejected",
        method=request.method,
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
        context=exc.context,
    )
    headers = None
    retry_after = exc.context.get("retry_after")
    if retry_after is not None:
        headers = {"Retry-After": str(retry_after)}
    return error_response(
        request,
        exc.status_code,
        exc.message,
        exc.code,
        details=exc.context or None,
        headers=headers,
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "Rate limit exceeded",
        method=request.method,
        path=request.url.path,
        limit=str(exc.detail),
    )
    return error_response(
        request,
        status.HTTP_429_TOO_MANY_REQUESTS,
        f"Rate limit exceeded: {exc.detail}",
        HTTP_ERROR_CODES[429],
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(
        request,
        exc.status_code,
        str(exc.detail),
        HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "loc": [str(part) for part in error["loc"]],
            "msg": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=details,
    )
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Request validation failed",
        "validation_error",
        details=details,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected becomes a generic 500; details stay in the log."""
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
        "internal_error",
    )


@app.get("/health", status_code=status.HTTP_200_OK, tags=["Health"])
async def health_check() -> dict[str, str]:
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get("/ready", status_code=status.HTTP_200_OK, tags=["Health"])
async def readiness_check():
    """
    Readiness probe.

    The database is required. Redis only backs caching and idempotency keys,
    so an unreachable Redis is reported without failing the probe.
    """
    database_ready = await check_database_health(max_retries=1)

    try:
        redis_client = await get_redis_client()
        redis_ready = await redis_client.health_check()
    except (ConnectionError, RedisError) as e:
        logger.warning("Redis connectivity check failed", error=str(e))
        redis_ready = False

    body = {
        "status": "ready" if database_ready else "not_ready",
        "service": settings.app_name,
        "version": settings.app_version,
        "database": "healthy" if database_ready else "unhealthy",
        "redis": "healthy" if redis_ready else "unhealthy",
    }
    if not database_ready:
        logger.warning("Readiness check failed", database=body["database"])
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body


app.include_router(api_router, prefix=settings.api_v1_prefix)
