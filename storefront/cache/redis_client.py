"""
Async Redis client with pooled connections.

Used as a read-through cache in front of rarely changing rows such as the
store settings. Callers treat cache failures as misses.
"""

import json
from typing import Any, Optional, Union

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)

_redis_client: Optional["RedisClient"] = None


class RedisClient:
    """Thin async wrapper around ``redis.asyncio`` with JSON helpers."""

    def __init__(
        self,
        url: Optional[str] = None,
        max_connections: Optional[int] = None,
        socket_timeout: float = 5.0,
    ):
        settings = get_settings()
        self._url = url or settings.redis_url
        self._max_connections = max_connections or settings.redis_max_connections
        self._socket_timeout = socket_timeout

        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None
        self._is_connected = False

    @staticmethod
    def _sanitize_url(url: str) -> str:
        """Strip credentials from a Redis URL before logging it."""
        if "@" in url:
            protocol, rest = url.split("://", 1)
            _, host_part = rest.split("@", 1)
            return f"{protocol}://***@{host_part}"
        return url

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    async def connect(self) -> None:
        """
        Create the connection pool and verify it with PING.

        Raises:
            ConnectionError: If Redis cannot be reached
        """
        if self._is_connected:
            return

        try:
            self._pool = ConnectionPool.from_url(
                self._url,
                max_connections=self._max_connections,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
                retry_on_timeout=True,
                retry=Retry(ExponentialBackoff(base=0.1, cap=2.0), retries=3),
                decode_responses=True,
            )
            self._client = Redis(connection_pool=self._pool)
            await self._client.ping()
            self._is_connected = True

            logger.info("Redis connection established", url=self._sanitize_url(self._url))

        except (ConnectionError, TimeoutError) as e:
            logger.error(
                "Failed to connect to Redis",
                error=str(e),
                url=self._sanitize_url(self._url),
            )
            await self.disconnect()
            raise ConnectionError(f"Redis connection failed: {e}") from e

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None
        self._is_connected = False

    async def health_check(self) -> bool:
        if not self._is_connected or self._client is None:
            return False
        try:
            await self._client.ping()
            return True
        except RedisError as e:
            logger.warning("Redis health check failed", error=str(e))
            return False

    def _ensure_connected(self) -> Redis:
        if not self._is_connected or self._client is None:
            raise ConnectionError("Redis client is not connected")
        return self._client

    async def get(self, key: str) -> Optional[str]:
        client = self._ensure_connected()
        return await client.get(key)

    async def set(
        self,
        key: str,
        value: Union[str, bytes, int, float],
        ex: Optional[int] = None,
    ) -> bool:
        client = self._ensure_connected()
        return bool(await client.set(key, value, ex=ex))

    async def set_if_absent(self, key: str, value: Union[str, int], ex: Optional[int] = None) -> bool:
        """Atomically set ``key`` unless it exists; True when this call set it."""
        client = self._ensure_connected()
        return bool(await client.set(key, value, ex=ex, nx=True))

    async def delete(self, *keys: str) -> int:
        client = self._ensure_connected()
        return await client.delete(*keys)

    async def get_json(self, key: str) -> Optional[dict[str, Any]]:
        """
        Read and decode a JSON value.

        Returns:
            Decoded mapping, or None when the key is missing or corrupt
        """
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Discarding undecodable cache entry", key=key, error=str(e))
            return None

    async def set_json(
        self,
        key: str,
        value: dict[str, Any],
        ex: Optional[int] = None,
    ) -> bool:
        return await self.set(key, json.dumps(value, default=str), ex=ex)


def make_cache_key(*parts: Union[str, int], namespace: str = "storefront") -> str:
    """Build a namespaced key such as ``storefront:settings:store``."""
    return ":".join([namespace, *(str(part) for part in parts)])


async def get_redis_client() -> RedisClient:
    """
    Return the process-wide client, connecting it on first use.

    Raises:
        ConnectionError: If Redis cannot be reached
    """
    global _redis_client

    if _redis_client is None:
        client = RedisClient()
        await client.connect()
        _redis_client = client

    return _redis_client


async def close_redis_client() -> None:
    global _redis_client

    if _redis_client is not None:
        await _redis_client.disconnect()
        _redis_client = None
