"""Redis-backed token tracker.

Shares outstanding-token state between router instances. Each deployment has
one sorted set keyed ``<prefix><deployment_id>`` whose members are session
ids scored by the time they were last seen. The set expires once no token
for the deployment has been presented for the idle timeout.
"""

import logging
import math
import time
from typing import Any, Callable, Dict, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from skew_protection.config import settings
from skew_protection.routing.tokens import AffinityToken
from skew_protection.tokens.tracker import ANONYMOUS_SESSION, TokenTracker

logger = logging.getLogger(__name__)


class RedisTokenTracker(TokenTracker):
    """Token tracker with connection pool management.

    Example:
        ```python
        tracker = RedisTokenTracker()
        await tracker.initialize()
        await tracker.touch(token)
        await tracker.close()
        ```

        Or use as a context manager:
        ```python
        async with RedisTokenTracker() as tracker:
            count = await tracker.outstanding("a1b2c3")
        ```
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        idle_timeout_seconds: Optional[float] = None,
        key_prefix: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the tracker.

        Args:
            config: Optional Redis configuration dict. If not provided,
                uses settings.redis_config. Should contain: host, port,
                db, password (optional), max_connections.
            idle_timeout_seconds: Defaults to settings.token_idle_timeout_seconds.
            key_prefix: Defaults to settings.redis_key_prefix.
            clock: Source of the current time in seconds.
        """
        self._config = config or settings.redis_config
        self.idle_timeout = (
            idle_timeout_seconds
            if idle_timeout_seconds is not None
            else settings.token_idle_timeout_seconds
        )
        self.key_prefix = key_prefix or settings.redis_key_prefix
        self._clock = clock
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = None

    async def initialize(self) -> None:
        """Initialize the connection pool.

        Raises:
            redis.RedisError: If connection to Redis fails.
        """
        if self._pool is not None:
            logger.warning("Redis pool already initialized, skipping re-initialization")
            return

        try:
            self._pool = ConnectionPool.from_url(
                self._build_connection_url(),
                max_connections=self._config.get("max_connections", 10),
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)
            await self._redis.ping()

            logger.info(
                f"Redis connection pool initialized: "
                f"{self._config['host']}:{self._config['port']}/{self._config['db']}"
            )
        except Exception as e:
            logger.error(f"Failed to initialize Redis connection pool: {e}")
            raise

    async def close(self) -> None:
        """Close the connection pool and release all connections."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None
            logger.info("Redis connection pool closed")

    async def __aenter__(self) -> "RedisTokenTracker":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _build_connection_url(self) -> str:
        password = self._config.get("password")
        host = self._config["host"]
        port = self._config["port"]
        db = self._config["db"]

        if password:
            return f"redis://:{password}@{host}:{port}/{db}"
        return f"redis://{host}:{port}/{db}"

    def _ensure_connected(self) -> Redis:
        """Ensure client is connected and return it.

        Raises:
            RuntimeError: If client is not initialized.
        """
        if self._redis is None or self._pool is None:
            raise RuntimeError(
                "Redis client not connected. Call initialize() first or use as context manager."
            )
        return self._redis

    def _key(self, deployment_id: str) -> str:
        return f"{self.key_prefix}{deployment_id}"

    async def touch(self, token: AffinityToken) -> None:
        """Record a token sighting and drop sessions idle past the timeout.

        A failed write only makes the deployment look idle sooner, so it is
        logged rather than failing the proxied request.
        """
        redis = self._ensure_connected()
        key = self._key(token.deployment_id)
        now = self._clock()
        pipe = redis.pipeline(transaction=True)
        pipe.zadd(key, {token.session_id or ANONYMOUS_SESSION: now})
        pipe.zremrangebyscore(key, "-inf", f"({now - self.idle_timeout}")
        pipe.expire(key, max(1, math.ceil(self.idle_timeout)))
        try:
            await pipe.execute()
        except RedisError as e:
            logger.warning(f"Failed to record affinity token for {token.deployment_id}: {e}")

    async def outstanding(self, deployment_id: str) -> int:
        redis = self._ensure_connected()
        key = self._key(deployment_id)
        cutoff = self._clock() - self.idle_timeout
        await redis.zremrangebyscore(key, "-inf", f"({cutoff}")
        return int(await redis.zcard(key))

    async def forget(self, deployment_id: str) -> None:
        redis = self._ensure_connected()
        await redis.delete(self._key(deployment_id))
        logger.debug(f"Forgot affinity tokens for {deployment_id}")
