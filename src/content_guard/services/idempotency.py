"""Idempotency guard so each (content, verdict) pair is acted on once."""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Any, Final

import redis
import redis.asyncio as aioredis

from content_guard.core.settings import settings

logger = logging.getLogger(__name__)

_KEY_PREFIX: Final[str] = "cg:decided:"


class IdempotencyGuard:
    """Claims dedup keys in Redis, or in process memory when Redis is not configured.

    Redis calls use the asyncio client with a socket timeout. Any Redis error,
    timeouts included, falls back to the local map.
    """

    def __init__(
        self,
        client: Any | None = None,
        *,
        ttl_seconds: int | None = None,
        redis_url: str | None = None,
        socket_timeout: float | None = None,
    ) -> None:
        self._ttl = int(ttl_seconds if ttl_seconds is not None else settings.idempotency_ttl_seconds)
        url = redis_url if redis_url is not None else settings.redis_url
        self._owns_client = False
        if client is None and url:
            timeout = (
                settings.redis_socket_timeout_seconds if socket_timeout is None else socket_timeout
            )
            client = aioredis.from_url(
                url,
                socket_timeout=timeout,
                socket_connect_timeout=timeout,
            )
            self._owns_client = True
        self._redis = client
        self._local: dict[str, float] = {}
        self._local_lock = Lock()

    @property
    def uses_redis(self) -> bool:
        return self._redis is not None

    async def claim(self, key: str) -> bool:
        """Return True if the key was not claimed before (and claim it now)."""
        if self._redis is not None:
            try:
                return bool(
                    await self._redis.set(f"{_KEY_PREFIX}{key}", "1", nx=True, ex=self._ttl)
                )
            except redis.RedisError as exc:
                logger.warning("Redis idempotency claim failed, using local cache: %s", exc)

        now = time.monotonic()
        with self._local_lock:
            expiry = self._local.get(key)
            if expiry is not None and expiry > now:
                return False
            self._local[key] = now + self._ttl
            self._purge_expired(now)
            return True

    async def release(self, key: str) -> None:
        """Forget a claim, e.g. when the guarded work did not happen."""
        if self._redis is not None:
            try:
                await self._redis.delete(f"{_KEY_PREFIX}{key}")
            except redis.RedisError as exc:
                logger.warning("Redis idempotency release failed: %s", exc)
        with self._local_lock:
            self._local.pop(key, None)

    async def close(self) -> None:
        """Close the Redis client if this guard created it."""
        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
            self._redis = None

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, expiry in self._local.items() if expiry <= now]
        for key in expired:
            del self._local[key]
