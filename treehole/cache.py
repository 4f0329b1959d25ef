"""Redis-backed JSON cache used by the favorites listings.

Redis is optional at runtime: when the server cannot be reached the client
degrades to a no-op so listings fall through to the database.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from treehole.settings import get_settings

logger = logging.getLogger(__name__)

_DEFAULT_TTL_SECONDS = 300
_FAVORITE_IDS_PREFIX = "favorites:ids"
_FAVORITE_GROUPS_PREFIX = "favorites:groups"

_redis_client: Redis | None = None
_client_lock = asyncio.Lock()
_redis_disabled = False


def favorite_ids_key(user_id: int, favorite_group_id: int | None) -> str:
    group_part = "all" if favorite_group_id is None else str(favorite_group_id)
    return f"{_FAVORITE_IDS_PREFIX}:{user_id}:{group_part}"


def favorite_groups_key(user_id: int, order: str | None) -> str:
    return f"{_FAVORITE_GROUPS_PREFIX}:{user_id}:{order or 'plain'}"


def favorite_user_patterns(user_id: int) -> list[str]:
    """Return the key patterns covering every cached listing of ``user_id``."""

    return [
        f"{_FAVORITE_IDS_PREFIX}:{user_id}:*",
        f"{_FAVORITE_GROUPS_PREFIX}:{user_id}:*",
    ]


def _is_connection_error(exc: BaseException) -> bool:
    return isinstance(exc, (RedisConnectionError, RedisTimeoutError, OSError))


def disable_redis(reason: str) -> None:
    """Stop using Redis for the rest of the process.

    Called when an invalidation fails: entries that could not be dropped
    must not be served, so every later :func:`get_redis` returns ``None``
    until :func:`close_redis` resets the flag.
    """
    global _redis_disabled

    if not _redis_disabled:
        logger.warning("Disabling the listing cache: %s", reason)
    _redis_disabled = True


async def get_redis() -> Redis | None:
    """Get the shared Redis client, returning None if the connection fails."""
    global _redis_client, _redis_disabled

    if _redis_disabled:
        logger.debug("Redis connection disabled after previous failure; skipping attempt.")
        return None

    async with _client_lock:
        if _redis_client is not None:
            return _redis_client

        if _redis_disabled:
            return None

        client = Redis.from_url(
            get_settings().redis_url, decode_responses=True, encoding="utf-8"
        )
        try:
            await client.ping()
        except Exception as exc:
            if _is_connection_error(exc):
                logger.warning("Redis connection failed: %s. Caching will be disabled.", exc)
                _redis_disabled = True
                await client.aclose()
                return None
            raise
        _redis_client = client
        logger.info("Redis connection established successfully")
        return _redis_client


class CacheClient:
    def __init__(self, redis: Redis | None, *, default_ttl: int = _DEFAULT_TTL_SECONDS) -> None:
        self._redis = redis
        self._default_ttl = default_ttl

    async def get_json(self, key: str) -> Any:
        if self._redis is None:
            return None
        try:
            payload = await self._redis.get(key)
        except Exception as exc:
            if _is_connection_error(exc):
                logger.debug("Redis get failed for key %s: %s", key, exc)
                return None
            raise
        if payload is None:
            return None
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            return None

    async def set_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        if self._redis is None:
            return
        try:
            encoded = json.dumps(value, default=str)
            await self._redis.set(key, encoded, ex=ttl or self._default_ttl)
        except Exception as exc:
            if _is_connection_error(exc):
                logger.debug("Redis set failed for key %s: %s", key, exc)
                return
            raise

    async def delete(self, *keys: str) -> None:
        if self._redis is None or not keys:
            return
        try:
            await self._redis.delete(*keys)
        except Exception as exc:
            if _is_connection_error(exc):
                self._redis = None
                disable_redis(f"delete failed: {exc}")
                return
            raise

    async def delete_pattern(self, pattern: str) -> None:
        if self._redis is None:
            return
        try:
            async for key in self._redis.scan_iter(match=pattern):
                await self._redis.delete(key)
        except Exception as exc:
            if _is_connection_error(exc):
                self._redis = None
                disable_redis(f"could not invalidate {pattern}: {exc}")
                return
            raise


async def get_cache_client() -> CacheClient:
    redis = await get_redis()
    return CacheClient(redis, default_ttl=get_settings().favorites_cache_ttl)


async def close_redis() -> None:
    """Close the global Redis connection gracefully."""
    global _redis_client, _redis_disabled
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
    _redis_disabled = False


__all__ = [
    "CacheClient",
    "close_redis",
    "disable_redis",
    "favorite_groups_key",
    "favorite_ids_key",
    "favorite_user_patterns",
    "get_cache_client",
    "get_redis",
]
