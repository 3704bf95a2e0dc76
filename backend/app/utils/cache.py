"""Redis caching utilities.

Read-through cache for static reference data (the station catalogue).
Workflow state is never cached: every guard reads the locked row.
When Redis is unreachable the wrapped function runs uncached.
"""

import functools
import hashlib
import json
import logging
from datetime import date, datetime
from typing import Callable, Optional

import redis.asyncio as redis
from app.config import settings

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
            socket_connect_timeout=settings.operation_timeout_seconds,
            socket_timeout=settings.operation_timeout_seconds,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def cache_key(*args, **kwargs) -> str:
    """Deterministic hash of the call arguments."""
    if not args and not kwargs:
        return "default"

    key_data = json.dumps({"args": args, "kwargs": kwargs}, sort_keys=True)
    return hashlib.md5(key_data.encode()).hexdigest()


def cached(
    ttl: int = 300,
    prefix: str = "cache",
    key_builder: Optional[Callable] = None,
):
    """Decorator to cache JSON-serializable function results in Redis.

    Example:
        @cached(ttl=3600, prefix="stations")
        async def station_catalogue_for(line: str):
            ...

    Cache keys: {prefix}:{function_name}:{args_hash}
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if key_builder:
                key = key_builder(*args, **kwargs)
            else:
                # Only simple values take part in the key; injected objects
                # (sessions, requests) are skipped.
                cache_args = [
                    v for v in args if isinstance(v, (int, str, bool, float, type(None)))
                ]
                cache_kwargs = {}
                for k, v in kwargs.items():
                    if k.startswith("_"):
                        continue
                    if isinstance(v, (int, str, bool, float, type(None))):
                        cache_kwargs[k] = v
                    elif isinstance(v, (date, datetime)):
                        cache_kwargs[k] = v.isoformat()
                key = f"{prefix}:{func.__name__}:{cache_key(*cache_args, **cache_kwargs)}"

            try:
                redis_client = await get_redis()
                cached_value = await redis_client.get(key)
            except (redis.RedisError, OSError) as e:
                logger.warning(f"Redis error (falling back to uncached): {e}")
                return await func(*args, **kwargs)

            if cached_value:
                logger.debug(f"Cache HIT: {key}")
                return json.loads(cached_value)

            logger.debug(f"Cache MISS: {key}")
            result = await func(*args, **kwargs)

            if hasattr(result, "model_dump"):
                serialized = result.model_dump(mode="json")
            elif isinstance(result, list) and result and hasattr(result[0], "model_dump"):
                serialized = [item.model_dump(mode="json") for item in result]
            else:
                serialized = result

            try:
                await redis_client.setex(key, ttl, json.dumps(serialized))
            except (redis.RedisError, OSError) as e:
                logger.warning(f"Redis error (result not cached): {e}")
            return result

        return wrapper

    return decorator


async def invalidate_cache(pattern: str):
    """Invalidate cache keys matching a pattern, e.g. "stations:*"."""
    try:
        redis_client = await get_redis()
        keys = []
        async for key in redis_client.scan_iter(match=pattern):
            keys.append(key)

        if keys:
            await redis_client.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching {pattern}")
    except (redis.RedisError, OSError) as e:
        logger.warning(f"Failed to invalidate cache: {e}")
