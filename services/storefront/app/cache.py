"""
Redis caching utilities for the Storefront service.

Caches public tenant profiles, which every storefront page load asks for.
Cache failures are logged and treated as misses.
"""
import json
import logging
from typing import Optional, Any

import redis

from . import config

logger = logging.getLogger(__name__)

# Initialize Redis client (connects lazily on first command)
redis_client = redis.from_url(config.REDIS_URL, decode_responses=True)


def tenant_key(slug: str) -> str:
    return f"tenant:public:{slug}"


def get_cache(key: str) -> Optional[Any]:
    """
    Get a value from Redis cache.

    Args:
        key: Cache key

    Returns:
        Cached value or None if not found
    """
    try:
        value = redis_client.get(key)
        if value:
            return json.loads(value)
        return None
    except (redis.RedisError, ValueError) as e:
        logger.warning(f"Cache get error: {e}")
        return None


def set_cache(key: str, value: Any, ttl: int = 300) -> bool:
    """
    Set a value in Redis cache with TTL.

    Args:
        key: Cache key
        value: Value to cache (will be JSON serialized)
        ttl: Time to live in seconds

    Returns:
        True if successful, False otherwise
    """
    try:
        redis_client.setex(key, ttl, json.dumps(value, default=str))
        return True
    except redis.RedisError as e:
        logger.warning(f"Cache set error: {e}")
        return False

