"""
Caching utilities for expensive aggregate queries
Uses Redis (django_redis) in production and the local-memory cache otherwise
"""
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
ANALYTICS_CACHE_TTL = 300  # 5 minutes
CATEGORY_SUMMARY_CACHE_TTL = 120  # 2 minutes

ANALYTICS_PREFIX = "platform_analytics"
CATEGORY_SUMMARY_PREFIX = "category_summary"

# Keys written through cached_query, tracked for backends without SCAN
_KNOWN_KEYS_KEY = "cached_query:known_keys"


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def _remember_key(cache_key):
    known = cache.get(_KNOWN_KEYS_KEY) or set()
    known.add(cache_key)
    cache.set(_KNOWN_KEYS_KEY, known, None)


def cached_query(cache_ttl=60, key_prefix="query"):
    """
    Decorator to cache expensive queries

    Usage:
        @cached_query(cache_ttl=300, key_prefix="platform_analytics")
        def build_platform_analytics():
            return data
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = make_cache_key(key_prefix, *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {key_prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {key_prefix}: {cache_key}")
            result = func(*args, **kwargs)
            cache.set(cache_key, result, cache_ttl)
            _remember_key(cache_key)
            return result
        return wrapper
    return decorator


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern
    Uses Redis SCAN when django_redis is the backend, the tracked key set otherwise
    """
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")
    except NotImplementedError:
        # Not a Redis backend
        redis_conn = None

    if redis_conn is not None:
        try:
            keys = []
            cursor = 0
            while True:
                cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
                keys.extend(partial_keys)
                if cursor == 0:
                    break
            if keys:
                redis_conn.delete(*keys)
                logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
        except Exception as e:
            logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")
        return

    known = cache.get(_KNOWN_KEYS_KEY) or set()
    matching = {key for key in known if pattern in key}
    if matching:
        cache.delete_many(list(matching))
        cache.set(_KNOWN_KEYS_KEY, known - matching, None)
        logger.debug(f"Invalidated {len(matching)} cache keys matching pattern: {pattern}")


def invalidate_analytics_cache():
    """Invalidate platform analytics after order/product/user writes"""
    invalidate_cache_pattern(ANALYTICS_PREFIX)


def invalidate_category_cache():
    """Invalidate the public category summary after catalog writes"""
    invalidate_cache_pattern(CATEGORY_SUMMARY_PREFIX)
