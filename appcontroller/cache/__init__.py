"""Cache clients and the in-memory second tier."""

from appcontroller.cache.appstate import AppStateCache, new_cache_source
from appcontroller.cache.client import CacheClient, CacheMiss, InMemoryCache, RedisCache
from appcontroller.cache.twolevel import TwoLevelClient, wrap_with_second_tier

__all__ = [
    "AppStateCache",
    "new_cache_source",
    "CacheClient",
    "CacheMiss",
    "InMemoryCache",
    "RedisCache",
    "TwoLevelClient",
    "wrap_with_second_tier",
]
