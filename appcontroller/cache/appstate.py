"""
Application state cache.

Holds the active cache client and typed accessors for the state the
reconciliation engine shares between replicas.
"""

import threading
from typing import Any, Callable, Dict, List, Optional

import redis

from appcontroller.cache.client import CacheClient, InMemoryCache, RedisCache
from appcontroller.utils.errors import ConfigurationError
from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)

CLUSTER_INFO_PREFIX = "cluster|info"
MANAGED_RESOURCES_PREFIX = "mfst"


class AppStateCache:
    """
    Application state cache.

    The underlying client can be swapped (e.g. to add an in-memory tier)
    after construction.
    """

    def __init__(self, client: CacheClient, redis_client: Optional[redis.Redis] = None):
        """
        Initialize the cache.

        Args:
            client: Cache client
            redis_client: Raw Redis client when the backend is Redis
        """
        self._client = client
        self._redis_client = redis_client
        self._lock = threading.Lock()

    @property
    def redis_client(self) -> Optional[redis.Redis]:
        return self._redis_client

    def get_client(self) -> CacheClient:
        with self._lock:
            return self._client

    def set_client(self, client: CacheClient) -> None:
        with self._lock:
            self._client = client

    def get_cluster_info(self, server: str) -> Dict[str, Any]:
        """Cached cluster information for a server URL."""
        return self.get_client().get(f"{CLUSTER_INFO_PREFIX}|{server}")

    def set_cluster_info(self, server: str, info: Dict[str, Any]) -> None:
        self.get_client().set(f"{CLUSTER_INFO_PREFIX}|{server}", info)

    def get_app_managed_resources(self, app_name: str) -> List[Dict[str, Any]]:
        return self.get_client().get(f"{MANAGED_RESOURCES_PREFIX}|{app_name}")

    def set_app_managed_resources(self, app_name: str, resources: List[Dict[str, Any]]) -> None:
        self.get_client().set(f"{MANAGED_RESOURCES_PREFIX}|{app_name}", resources)

    def delete_app_managed_resources(self, app_name: str) -> None:
        self.get_client().delete(f"{MANAGED_RESOURCES_PREFIX}|{app_name}")


CacheSource = Callable[[], AppStateCache]


def new_cache_source(
    redis_address: str,
    redis_db: int,
    default_expiration: float,
) -> CacheSource:
    """
    Build a deferred cache constructor.

    Redis is used when an address is configured, otherwise a process-local
    cache (only suitable for a single replica).

    Args:
        redis_address: host:port of the Redis server, empty for in-memory
        redis_db: Redis database number
        default_expiration: Default entry lifetime in seconds

    Returns:
        Callable creating the cache
    """

    def source() -> AppStateCache:
        if not redis_address:
            logger.info("Using in-memory cache", default_expiration=default_expiration)
            return AppStateCache(InMemoryCache(default_expiration))

        host, sep, port = redis_address.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ConfigurationError(f"invalid redis address: {redis_address}")

        client = redis.Redis(host=host, port=int(port), db=redis_db)
        logger.info("Using redis cache", address=redis_address, db=redis_db)
        return AppStateCache(RedisCache(client, default_expiration), redis_client=client)

    return source
