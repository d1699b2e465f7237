"""
Two-level cache client.

Reads are served from a short-lived in-memory tier when possible and fall
through to the external client otherwise. Writes and deletes reach both
tiers, so the only observable difference from the external client is latency
and staleness bounded by the in-memory expiration. A non-positive expiration
disables the in-memory tier.
"""

import time
from typing import Any, Callable, Optional

from appcontroller.cache.client import CacheClient, CacheMiss, InMemoryCache
from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)


class TwoLevelClient(CacheClient):
    """Cache client layering an in-memory tier over an external client."""

    def __init__(
        self,
        external: CacheClient,
        in_memory_expiration: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the client.

        Args:
            external: Backing cache client
            in_memory_expiration: Lifetime of in-memory entries in seconds
            clock: Time source for the in-memory tier
        """
        self._external = external
        self._in_memory_expiration = in_memory_expiration
        self._in_memory = InMemoryCache(clock=clock)

    @property
    def external(self) -> CacheClient:
        return self._external

    @property
    def in_memory_enabled(self) -> bool:
        return self._in_memory_expiration > 0

    def set(self, key: str, value: Any, expiration: Optional[float] = None) -> None:
        self._external.set(key, value, expiration)
        if self.in_memory_enabled:
            self._in_memory.set(key, value, self._local_expiration(expiration))

    def get(self, key: str) -> Any:
        if not self.in_memory_enabled:
            return self._external.get(key)

        try:
            return self._in_memory.get(key)
        except CacheMiss:
            pass

        value = self._external.get(key)
        self._in_memory.set(key, value, self._in_memory_expiration)
        return value

    def delete(self, key: str) -> None:
        self._in_memory.delete(key)
        self._external.delete(key)

    def _local_expiration(self, expiration: Optional[float]) -> float:
        # never outlive the entry in the external tier
        if expiration is not None and expiration > 0:
            return min(expiration, self._in_memory_expiration)
        return self._in_memory_expiration


def wrap_with_second_tier(base: CacheClient, ttl: float) -> TwoLevelClient:
    """
    Wrap a cache client with an in-memory tier.

    Args:
        base: Backing cache client
        ttl: Lifetime of in-memory entries in seconds

    Returns:
        Two-level client
    """
    logger.info("Enabled in-memory cache tier", ttl_seconds=ttl)
    return TwoLevelClient(base, ttl)
