"""
Cache clients.

Provides the client contract shared by every cache tier plus two backends:
- InMemoryCache: process-local, per-entry expiration
- RedisCache: shared Redis store
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)


class CacheMiss(KeyError):
    """Raised when a key is absent or expired."""


class CacheClient(ABC):
    """
    Key/value cache client.

    Implementations must be safe for concurrent use.
    """

    @abstractmethod
    def set(self, key: str, value: Any, expiration: Optional[float] = None) -> None:
        """
        Store a value.

        Args:
            key: Cache key
            value: JSON-serializable value
            expiration: Seconds until expiry, None for the client default
        """
        pass

    @abstractmethod
    def get(self, key: str) -> Any:
        """
        Read a value.

        Raises:
            CacheMiss: If the key is absent or expired
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""
        pass


class InMemoryCache(CacheClient):
    """
    Thread-safe in-process cache.

    Entries are stored as (value, expires_at); expires_at == 0 means the
    entry never expires. Expired entries are removed lazily on read.
    """

    def __init__(
        self,
        default_expiration: float = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            default_expiration: Seconds applied when set() gets no expiration,
                0 for no expiry
            clock: Time source
        """
        self._default_expiration = default_expiration
        self._clock = clock
        self._items: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: Any, expiration: Optional[float] = None) -> None:
        if expiration is None:
            expiration = self._default_expiration
        expires_at = self._clock() + expiration if expiration > 0 else 0
        with self._lock:
            self._items[key] = (value, expires_at)

    def get(self, key: str) -> Any:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                raise CacheMiss(key)

            value, expires_at = item
            if expires_at and expires_at <= self._clock():
                del self._items[key]
                raise CacheMiss(key)

            return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def flush(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class RedisCache(CacheClient):
    """Cache backed by Redis, storing JSON encoded values."""

    def __init__(self, client: redis.Redis, default_expiration: float):
        """
        Initialize the cache.

        Args:
            client: Redis client
            default_expiration: Seconds applied when set() gets no expiration
        """
        self._client = client
        self._default_expiration = default_expiration

    @property
    def client(self) -> redis.Redis:
        return self._client

    def set(self, key: str, value: Any, expiration: Optional[float] = None) -> None:
        if expiration is None:
            expiration = self._default_expiration
        payload = json.dumps(value)
        if expiration > 0:
            self._client.set(key, payload, px=int(expiration * 1000))
        else:
            self._client.set(key, payload)

    def get(self, key: str) -> Any:
        payload = self._client.get(key)
        if payload is None:
            raise CacheMiss(key)
        return json.loads(payload)

    def delete(self, key: str) -> None:
        self._client.delete(key)
