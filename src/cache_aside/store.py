"""
Key-value stores the cache-aside client runs against.

RedisStore talks to a shared Redis server and is what multiple processes use
to coordinate. MemoryStore keeps the same semantics inside one process, for
tests, demos and single-process deployments.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis

from .entry import StoreEntry
from .errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """Contract of the shared key-value store. TTLs are seconds; None means never expire."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored string, or None if the key is absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        """Store a value, replacing any previous one and its TTL."""
        pass

    @abstractmethod
    def set_if_absent(self, key: str, value: str, ttl: Optional[float] = None) -> bool:
        """Atomically store a value only if the key is absent. Returns True if stored."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""
        pass

    @abstractmethod
    def delete_if_equals(self, key: str, value: str) -> bool:
        """Atomically remove a key only if it holds value. Returns True if removed."""
        pass

    @abstractmethod
    def ttl(self, key: str) -> Optional[float]:
        """Remaining seconds before key expires; None if absent or without expiry."""
        pass


class MemoryStore(CacheStore):
    """
    In-process store with Redis-like TTL semantics.
    A single lock makes every operation atomic; expired entries are dropped lazily.
    """

    def __init__(self):
        self._entries: Dict[str, StoreEntry] = {}
        self._lock = threading.Lock()

    def _live_entry(self, key: str) -> Optional[StoreEntry]:
        # Caller holds self._lock
        entry = self._entries.get(key)
        if entry is not None and entry.is_expired():
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live_entry(key)
            return None if entry is None else entry.value

    def set(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._entries[key] = StoreEntry.create(value, ttl)

    def set_if_absent(self, key: str, value: str, ttl: Optional[float] = None) -> bool:
        with self._lock:
            if self._live_entry(key) is not None:
                return False
            self._entries[key] = StoreEntry.create(value, ttl)
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            if self._live_entry(key) is None:
                return False
            del self._entries[key]
            return True

    def delete_if_equals(self, key: str, value: str) -> bool:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None or entry.value != value:
                return False
            del self._entries[key]
            return True

    def ttl(self, key: str) -> Optional[float]:
        with self._lock:
            entry = self._live_entry(key)
            return None if entry is None else entry.remaining()

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired()]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def get_size(self) -> int:
        """Number of entries, including ones expired but not yet purged."""
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# Deletes KEYS[1] only while it still holds ARGV[1]
_DELETE_IF_EQUALS = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


def _ttl_ms(ttl: Optional[float]) -> Optional[int]:
    if ttl is None:
        return None
    return max(1, int(ttl * 1000))


class RedisStore(CacheStore):
    """Redis-backed store. Every Redis failure surfaces as StoreUnavailableError."""

    def __init__(self, client: redis.Redis):
        """
        Args:
            client: A redis.Redis created with decode_responses=True
        """
        self.redis = client
        self._delete_if_equals = client.register_script(_DELETE_IF_EQUALS)

    @classmethod
    def from_url(cls, url: str, **kwargs) -> 'RedisStore':
        """Connect to the Redis server at url (e.g. redis://localhost:6379/0)."""
        kwargs.setdefault('decode_responses', True)
        kwargs.setdefault('socket_connect_timeout', 5)
        kwargs.setdefault('socket_keepalive', True)
        return cls(redis.Redis.from_url(url, **kwargs))

    def _unavailable(self, op: str, key: str, e: Exception) -> StoreUnavailableError:
        logger.error(f"Redis {op} failed for key {key}: {e}")
        return StoreUnavailableError(f"Redis {op} failed for key {key}: {e}")

    def get(self, key: str) -> Optional[str]:
        try:
            return self.redis.get(key)
        except redis.RedisError as e:
            raise self._unavailable('GET', key, e) from e

    def set(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        try:
            self.redis.set(key, value, px=_ttl_ms(ttl))
        except redis.RedisError as e:
            raise self._unavailable('SET', key, e) from e

    def set_if_absent(self, key: str, value: str, ttl: Optional[float] = None) -> bool:
        try:
            return bool(self.redis.set(key, value, nx=True, px=_ttl_ms(ttl)))
        except redis.RedisError as e:
            raise self._unavailable('SET NX', key, e) from e

    def delete(self, key: str) -> bool:
        try:
            return self.redis.delete(key) > 0
        except redis.RedisError as e:
            raise self._unavailable('DEL', key, e) from e

    def delete_if_equals(self, key: str, value: str) -> bool:
        try:
            return bool(self._delete_if_equals(keys=[key], args=[value]))
        except redis.RedisError as e:
            raise self._unavailable('compare-and-delete', key, e) from e

    def ttl(self, key: str) -> Optional[float]:
        try:
            remaining = self.redis.pttl(key)
        except redis.RedisError as e:
            raise self._unavailable('PTTL', key, e) from e
        # -2: absent, -1: no expiry
        if remaining is None or remaining < 0:
            return None
        return remaining / 1000.0

    def close(self) -> None:
        self.redis.close()
