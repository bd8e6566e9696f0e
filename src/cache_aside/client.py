"""
Cache-aside read strategies over a shared key-value store.

Three ways to read through the cache, each guarding the backing store
against a different failure mode:

- get_or_load_pass_through caches "not found" as a short-lived tombstone so
  lookups of ids that never exist stop reaching the loader (penetration).
- get_or_load_mutex lets a single caller per key run the loader while the
  others back off and re-read (breakdown).
- get_or_load_logical never waits: expired entries are served stale while
  one background job rebuilds them (avalanche).
"""
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

from . import codec
from .config import CacheConfig
from .entry import LogicalEnvelope
from .errors import LockTimeoutError, StoreUnavailableError
from .executor import RebuildExecutor
from .lock import DistributedLock
from .metrics import CacheMetrics
from .store import CacheStore

logger = logging.getLogger(__name__)

ID = TypeVar('ID')
R = TypeVar('R')
Loader = Callable[[ID], Optional[R]]


class CacheClient:
    """Cache-aside access layer in front of a slow loader."""

    def __init__(
        self,
        store: CacheStore,
        config: Optional[CacheConfig] = None,
        executor: Optional[RebuildExecutor] = None,
        metrics: Optional[CacheMetrics] = None
    ):
        """
        Initialize the client. Call start() before using the logical-expiry strategy.

        Args:
            store: Shared key-value store
            config: Optional tunables
            executor: Optional rebuild executor; one sized from config is created otherwise
            metrics: Optional metrics collector
        """
        self.store = store
        self.config = config or CacheConfig()
        self.lock = DistributedLock(store, ttl=self.config.lock_ttl)
        self._owns_executor = executor is None
        self.executor = executor or RebuildExecutor(
            max_workers=self.config.rebuild_pool_size,
            max_pending=self.config.rebuild_max_pending
        )
        self._owns_metrics = metrics is None
        self.metrics = metrics or CacheMetrics(report_interval=self.config.metrics_report_interval)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    def start(self) -> None:
        self.executor.start()

    def shutdown(self, wait: bool = True) -> None:
        """Stop components this client created."""
        if self._owns_executor:
            self.executor.shutdown(wait=wait)
        if self._owns_metrics:
            self.metrics.shutdown()

    # Writes

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value with a store-level TTL (defaults to cache_ttl)."""
        self.store.set(key, codec.encode(value), self.config.cache_ttl if ttl is None else ttl)

    def set_with_logical_expire(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store a value wrapped with a logical expiry and no store-level TTL.

        Args:
            key: Cache key
            value: Domain value
            ttl: Freshness window in seconds (defaults to logical_ttl)
        """
        envelope = LogicalEnvelope.create(
            codec.to_plain(value),
            self.config.logical_ttl if ttl is None else ttl
        )
        self.store.set(key, codec.encode_envelope(envelope))

    def invalidate(self, prefix: str, id: Any) -> bool:
        """Delete the cached entry for id. Call after every write to the backing store."""
        key = codec.build_key(prefix, id)
        deleted = self.store.delete(key)
        self.metrics.record('invalidations')
        logger.debug(f"Cache INVALIDATE: {key}")
        return deleted

    def _release(self, lock_key: str, token: str) -> None:
        """Release a lock without masking the error, if any, raised while holding it."""
        try:
            self.lock.release(lock_key, token)
        except StoreUnavailableError as e:
            # The lock TTL frees the key
            logger.error(f"Could not release {lock_key}: {e}")

    # Reads

    def _lookup(self, key: str, type_: Optional[Type[R]], record: bool = True) -> Tuple[bool, Optional[R]]:
        """Read key; returns (found, value) where a tombstone is found with value None."""
        raw = self.store.get(key)
        if raw is None:
            if record:
                self.metrics.record('misses')
                logger.debug(f"Cache MISS: {key}")
            return False, None
        if codec.is_tombstone(raw):
            if record:
                self.metrics.record('null_hits')
                logger.debug(f"Cache NULL HIT: {key}")
            return True, None
        value = codec.decode(raw, type_)
        if record:
            self.metrics.record('hits')
            logger.debug(f"Cache HIT: {key}")
        return True, value

    def _load_and_fill(self, key: str, id: ID, loader: Loader, ttl: Optional[float]) -> Optional[R]:
        """Run the loader once and cache its value, or a tombstone if it found nothing."""
        self.metrics.record('loads')
        try:
            value = loader(id)
        except Exception:
            self.metrics.record('load_failures')
            raise
        if value is None:
            self.store.set(key, codec.TOMBSTONE, self.config.null_ttl)
            logger.debug(f"Cache SET tombstone: {key} (TTL: {self.config.null_ttl}s)")
            return None
        self.set(key, value, ttl)
        logger.debug(f"Cache SET: {key}")
        return value

    def get_or_load_pass_through(
        self,
        prefix: str,
        id: ID,
        type_: Optional[Type[R]],
        loader: Loader,
        ttl: Optional[float] = None
    ) -> Optional[R]:
        """
        Read through the cache, caching misses as tombstones.

        Concurrent first misses may each call the loader; once a value or
        tombstone is written, reads are served from the cache until it expires.

        Args:
            prefix: Key prefix, e.g. 'cache:shop:'
            id: Identifier passed to the loader
            type_: Type to decode cached values into (None for plain JSON data)
            loader: Returns the value for id, or None if it does not exist
            ttl: Store TTL for real values (defaults to cache_ttl)

        Returns:
            The value, or None if it does not exist

        Raises:
            StoreUnavailableError: If the store cannot be reached
            DecodeError: If the cached data is corrupt
        """
        key = codec.build_key(prefix, id)
        found, value = self._lookup(key, type_)
        if found:
            return value
        return self._load_and_fill(key, id, loader, ttl)

    def get_or_load_mutex(
        self,
        prefix: str,
        id: ID,
        type_: Optional[Type[R]],
        loader: Loader,
        ttl: Optional[float] = None
    ) -> Optional[R]:
        """
        Read through the cache, letting only the lock holder run the loader.

        Callers that find the lock busy sleep and re-read, doubling the wait
        each time up to lock_max_retry_interval, for at most lock_max_retries
        waits.

        Raises:
            LockTimeoutError: If the key was neither filled nor lockable in time
            StoreUnavailableError: If the store cannot be reached
            DecodeError: If the cached data is corrupt
        """
        key = codec.build_key(prefix, id)
        lock_key = codec.lock_key(prefix, id)
        delay = self.config.lock_retry_interval

        for attempt in range(self.config.lock_max_retries + 1):
            found, value = self._lookup(key, type_)
            if found:
                return value

            token = self.lock.try_acquire(lock_key)
            if token is not None:
                try:
                    # The previous holder may have filled the key after our miss
                    found, value = self._lookup(key, type_, record=False)
                    if found:
                        return value
                    return self._load_and_fill(key, id, loader, ttl)
                finally:
                    self._release(lock_key, token)

            if attempt == self.config.lock_max_retries:
                break
            self.metrics.record('lock_waits')
            time.sleep(delay)
            delay = min(delay * 2, self.config.lock_max_retry_interval)

        self.metrics.record('lock_timeouts')
        logger.warning(f"Gave up waiting for {lock_key} after {self.config.lock_max_retries} retries")
        raise LockTimeoutError(f"Timed out waiting for cache rebuild of {key}")

    def get_or_load_logical(
        self,
        prefix: str,
        id: ID,
        type_: Optional[Type[R]],
        loader: Loader,
        ttl: Optional[float] = None
    ) -> Optional[R]:
        """
        Read a logically expiring entry without ever waiting for a rebuild.

        Entries must be warmed with set_with_logical_expire(); a cold key
        returns None and the loader is not called. An expired entry is returned
        as is, and the caller that wins the lock schedules a background rebuild.

        Args:
            ttl: Freshness window written by the rebuild (defaults to logical_ttl)
        """
        key = codec.build_key(prefix, id)
        raw = self.store.get(key)
        if raw is None or codec.is_tombstone(raw):
            self.metrics.record('misses')
            logger.debug(f"Cache MISS (logical): {key}")
            return None

        envelope = codec.decode_envelope(raw)
        value = None if envelope.data is None else codec.from_plain(envelope.data, type_)
        if not envelope.is_expired():
            self.metrics.record('hits')
            return value

        self.metrics.record('stale_hits')
        logger.debug(f"Cache STALE: {key}")
        lock_key = codec.lock_key(prefix, id)
        token = self.lock.try_acquire(lock_key)
        if token is not None:
            try:
                future = self.executor.submit(
                    lambda: self._rebuild(key, lock_key, token, id, loader, ttl)
                )
            except Exception:
                self._release(lock_key, token)
                raise
            if future is None:
                self.metrics.record('rebuild_rejects')
                self._release(lock_key, token)
            else:
                self.metrics.record('rebuilds')
        return value

    def _rebuild(self, key: str, lock_key: str, token: str, id: ID,
                 loader: Loader, ttl: Optional[float]) -> None:
        """Background job: reload id and rewrite its envelope, then release the lock."""
        try:
            raw = self.store.get(key)
            if raw and not codec.decode_envelope(raw).is_expired():
                logger.debug(f"Skipping rebuild of {key}: already fresh")
                return
            value = loader(id)
            if value is None:
                self.store.delete(key)
                logger.info(f"Cache rebuild removed {key}: no longer exists")
            else:
                self.set_with_logical_expire(key, value, ttl)
                logger.debug(f"Cache REBUILT: {key}")
        except Exception:
            self.metrics.record('rebuild_failures')
            logger.exception(f"Cache rebuild failed for {key}")
        finally:
            self._release(lock_key, token)

    def get_stats(self) -> Dict[str, Any]:
        stats = self.metrics.get_metrics()
        stats['pending_rebuilds'] = self.executor.pending_count
        return stats
