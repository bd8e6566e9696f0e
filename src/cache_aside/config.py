from dataclasses import dataclass
from typing import Optional

# Defaults mirror the timers the shop service was tuned with.
CACHE_TTL = 30 * 60.0
NULL_TTL = 2 * 60.0
LOCK_TTL = 10.0
LOGICAL_TTL = 20.0
REBUILD_POOL_SIZE = 10


@dataclass
class CacheConfig:
    """Tunables for the cache-aside client. All durations are in seconds."""
    cache_ttl: float = CACHE_TTL  # store TTL for real values
    null_ttl: float = NULL_TTL  # store TTL for tombstones
    lock_ttl: float = LOCK_TTL  # safety net for abandoned locks
    logical_ttl: float = LOGICAL_TTL  # freshness window of logical envelopes
    rebuild_pool_size: int = REBUILD_POOL_SIZE
    rebuild_max_pending: Optional[int] = None  # None means unbounded queue
    lock_retry_interval: float = 0.05
    lock_max_retry_interval: float = 0.5
    lock_max_retries: int = 30
    metrics_report_interval: Optional[float] = None  # None disables reporting

    def __post_init__(self):
        for name in ('cache_ttl', 'null_ttl', 'lock_ttl', 'logical_ttl',
                     'lock_retry_interval', 'lock_max_retry_interval'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.null_ttl >= self.cache_ttl:
            raise ValueError("null_ttl must be shorter than cache_ttl")
        if self.rebuild_pool_size < 1:
            raise ValueError("rebuild_pool_size must be at least 1")
        if self.rebuild_max_pending is not None and self.rebuild_max_pending < 1:
            raise ValueError("rebuild_max_pending must be at least 1")
        if self.lock_max_retries < 0:
            raise ValueError("lock_max_retries must not be negative")
