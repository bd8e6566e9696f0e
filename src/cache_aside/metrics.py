from threading import Thread, Event, Lock
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)

COUNTERS = (
    'hits',            # fresh value served from cache
    'misses',          # key absent from cache
    'null_hits',       # tombstone served, loader skipped
    'stale_hits',      # logically expired value served
    'loads',           # loader invocations on the request path
    'load_failures',   # loader raised on the request path
    'lock_waits',      # mutex path found the lock busy and backed off
    'lock_timeouts',   # mutex path gave up waiting
    'rebuilds',        # background rebuilds submitted
    'rebuild_rejects', # background rebuilds the executor refused
    'rebuild_failures',
    'invalidations',
)


@dataclass
class CacheMetrics:
    """Thread-safe counters for cache-aside operations."""
    report_interval: Optional[float] = None  # seconds; None disables the reporter

    _counts: Dict[str, int] = field(default_factory=lambda: dict.fromkeys(COUNTERS, 0))
    _lock: Lock = field(default_factory=Lock)
    _stop_event: Event = field(default_factory=Event)
    _report_thread: Optional[Thread] = None

    def __post_init__(self):
        """Start the background reporting thread if an interval is set."""
        if self.report_interval:
            self._report_thread = Thread(target=self._report_metrics, daemon=True)
            self._report_thread.start()

    def record(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[name] += amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics snapshot."""
        with self._lock:
            snapshot: Dict[str, Any] = dict(self._counts)
        served = snapshot['hits'] + snapshot['null_hits'] + snapshot['stale_hits']
        lookups = served + snapshot['misses']
        snapshot['hit_rate'] = served / lookups if lookups > 0 else 0
        return snapshot

    def reset(self) -> None:
        with self._lock:
            for name in self._counts:
                self._counts[name] = 0

    def _report_metrics(self):
        """Background thread that logs metrics periodically."""
        while not self._stop_event.wait(self.report_interval):
            logger.info("Cache metrics: %s", self.get_metrics())

    def shutdown(self):
        """Shutdown the metrics reporting thread."""
        self._stop_event.set()
        if self._report_thread:
            self._report_thread.join(timeout=5.0)
