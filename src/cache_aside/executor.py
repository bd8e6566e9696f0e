import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Optional, Set

from .config import REBUILD_POOL_SIZE

logger = logging.getLogger(__name__)

RebuildJob = Callable[[], None]


class RebuildExecutor:
    """
    Fixed-size worker pool for background cache rebuilds.

    submit() hands the job to a worker and returns immediately. A job's
    failure is logged and never reaches the submitter, who already answered
    its own caller. With max_pending set, submissions beyond that many queued
    or running jobs are rejected and logged instead of queued.
    """

    def __init__(self, max_workers: int = REBUILD_POOL_SIZE,
                 max_pending: Optional[int] = None,
                 thread_name_prefix: str = "cache-rebuild"):
        """
        Initialize the executor. Call start() before submitting.

        Args:
            max_workers: Number of worker threads
            max_pending: Cap on queued plus running jobs (None for unbounded)
            thread_name_prefix: Name prefix for worker threads
        """
        self.max_workers = max_workers
        self.max_pending = max_pending
        self._thread_name_prefix = thread_name_prefix
        self._pool: Optional[ThreadPoolExecutor] = None
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()
        self._running = False

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending_count(self) -> int:
        """Jobs submitted and not yet finished."""
        with self._lock:
            return len(self._pending)

    def start(self) -> None:
        """Start the worker pool."""
        with self._lock:
            if self._running:
                return
            self._pool = ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix=self._thread_name_prefix
            )
            self._running = True
        logger.info(f"Rebuild executor started with {self.max_workers} workers")

    def submit(self, job: RebuildJob) -> Optional[Future]:
        """
        Schedule a job without waiting for it.

        Args:
            job: Zero-argument callable; its return value is ignored

        Returns:
            A future completing when the job finishes, or None if rejected
        """
        with self._lock:
            if not self._running:
                logger.warning("Rebuild job rejected: executor is not running")
                return None
            if self.max_pending is not None and len(self._pending) >= self.max_pending:
                logger.warning(f"Rebuild job rejected: {len(self._pending)} jobs already pending")
                return None
            future = self._pool.submit(self._run, job)
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def _run(self, job: RebuildJob) -> None:
        try:
            job()
        except Exception:
            logger.exception("Cache rebuild job failed")

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the jobs pending right now to finish.

        Returns:
            True if they all finished within timeout
        """
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        done, not_done = wait(pending, timeout=timeout)
        # Done callbacks may still be in flight on worker threads
        with self._lock:
            self._pending -= done
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs; with wait, let queued jobs finish first."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            pool, self._pool = self._pool, None
        pool.shutdown(wait=wait)
        logger.info("Rebuild executor stopped")


class InlineRebuildExecutor(RebuildExecutor):
    """Runs each job synchronously inside submit(). Deterministic, for tests."""

    def __init__(self):
        super().__init__(max_workers=1)

    def start(self) -> None:
        self._running = True

    def submit(self, job: RebuildJob) -> Optional[Future]:
        if not self._running:
            logger.warning("Rebuild job rejected: executor is not running")
            return None
        future: Future = Future()
        self._run(job)
        future.set_result(None)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._running = False
