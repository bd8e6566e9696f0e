import threading
import time
import pytest

from cache_aside.executor import InlineRebuildExecutor, RebuildExecutor

@pytest.fixture
def executor():
    """Create a started executor for each test."""
    executor = RebuildExecutor(max_workers=2)
    executor.start()
    yield executor
    executor.shutdown()

def test_submit_does_not_wait(executor):
    """Test submit returns before a slow job finishes."""
    finished = threading.Event()

    def job():
        time.sleep(0.3)
        finished.set()

    start = time.perf_counter()
    future = executor.submit(job)
    assert future is not None
    assert time.perf_counter() - start < 0.2
    assert not finished.is_set()

    assert executor.drain(timeout=5)
    assert finished.is_set()
    assert executor.pending_count == 0

def test_jobs_run_on_worker_threads(executor):
    names = []
    executor.submit(lambda: names.append(threading.current_thread().name))
    executor.drain(timeout=5)
    assert names and names[0].startswith("cache-rebuild")

def test_failing_job_is_swallowed(executor, caplog):
    """Test a job's exception is logged, not raised to the submitter."""
    def job():
        raise RuntimeError("database down")

    future = executor.submit(job)
    assert executor.drain(timeout=5)
    assert future.exception() is None
    assert "Cache rebuild job failed" in caplog.text

    # The pool keeps working afterwards
    done = threading.Event()
    executor.submit(done.set)
    assert done.wait(timeout=5)

def test_pool_capacity(executor):
    """Test no more than max_workers jobs run at once."""
    running = []
    peak = []
    lock = threading.Lock()

    def job():
        with lock:
            running.append(1)
            peak.append(len(running))
        time.sleep(0.1)
        with lock:
            running.pop()

    for _ in range(6):
        executor.submit(job)
    assert executor.drain(timeout=5)
    assert max(peak) <= 2

def test_bounded_queue_rejects():
    """Test submissions beyond max_pending are rejected."""
    release = threading.Event()
    executor = RebuildExecutor(max_workers=1, max_pending=2)
    executor.start()
    try:
        assert executor.submit(release.wait) is not None
        assert executor.submit(release.wait) is not None
        assert executor.submit(release.wait) is None
        release.set()
        assert executor.drain(timeout=5)
        assert executor.submit(lambda: None) is not None
    finally:
        release.set()
        executor.shutdown()

def test_lifecycle():
    """Test jobs are rejected before start and after shutdown."""
    executor = RebuildExecutor(max_workers=1)
    assert executor.submit(lambda: None) is None

    ran = []
    with executor:
        assert executor.running
        executor.submit(lambda: (time.sleep(0.1), ran.append(1)))
    # shutdown waits for queued jobs
    assert ran == [1]
    assert not executor.running
    assert executor.submit(lambda: None) is None

def test_inline_executor_runs_synchronously():
    executor = InlineRebuildExecutor()
    ran = []
    assert executor.submit(lambda: ran.append(1)) is None
    executor.start()
    future = executor.submit(lambda: ran.append(2))
    assert future.done()
    assert ran == [2]

    # Errors are swallowed here too
    future = executor.submit(lambda: 1 / 0)
    assert future.done()
    executor.shutdown()
