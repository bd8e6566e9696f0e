import time
import pytest

from cache_aside.errors import LockNotAcquiredError
from cache_aside.lock import DistributedLock
from cache_aside.store import MemoryStore

@pytest.fixture
def store():
    return MemoryStore()

@pytest.fixture
def lock(store):
    return DistributedLock(store, ttl=10)

def test_acquire_and_release(lock, store):
    """Test a lock is exclusive until its owner releases it."""
    token = lock.try_acquire("lock:cache:shop:1")
    assert token
    assert store.get("lock:cache:shop:1") == token
    assert lock.try_acquire("lock:cache:shop:1") is None

    assert lock.release("lock:cache:shop:1", token)
    assert store.get("lock:cache:shop:1") is None
    assert lock.try_acquire("lock:cache:shop:1") is not None

def test_tokens_are_unique(lock):
    first = lock.try_acquire("lock:a")
    second = lock.try_acquire("lock:b")
    assert first and second and first != second

def test_only_owner_can_release(lock, store):
    """Test a caller cannot release a lock it did not acquire."""
    token = lock.try_acquire("lock:k")
    assert not lock.release("lock:k", "not-the-owner")
    assert store.get("lock:k") == token
    assert lock.release("lock:k", token)

def test_abandoned_lock_heals(lock):
    """Test a lock held past its TTL can be taken over."""
    stale = lock.try_acquire("lock:k", ttl=0.1)
    time.sleep(0.2)
    fresh = lock.try_acquire("lock:k", ttl=10)
    assert fresh is not None

    # The late first holder must not release the new owner's lock
    assert not lock.release("lock:k", stale)
    assert lock.try_acquire("lock:k") is None
    assert lock.release("lock:k", fresh)

def test_default_ttl_applies(lock, store):
    lock.try_acquire("lock:k")
    assert 9 < store.ttl("lock:k") <= 10

def test_hold(lock, store):
    """Test the context manager releases on normal exit and on error."""
    with lock.hold("lock:k") as token:
        assert store.get("lock:k") == token
        with pytest.raises(LockNotAcquiredError):
            with lock.hold("lock:k"):
                pass
    assert store.get("lock:k") is None

    with pytest.raises(RuntimeError):
        with lock.hold("lock:k"):
            raise RuntimeError("boom")
    assert store.get("lock:k") is None
