import logging
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from .config import LOCK_TTL
from .errors import LockNotAcquiredError
from .store import CacheStore

logger = logging.getLogger(__name__)


class DistributedLock:
    """
    Key-scoped exclusive lock built on the store's atomic set-if-absent.

    Acquisition writes a fresh random token with a short TTL, so a lock whose
    holder died heals by itself. Only the holder of the token can release it.
    """

    def __init__(self, store: CacheStore, ttl: float = LOCK_TTL):
        """
        Args:
            store: The shared store every process coordinates through
            ttl: Default lock lifetime in seconds
        """
        self.store = store
        self.ttl = ttl

    def try_acquire(self, key: str, ttl: Optional[float] = None) -> Optional[str]:
        """
        Try once to take the lock.

        Args:
            key: Lock key
            ttl: Lock lifetime in seconds (defaults to the lock's ttl)

        Returns:
            The owner token if this call created the lock, None if it is held

        Raises:
            StoreUnavailableError: If the store cannot be reached
        """
        token = uuid.uuid4().hex
        if self.store.set_if_absent(key, token, self.ttl if ttl is None else ttl):
            logger.debug(f"Lock acquired: {key}")
            return token
        logger.debug(f"Lock busy: {key}")
        return None

    def release(self, key: str, token: str) -> bool:
        """
        Release the lock if token still owns it.

        Returns:
            True if the lock was deleted, False if it had expired or changed owner
        """
        released = self.store.delete_if_equals(key, token)
        if not released:
            logger.warning(f"Lock {key} was no longer held by this owner on release")
        return released

    @contextmanager
    def hold(self, key: str, ttl: Optional[float] = None) -> Iterator[str]:
        """Hold the lock for the duration of a with-block."""
        token = self.try_acquire(key, ttl)
        if token is None:
            raise LockNotAcquiredError(f"Lock already held: {key}")
        try:
            yield token
        finally:
            self.release(key, token)
