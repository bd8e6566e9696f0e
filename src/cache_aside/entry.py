from dataclasses import dataclass
from typing import Any, Optional
import time

@dataclass
class StoreEntry:
    """
    A raw string value held by the in-process store, with its physical expiry.
    """
    value: str
    expires_at: Optional[float] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if the entry has expired."""
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) >= self.expires_at

    def remaining(self) -> Optional[float]:
        """Seconds left before the entry expires, None if it never does."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.time())

    @classmethod
    def create(cls, value: str, ttl: Optional[float] = None) -> 'StoreEntry':
        """
        Create a new store entry.

        Args:
            value: The serialized value to store
            ttl: Time to live in seconds (None for no expiration)

        Returns:
            A new StoreEntry instance
        """
        expiry_time = None if ttl is None else time.time() + ttl
        return cls(value=value, expires_at=expiry_time)


@dataclass
class LogicalEnvelope:
    """
    A payload stored alongside an advisory expiry timestamp.

    The store never evicts an envelope on its own; staleness is decided at
    read time by comparing expire_at with the wall clock.
    """
    data: Any
    expire_at: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if the logical expiry has passed."""
        return (time.time() if now is None else now) >= self.expire_at

    @classmethod
    def create(cls, data: Any, ttl: float) -> 'LogicalEnvelope':
        """
        Wrap a payload with a logical expiry ttl seconds from now.

        Args:
            data: The already JSON-compatible payload
            ttl: Freshness window in seconds

        Returns:
            A new LogicalEnvelope instance
        """
        return cls(data=data, expire_at=time.time() + ttl)
