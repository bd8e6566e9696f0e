class CacheError(Exception):
    """Base exception for cache-aside errors."""
    pass

class StoreUnavailableError(CacheError):
    """Raised when a cache store operation cannot complete."""
    pass

class DecodeError(CacheError):
    """Raised when stored data does not match the expected shape."""
    pass

class LockTimeoutError(CacheError):
    """Raised when waiting for another caller's rebuild exceeds the retry cap."""
    pass

class LockNotAcquiredError(CacheError):
    """Raised when a lock is already held by another owner."""
    pass

class LoaderError(CacheError):
    """Raised by loaders to signal an infrastructure failure in the backing store.

    A loader signals "not found" by returning None, never by raising.
    """
    pass
