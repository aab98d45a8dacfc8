"""Exception hierarchy for blobcache.

Absence (a key that is not cached, a local file that has gone missing) is
never an error: lookups return ``None`` for those cases.
"""


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class StoreUnavailableError(CacheError):
    """Raised when the metadata store cannot be opened or queried."""

    pass


class DuplicateKeyError(CacheError):
    """Raised when inserting a record whose key already exists."""

    pass


class CacheIOError(CacheError):
    """Raised when reading or writing a cached file fails."""

    pass


class CachePermissionError(CacheIOError):
    """Raised when cache directory permissions are insufficient."""

    pass


class CacheDiskFullError(CacheIOError):
    """Raised when disk is full and cannot write to cache."""

    pass


class CacheLockError(CacheError):
    """Raised when unable to acquire the lock for a cache key."""

    pass


class RemoteError(CacheError):
    """Base exception for failures reported by the remote blob store."""

    pass


class RemoteUnavailableError(RemoteError):
    """Raised when the remote store cannot be reached."""

    pass


class RemoteNotFoundError(RemoteError):
    """Raised when the remote object does not exist."""

    pass


class SizeExceededError(RemoteError):
    """Raised when a remote object is larger than the allowed maximum."""

    pass


class RemoteTimeoutError(RemoteError):
    """Raised when a remote metadata request does not finish in time."""

    pass
