"""blobcache: Local file cache for remote blob-store objects with version-aware refresh."""

__version__ = "0.1.0"

from blobcache.cache import CacheConfig, CacheManager, MetadataStore
from blobcache.errors import (
    CacheDiskFullError,
    CacheError,
    CacheIOError,
    CacheLockError,
    CachePermissionError,
    DuplicateKeyError,
    RemoteError,
    RemoteNotFoundError,
    RemoteTimeoutError,
    RemoteUnavailableError,
    SizeExceededError,
    StoreUnavailableError,
)
from blobcache.records import CachedObject, CacheRecord
from blobcache.remote import CloudFilesClient, RemoteObjectClient, RemoteObjectRef
from blobcache.storage import LocalFileStore
from blobcache.strategy import RefreshStrategy

__all__ = [
    "__version__",
    "CacheManager",
    "CacheConfig",
    "MetadataStore",
    "LocalFileStore",
    "CacheRecord",
    "CachedObject",
    "RefreshStrategy",
    "RemoteObjectClient",
    "RemoteObjectRef",
    "CloudFilesClient",
    "CacheError",
    "StoreUnavailableError",
    "DuplicateKeyError",
    "CacheIOError",
    "CachePermissionError",
    "CacheDiskFullError",
    "CacheLockError",
    "RemoteError",
    "RemoteUnavailableError",
    "RemoteNotFoundError",
    "SizeExceededError",
    "RemoteTimeoutError",
]
