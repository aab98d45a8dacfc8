"""Local caching of remote blob-store objects.

This module keeps a SQLite record per cache key and the object bytes on local
disk, revalidating cached entries against the remote last-modified time.

Key components:
- CacheManager: Main cache interface
- CacheConfig: Configuration management
- MetadataStore: Cache record persistence
- validation: Version comparison and timeout helpers
"""

from blobcache.cache.config import CacheConfig, get_global_config, set_global_config
from blobcache.cache.manager import CacheManager
from blobcache.cache.metadata import MetadataStore

__all__ = [
    "CacheManager",
    "CacheConfig",
    "MetadataStore",
    "get_global_config",
    "set_global_config",
]
