"""Cache configuration management."""

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from blobcache.strategy import RefreshStrategy

NAMESPACE = "blobcache"


def default_cache_dir() -> Path:
    """Platform temporary directory joined with the cache namespace."""
    return Path(tempfile.gettempdir()) / NAMESPACE


@dataclass
class CacheConfig:
    """Configuration for the local blob cache.

    Attributes:
        cache_dir: Root directory holding the metadata database, locks and
            cached files (defaults to <tmpdir>/blobcache)
        db_name: File name of the SQLite metadata database inside cache_dir
        files_subdir: Subdirectory of cache_dir holding cached object bytes
        refresh_strategy: How cache hits are revalidated
        max_item_size: Maximum size of a remote object in bytes (10 MB default)
        metadata_timeout: Seconds to wait for remote metadata before giving up
        lock_timeout: Seconds to wait for a per-key lock
        max_background_workers: Threads available for background refreshes
        default_bucket: Bucket used when a lookup names none
        default_protocol: Protocol prepended to bare bucket names
    """

    cache_dir: Path = field(default_factory=default_cache_dir)
    db_name: str = f"{NAMESPACE}.db"
    files_subdir: str = "files"
    refresh_strategy: RefreshStrategy = RefreshStrategy.BY_METADATA_DATE
    max_item_size: int = 10 * 1000 * 1000  # 10 MB per item
    metadata_timeout: float = 5.0
    lock_timeout: float = 30.0
    max_background_workers: int = 4
    default_bucket: Optional[str] = None
    default_protocol: str = "gs"

    def __post_init__(self):
        """Normalize cache_dir and refresh_strategy."""
        if self.cache_dir is None:
            self.cache_dir = default_cache_dir()
        self.cache_dir = Path(self.cache_dir).expanduser()
        self.refresh_strategy = RefreshStrategy.parse(self.refresh_strategy)

        if self.max_item_size <= 0:
            raise ValueError(f"max_item_size must be positive, got {self.max_item_size}")
        if self.metadata_timeout <= 0:
            raise ValueError(
                f"metadata_timeout must be positive, got {self.metadata_timeout}"
            )
        if self.max_background_workers < 1:
            raise ValueError(
                f"max_background_workers must be at least 1, got {self.max_background_workers}"
            )

    @property
    def db_path(self) -> Path:
        return self.cache_dir / self.db_name

    @property
    def files_dir(self) -> Path:
        """Cache root for object bytes."""
        return self.cache_dir / self.files_subdir

    @property
    def lock_dir(self) -> Path:
        return self.cache_dir / ".locks"

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> "CacheConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses default location.

        Returns:
            CacheConfig instance
        """
        if config_path is None:
            config_path = default_cache_dir() / "config.json"
        config_path = Path(config_path)

        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        # Convert cache_dir string to Path
        if "cache_dir" in data:
            data["cache_dir"] = Path(data["cache_dir"])

        return cls(**data)

    def save(self, config_path: Optional[Union[str, Path]] = None) -> None:
        """Save configuration to file.

        Args:
            config_path: Path to config file. If None, uses default location.
        """
        if config_path is None:
            config_path = self.cache_dir / "config.json"
        config_path = Path(config_path)

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "cache_dir": str(self.cache_dir),
            "db_name": self.db_name,
            "files_subdir": self.files_subdir,
            "refresh_strategy": self.refresh_strategy.value,
            "max_item_size": self.max_item_size,
            "metadata_timeout": self.metadata_timeout,
            "lock_timeout": self.lock_timeout,
            "max_background_workers": self.max_background_workers,
            "default_bucket": self.default_bucket,
            "default_protocol": self.default_protocol,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            BLOBCACHE_DIR: Cache directory path
            BLOBCACHE_REFRESH_STRATEGY: 'by_metadata_date' or 'cache_first'
            BLOBCACHE_MAX_ITEM_SIZE: Maximum item size in bytes
            BLOBCACHE_METADATA_TIMEOUT: Remote metadata timeout in seconds
            BLOBCACHE_DEFAULT_BUCKET: Bucket used when lookups name none

        Returns:
            CacheConfig instance
        """
        config = cls()

        if os.getenv("BLOBCACHE_DIR"):
            config.cache_dir = Path(os.getenv("BLOBCACHE_DIR")).expanduser()

        if os.getenv("BLOBCACHE_REFRESH_STRATEGY"):
            config.refresh_strategy = RefreshStrategy.parse(
                os.getenv("BLOBCACHE_REFRESH_STRATEGY")
            )

        if os.getenv("BLOBCACHE_MAX_ITEM_SIZE"):
            config.max_item_size = int(os.getenv("BLOBCACHE_MAX_ITEM_SIZE"))

        if os.getenv("BLOBCACHE_METADATA_TIMEOUT"):
            config.metadata_timeout = float(os.getenv("BLOBCACHE_METADATA_TIMEOUT"))

        if os.getenv("BLOBCACHE_DEFAULT_BUCKET"):
            config.default_bucket = os.getenv("BLOBCACHE_DEFAULT_BUCKET")

        return config


# Global cache configuration instance
_global_config: Optional[CacheConfig] = None


def get_global_config() -> CacheConfig:
    """Get global cache configuration.

    Returns:
        Global CacheConfig instance
    """
    global _global_config
    if _global_config is None:
        # Try loading from file, then env, then defaults
        try:
            _global_config = CacheConfig.load()
        except (OSError, ValueError, TypeError):
            _global_config = CacheConfig.from_env()
    return _global_config


def set_global_config(config: Optional[CacheConfig]) -> None:
    """Set global cache configuration.

    Args:
        config: CacheConfig instance to use globally (None resets to defaults)
    """
    global _global_config
    _global_config = config
