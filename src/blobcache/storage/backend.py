"""Local file storage for cached object bytes."""

import errno
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Optional, Union

from blobcache.errors import CacheDiskFullError, CacheIOError, CachePermissionError
from blobcache.utils import is_safe_relative_path, normalize_remote_path

logger = logging.getLogger(__name__)


class LocalFileStore:
    """Stores fetched bytes under a cache root.

    Files live at ``cache_root/<remote path>``. Parent directories are created
    on demand and existing files are replaced, never appended to.

    Examples:
        >>> files = LocalFileStore('/tmp/blobcache/files')
        >>> path = files.write('img/logo.png', b'\\x89PNG')
        >>> files.read(path)
        b'\\x89PNG'
    """

    def __init__(self, cache_root: Union[str, Path]):
        self.cache_root = Path(cache_root)

    def path_for(self, relative_path: str) -> Path:
        """Get the local path for a remote object path.

        Args:
            relative_path: Object path relative to the cache root

        Returns:
            Absolute path under the cache root

        Raises:
            CacheIOError: If the path is empty or escapes the cache root
        """
        if not is_safe_relative_path(relative_path):
            raise CacheIOError(f"Invalid cache path: {relative_path!r}")
        return self.cache_root / normalize_remote_path(relative_path)

    def write(self, relative_path: str, data: bytes) -> Path:
        """Write bytes to cache_root/relative_path.

        Args:
            relative_path: Object path relative to the cache root
            data: Bytes to store

        Returns:
            Path of the written file

        Raises:
            CachePermissionError: If the cache directory is not writable
            CacheDiskFullError: If the disk is full
            CacheIOError: On any other filesystem error
        """
        cache_path = self.path_for(relative_path)

        try:
            cache_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise CachePermissionError(
                f"Cannot create cache directory {cache_path.parent}: {e}"
            ) from e
        except OSError as e:
            logger.error(f"OS error creating cache directory: {e}")
            raise CacheIOError(f"Cannot create cache directory: {e}") from e

        # Write to temp file first so readers never see a partial file
        temp_path = cache_path.with_name(f".{cache_path.name}.{uuid.uuid4().hex}.tmp")

        try:
            with open(temp_path, "wb") as f:
                f.write(data)
            os.replace(temp_path, cache_path)
        except PermissionError as e:
            self._discard(temp_path)
            raise CachePermissionError(f"Cannot write cache file {cache_path}: {e}") from e
        except OSError as e:
            self._discard(temp_path)
            if e.errno == errno.ENOSPC:
                raise CacheDiskFullError(
                    f"Disk full while writing {relative_path} to cache"
                ) from e
            logger.error(f"OS error writing cache file: {e}")
            raise CacheIOError(f"Cannot write cache file {cache_path}: {e}") from e

        return cache_path

    @staticmethod
    def _discard(temp_path: Path) -> None:
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError as e:
                logger.warning(f"Failed to clean up temp file {temp_path}: {e}")

    def read(self, path: Optional[Union[str, Path]]) -> Optional[bytes]:
        """Read a cached file.

        Args:
            path: Absolute path of the cached file

        Returns:
            File content, or None if path is None or the file is missing

        Raises:
            CacheIOError: If the file exists but cannot be read
        """
        if path is None:
            return None
        try:
            return Path(path).read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None
        except OSError as e:
            raise CacheIOError(f"Cannot read cache file {path}: {e}") from e

    def exists(self, path: Optional[Union[str, Path]]) -> bool:
        """True if path is set and a regular file exists there."""
        if path is None:
            return False
        return Path(path).is_file()

    def delete(self, path: Optional[Union[str, Path]]) -> bool:
        """Remove a cached file.

        Returns:
            True if a file was removed
        """
        if not self.exists(path):
            return False
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CacheIOError(f"Cannot delete cache file {path}: {e}") from e
        return True

    def clear(self) -> None:
        """Remove every cached file."""
        if self.cache_root.exists():
            try:
                shutil.rmtree(self.cache_root)
            except OSError as e:
                raise CacheIOError(f"Cannot clear cache root {self.cache_root}: {e}") from e
