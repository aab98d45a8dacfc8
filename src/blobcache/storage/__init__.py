"""Local file storage for cached object bytes."""

from blobcache.storage.backend import LocalFileStore

__all__ = ["LocalFileStore"]
