"""Remote object access.

The cache talks to the remote blob store only through ``RemoteObjectClient``.
``CloudFilesClient`` implements it on top of cloudfiles, which covers GCS, S3,
HTTP and local ``file://`` buckets.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from cloudfiles import CloudFiles

from blobcache.errors import (
    RemoteError,
    RemoteNotFoundError,
    RemoteUnavailableError,
    SizeExceededError,
)
from blobcache.utils import resolve_bucket, to_version_stamp

logger = logging.getLogger(__name__)

# Header names used by the cloudfiles interfaces for modification time
LAST_MODIFIED_KEYS = ("Last-Modified", "LastModified", "last_modified", "updated")


@runtime_checkable
class RemoteObjectClient(Protocol):
    """Capability the cache needs from a remote blob store."""

    def fetch_metadata(self, bucket: str, remote_path: str) -> Optional[int]:
        """Return the object's last-modified time in ms since epoch, or None."""
        ...

    def fetch_bytes(self, bucket: str, remote_path: str, max_size_bytes: int) -> bytes:
        """Return the object's content, failing if it exceeds max_size_bytes."""
        ...


class RemoteObjectRef:
    """Lazy handle to one remote object.

    Creating a ref never touches the network; calls go to the client only when
    metadata or data is requested.
    """

    def __init__(self, client: RemoteObjectClient, bucket: Optional[str], remote_path: str):
        self.client = client
        self.bucket = bucket
        self.remote_path = remote_path

    def get_metadata(self) -> Optional[int]:
        return self.client.fetch_metadata(self.bucket, self.remote_path)

    def get_data(self, max_size_bytes: int) -> bytes:
        return self.client.fetch_bytes(self.bucket, self.remote_path, max_size_bytes)

    def __repr__(self) -> str:
        return f"RemoteObjectRef(bucket={self.bucket!r}, remote_path={self.remote_path!r})"


class CloudFilesClient:
    """RemoteObjectClient backed by cloudfiles.

    Examples:
        >>> client = CloudFilesClient(default_protocol="gs")
        >>> client.fetch_metadata("my-bucket", "img/logo.png")
        1704067200000
    """

    def __init__(self, default_protocol: str = "gs", **cloudfiles_kwargs: Any):
        """Initialize client.

        Args:
            default_protocol: Protocol prepended to buckets given without one
            **cloudfiles_kwargs: Extra keyword arguments for CloudFiles
                (e.g. secrets, progress)
        """
        self.default_protocol = default_protocol
        self.cloudfiles_kwargs = cloudfiles_kwargs

    def _cloudfiles(self, bucket: Optional[str]) -> CloudFiles:
        if not bucket:
            raise RemoteUnavailableError("No bucket configured for remote object")
        return CloudFiles(
            resolve_bucket(bucket, self.default_protocol), **self.cloudfiles_kwargs
        )

    @staticmethod
    def _last_modified(head: Mapping[str, Any]) -> Optional[int]:
        for key in LAST_MODIFIED_KEYS:
            if head.get(key) is not None:
                return to_version_stamp(head[key])
        return None

    def fetch_metadata(self, bucket: str, remote_path: str) -> Optional[int]:
        """Fetch the last-modified stamp of a remote object.

        Args:
            bucket: Bucket name or cloud path (e.g. 'gs://bucket')
            remote_path: Object path within the bucket

        Returns:
            Milliseconds since epoch, or None if the store reports no date

        Raises:
            RemoteNotFoundError: If the object does not exist
            RemoteUnavailableError: If the store cannot be queried
        """
        try:
            head: Optional[Dict[str, Any]] = self._cloudfiles(bucket).head(remote_path)
        except RemoteError:
            raise
        except Exception as e:
            raise RemoteUnavailableError(
                f"Cannot fetch metadata for {bucket}/{remote_path}: {e}"
            ) from e

        if head is None:
            raise RemoteNotFoundError(f"Remote object not found: {bucket}/{remote_path}")

        try:
            return self._last_modified(head)
        except ValueError as e:
            logger.warning(f"Unreadable last-modified for {bucket}/{remote_path}: {e}")
            return None

    def fetch_bytes(self, bucket: str, remote_path: str, max_size_bytes: int) -> bytes:
        """Download a remote object.

        Args:
            bucket: Bucket name or cloud path
            remote_path: Object path within the bucket
            max_size_bytes: Maximum allowed object size

        Returns:
            Object content

        Raises:
            SizeExceededError: If the object is larger than max_size_bytes
            RemoteNotFoundError: If the object does not exist
            RemoteUnavailableError: If the store cannot be queried
        """
        try:
            cf = self._cloudfiles(bucket)
            size = cf.size(remote_path)
            if size is not None and size > max_size_bytes:
                raise SizeExceededError(
                    f"{bucket}/{remote_path} is {size} bytes, "
                    f"exceeding max_size_bytes ({max_size_bytes})"
                )
            content = cf.get(remote_path)
        except RemoteError:
            raise
        except Exception as e:
            raise RemoteUnavailableError(
                f"Cannot download {bucket}/{remote_path}: {e}"
            ) from e

        if content is None:
            raise RemoteNotFoundError(f"Remote object not found: {bucket}/{remote_path}")

        # Some backends cannot report size up front
        if len(content) > max_size_bytes:
            raise SizeExceededError(
                f"{bucket}/{remote_path} is {len(content)} bytes, "
                f"exceeding max_size_bytes ({max_size_bytes})"
            )

        return bytes(content)
