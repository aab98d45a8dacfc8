"""Cache record types.

``CacheRecord`` is the persisted row. ``CachedObject`` is what lookups hand
back: the record plus a lazily resolved remote handle, scoped to one request
and never written to the metadata store.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

if TYPE_CHECKING:
    from blobcache.remote import RemoteObjectRef

# Column names in the images table
COLUMNS = ("uri", "remotePath", "localPath", "bucket", "version")


@dataclass
class CacheRecord:
    """Metadata for one cached remote object.

    Attributes:
        uri: Stable cache key, unique across the store
        remote_path: Object path inside the bucket
        local_path: Absolute path of the cached file (None until first fetch)
        bucket: Remote bucket, needed to resolve the object again later
        version: Remote last-modified time in ms since epoch, or None if unknown
    """

    uri: str
    remote_path: str
    local_path: Optional[str] = None
    bucket: Optional[str] = None
    version: Optional[int] = None

    def to_row(self) -> Dict[str, Any]:
        """Convert to a mapping keyed by table column name."""
        return {
            "uri": self.uri,
            "remotePath": self.remote_path,
            "localPath": self.local_path,
            "bucket": self.bucket,
            "version": self.version,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CacheRecord":
        """Build a record from a table row."""
        version = row["version"]
        return cls(
            uri=row["uri"],
            remote_path=row["remotePath"],
            local_path=row["localPath"],
            bucket=row["bucket"],
            version=int(version) if version is not None else None,
        )

    def copy(self, **changes: Any) -> "CacheRecord":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


@dataclass
class CachedObject:
    """Result of a cache lookup.

    Attributes:
        record: Persisted cache record (possibly stale on a hit)
        ref: Remote handle resolved from the record's bucket and path
        data: Bytes fetched during this lookup (only set on a miss)
    """

    record: CacheRecord
    ref: Optional["RemoteObjectRef"] = None
    data: Optional[bytes] = field(default=None, repr=False)

    @property
    def uri(self) -> str:
        return self.record.uri

    @property
    def local_path(self) -> Optional[str]:
        return self.record.local_path

    @property
    def version(self) -> Optional[int]:
        return self.record.version

    @property
    def fetched(self) -> bool:
        """True if this lookup downloaded the object."""
        return self.data is not None

    @property
    def exists_locally(self) -> bool:
        return self.local_path is not None and Path(self.local_path).is_file()
