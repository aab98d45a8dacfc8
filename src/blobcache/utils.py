"""Helpers for cache keys, bucket names and local paths."""

import hashlib
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path, PurePosixPath
from typing import Any, Optional, Tuple, Union

CLOUD_PREFIXES = (
    "s3://",
    "gs://",
    "gcs://",
    "az://",
    "azure://",
    "https://",
    "http://",
    "file://",
)

_DUPLICATE_SEPARATORS = re.compile(r"/{2,}")


def is_cloud_path(path: Union[str, Path]) -> bool:
    """Check if a path is a cloud storage path.

    Args:
        path: Path to check

    Returns:
        True if path starts with cloud storage protocol

    Examples:
        >>> is_cloud_path('gs://bucket/img/logo.png')
        True
        >>> is_cloud_path('img/logo.png')
        False
    """
    return str(path).startswith(CLOUD_PREFIXES)


def split_cloud_uri(uri: str) -> Tuple[str, str]:
    """Split a cloud URI into bucket and object path.

    The bucket keeps its protocol so it can be handed to cloudfiles unchanged.

    Args:
        uri: URI such as 'gs://bucket/dir/file.png'

    Returns:
        Tuple of (bucket, remote_path)

    Raises:
        ValueError: If uri is not a cloud path or names no object

    Examples:
        >>> split_cloud_uri('gs://b1/img/logo.png')
        ('gs://b1', 'img/logo.png')
    """
    if not is_cloud_path(uri):
        raise ValueError(f"Not a cloud URI: {uri}")

    protocol, rest = uri.split("://", 1)
    bucket, _, remote_path = rest.partition("/")
    remote_path = normalize_remote_path(remote_path)
    if not bucket or not remote_path:
        raise ValueError(f"URI must name a bucket and an object: {uri}")
    return f"{protocol}://{bucket}", remote_path


def resolve_bucket(bucket: str, default_protocol: str = "gs") -> str:
    """Prefix a bare bucket name with a protocol.

    Examples:
        >>> resolve_bucket('b1')
        'gs://b1'
        >>> resolve_bucket('s3://b1', default_protocol='gs')
        's3://b1'
    """
    bucket = bucket.rstrip("/")
    if is_cloud_path(bucket):
        return bucket
    return f"{default_protocol}://{bucket}"


def normalize_remote_path(remote_path: str) -> str:
    """Collapse duplicate separators and strip leading/trailing slashes.

    Examples:
        >>> normalize_remote_path('//img//logo.png')
        'img/logo.png'
    """
    return _DUPLICATE_SEPARATORS.sub("/", remote_path.replace("\\", "/")).strip("/")


def is_safe_relative_path(relative_path: str) -> bool:
    """Check that a relative path stays inside its root directory."""
    parts = PurePosixPath(normalize_remote_path(relative_path)).parts
    return bool(parts) and ".." not in parts


def key_to_lock_name(key: str, suffix: Optional[str] = ".lock") -> str:
    """Convert a cache key to a filesystem-safe lock file name.

    Examples:
        >>> key_to_lock_name('gs://b1/img/logo.png')
        'gs_b1_img_logo.png.lock'
    """
    normalized = key.replace("://", "_").replace("/", "_").replace("\\", "_")
    normalized = normalized.strip("_")
    # Keep lock names under common filename length limits
    if len(normalized) > 200:
        digest = hashlib.md5(key.encode("utf-8")).hexdigest()
        normalized = f"{normalized[:150]}_{digest}"
    return f"{normalized}{suffix or ''}"


def to_version_stamp(value: Any) -> Optional[int]:
    """Convert a last-modified value to milliseconds since the epoch.

    Remote stores report modification times in different shapes: datetime
    objects, RFC 1123 header strings, ISO 8601 strings or epoch seconds.

    Args:
        value: Last-modified value from a remote metadata response

    Returns:
        Milliseconds since epoch, or None if value is None or empty

    Raises:
        ValueError: If value cannot be interpreted as a timestamp

    Examples:
        >>> to_version_stamp(datetime(2024, 1, 1, tzinfo=timezone.utc))
        1704067200000
        >>> to_version_stamp('Mon, 01 Jan 2024 00:00:00 GMT')
        1704067200000
    """
    if value is None or value == "":
        return None

    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to a version stamp")

    if isinstance(value, (int, float)):
        # Heuristic: values above 1e11 are already milliseconds
        return int(value) if value > 1e11 else int(value * 1000)

    if isinstance(value, str):
        try:
            dt = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            dt = None
        if dt is None:
            try:
                dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError as e:
                raise ValueError(f"Cannot parse timestamp: {value!r}") from e
        value = dt

    if isinstance(value, datetime):
        # Handle timezone-naive datetimes
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)

    raise ValueError(f"Cannot convert {type(value).__name__} to a version stamp")
