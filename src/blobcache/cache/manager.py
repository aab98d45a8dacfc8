"""Cache manager coordinating metadata, local files and the remote store."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Dict, Optional, Union

from filelock import FileLock, Timeout

from blobcache.cache.config import CacheConfig, get_global_config
from blobcache.cache.metadata import MetadataStore
from blobcache.cache.validation import call_with_timeout, is_version_current
from blobcache.errors import (
    CacheError,
    CacheLockError,
    CachePermissionError,
    SizeExceededError,
    StoreUnavailableError,
)
from blobcache.records import CachedObject, CacheRecord
from blobcache.remote import RemoteObjectClient, RemoteObjectRef
from blobcache.storage.backend import LocalFileStore
from blobcache.strategy import RefreshStrategy
from blobcache.utils import (
    is_cloud_path,
    key_to_lock_name,
    normalize_remote_path,
    split_cloud_uri,
)

logger = logging.getLogger(__name__)

_NEW, _OPEN, _CLOSED = "new", "open", "closed"


class CacheManager:
    """Serves remote objects from a local cache with version-aware refresh.

    The manager is the only writer of cache records and cached files. Lookups
    that miss fetch synchronously and raise on failure. Lookups that hit return
    the cached record at once and, under BY_METADATA_DATE, schedule a
    background check that refreshes the entry for later lookups. Background
    failures are logged and never reach the caller.

    Mutations of a key are serialized with a per-key file lock.

    Examples:
        >>> with CacheManager(CloudFilesClient()) as cache:
        ...     obj = cache.lookup('img/logo.png', bucket='b1')
        ...     data = cache.read_bytes('img/logo.png', bucket='b1')
    """

    def __init__(
        self,
        remote_client: RemoteObjectClient,
        config: Optional[CacheConfig] = None,
        strategy: Optional[Union[RefreshStrategy, str]] = None,
        store: Optional[MetadataStore] = None,
        file_store: Optional[LocalFileStore] = None,
    ):
        """Initialize cache manager.

        Args:
            remote_client: Client used to reach the remote blob store
            config: Cache configuration (uses global if None)
            strategy: Refresh strategy (uses config.refresh_strategy if None)
            store: Metadata store (defaults to SQLite at config.db_path)
            file_store: Local file store (defaults to config.files_dir)
        """
        self.remote = remote_client
        self.config = config or get_global_config()
        self.strategy = RefreshStrategy.parse(
            strategy if strategy is not None else self.config.refresh_strategy
        )
        self.store = store or MetadataStore(self.config.db_path)
        self.files = file_store or LocalFileStore(self.config.files_dir)
        self.lock_dir = self.config.lock_dir

        self._state = _NEW
        self._state_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._remote_executor: Optional[ThreadPoolExecutor] = None
        self._pending: Dict[str, Future] = {}

        self._stats_lock = threading.Lock()
        self._stats = {
            "cache_hits": 0,
            "cache_misses": 0,
            "remote_checks": 0,
            "downloads": 0,
            "refreshes": 0,
            "refresh_failures": 0,
        }

    def __enter__(self) -> "CacheManager":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def cache_root(self) -> Path:
        """Directory holding cached object bytes."""
        return self.files.cache_root

    @property
    def is_open(self) -> bool:
        return self._state == _OPEN

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open(self) -> None:
        """Open the metadata store and start the background workers.

        Raises:
            CacheError: If the manager was already opened
            CachePermissionError: If the lock directory cannot be created
            StoreUnavailableError: If the metadata store cannot be opened
        """
        with self._state_lock:
            if self._state != _NEW:
                raise CacheError(
                    f"Cache manager is {self._state}; open() may only be called once"
                )

            try:
                self.lock_dir.mkdir(parents=True, exist_ok=True)
            except PermissionError as e:
                raise CachePermissionError(
                    f"Cannot create cache lock directory at {self.lock_dir}: {e}"
                ) from e
            except OSError as e:
                logger.warning(f"Error creating cache lock directory: {e}")
                raise CacheError(
                    f"Cannot access cache directory at {self.lock_dir}: {e}"
                ) from e

            self.store.open()

            workers = self.config.max_background_workers
            self._executor = ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="blobcache-refresh"
            )
            self._remote_executor = ThreadPoolExecutor(
                max_workers=workers * 2, thread_name_prefix="blobcache-remote"
            )
            self._state = _OPEN
            logger.debug(
                f"Opened cache at {self.cache_root} (strategy={self.strategy.value})"
            )

    def close(self) -> None:
        """Stop background work and close the metadata store.

        In-flight background refreshes are not awaited; their results are
        discarded. Their worker threads still finish at interpreter exit (see
        call_with_timeout).
        """
        with self._state_lock:
            if self._state == _CLOSED:
                return
            self._state = _CLOSED
            executors = (self._executor, self._remote_executor)
            self._executor = None
            self._remote_executor = None
            self._pending.clear()

        for executor in executors:
            if executor is not None:
                executor.shutdown(wait=False, cancel_futures=True)
        self.store.close()

    def _require_open(self) -> None:
        if self._state != _OPEN:
            raise StoreUnavailableError(f"Cache manager is {self._state}, not open")

    # =========================================================================
    # Lookup
    # =========================================================================

    def lookup(
        self,
        uri: str,
        bucket: Optional[str] = None,
        remote_path: Optional[str] = None,
        max_size_bytes: Optional[int] = None,
    ) -> CachedObject:
        """Get the cache entry for a uri, fetching it on a miss.

        Args:
            uri: Cache key. A cloud URI ('gs://bucket/path') also supplies the
                bucket and remote path when they are not given.
            bucket: Remote bucket (falls back to the uri, then config.default_bucket)
            remote_path: Object path in the bucket (falls back to the uri)
            max_size_bytes: Maximum object size (defaults to config.max_item_size)

        Returns:
            CachedObject. On a miss its ``data`` holds the fetched bytes; on a
            hit it holds the cached record as currently stored.

        Raises:
            RemoteError: If a miss cannot be fetched from the remote store
            CacheIOError: If a miss cannot be written to local disk
            StoreUnavailableError: If the cache is not open
        """
        self._require_open()
        max_size = self._max_size(max_size_bytes)

        record = self.store.get(uri)
        if record is None:
            self._record_stat("cache_misses")
            logger.debug(f"Cache miss for {uri}")
            return self._fetch_miss(
                self._new_record(uri, bucket, remote_path), max_size
            )

        self._record_stat("cache_hits")
        logger.debug(f"Cache hit for {uri}")
        if self.strategy.checks_remote:
            self._schedule_check(record, max_size)
        return CachedObject(record=record, ref=self.resolve_ref(record))

    def read_bytes(
        self,
        uri: str,
        bucket: Optional[str] = None,
        remote_path: Optional[str] = None,
        max_size_bytes: Optional[int] = None,
    ) -> bytes:
        """Get the content of a remote object, preferring the local copy.

        If the record points at a file that no longer exists, the object is
        fetched again synchronously.

        Raises:
            Same as lookup()
        """
        obj = self.lookup(uri, bucket, remote_path, max_size_bytes)
        if obj.data is not None:
            return obj.data

        data = self.files.read(obj.local_path)
        if data is not None:
            return data

        logger.info(f"Cached file for {uri} is missing, fetching again")
        with self._key_lock(uri):
            return self._fetch_and_persist_locked(
                obj.record, self._max_size(max_size_bytes)
            )

    def resolve_ref(self, record: CacheRecord) -> RemoteObjectRef:
        """Resolve a lazy remote handle for a record (no network access)."""
        return RemoteObjectRef(self.remote, record.bucket, record.remote_path)

    def _new_record(
        self, uri: str, bucket: Optional[str], remote_path: Optional[str]
    ) -> CacheRecord:
        if remote_path is None:
            if is_cloud_path(uri):
                uri_bucket, remote_path = split_cloud_uri(uri)
                bucket = bucket or uri_bucket
            else:
                remote_path = uri
        return CacheRecord(
            uri=uri,
            remote_path=normalize_remote_path(remote_path),
            bucket=bucket or self.config.default_bucket,
        )

    def _fetch_miss(self, record: CacheRecord, max_size: int) -> CachedObject:
        with self._key_lock(record.uri):
            # Another thread or process may have filled the entry while we waited
            existing = self.store.get(record.uri)
            if existing is not None:
                data = self.files.read(existing.local_path)
                if data is not None:
                    logger.debug(f"{record.uri} was cached concurrently")
                    return CachedObject(
                        record=existing, ref=self.resolve_ref(existing), data=data
                    )

            data = self._fetch_and_persist_locked(record, max_size)
        return CachedObject(record=record, ref=self.resolve_ref(record), data=data)

    # =========================================================================
    # Refresh
    # =========================================================================

    def check_for_update(
        self, record: CacheRecord, max_size_bytes: Optional[int] = None
    ) -> bool:
        """Refresh a record if the remote object has changed.

        Args:
            record: Cached record to check
            max_size_bytes: Maximum object size (defaults to config.max_item_size)

        Returns:
            True if the object was downloaded again. False if it is current
            or the record was evicted while the check ran.

        Raises:
            RemoteTimeoutError: If the remote metadata request times out
            RemoteError: If the remote store fails
            CacheIOError: If the refreshed bytes cannot be written
        """
        remote_version = self._fetch_remote_version(record)
        self._record_stat("remote_checks")

        if is_version_current(record.version, remote_version):
            if self.files.exists(record.local_path):
                logger.debug(f"{record.uri} is up to date (version {remote_version})")
                return False
            logger.info(f"Cached file for {record.uri} is missing, refreshing")
        else:
            logger.info(
                f"Remote version changed for {record.uri}: "
                f"{record.version} -> {remote_version}"
            )

        with self._key_lock(record.uri):
            # A refresh must not bring back an entry evicted since the hit
            if not self.store.exists(record.uri):
                logger.debug(f"{record.uri} was evicted, skipping refresh")
                return False
            self._fetch_and_persist_locked(record, self._max_size(max_size_bytes))
        self._record_stat("refreshes")
        return True

    def fetch_and_persist(
        self, record: CacheRecord, max_size_bytes: Optional[int] = None
    ) -> bytes:
        """Download a record's object, write it locally and store the record.

        On success ``record`` is updated in place with the new version and
        local path. On failure neither the record nor the stored entry changes.

        Args:
            record: Record to fetch (new or existing)
            max_size_bytes: Maximum object size (defaults to config.max_item_size)

        Returns:
            The downloaded bytes

        Raises:
            CacheLockError: If the per-key lock cannot be acquired
            RemoteError: If the remote store fails
            CacheIOError: If the bytes cannot be written
        """
        with self._key_lock(record.uri):
            return self._fetch_and_persist_locked(
                record, self._max_size(max_size_bytes)
            )

    def _fetch_and_persist_locked(self, record: CacheRecord, max_size: int) -> bytes:
        """Fetch and persist with the key lock already acquired."""
        version = record.version
        if self.strategy.checks_remote:
            version = self._fetch_remote_version(record)

        data = self.resolve_ref(record).get_data(max_size)
        self._record_stat("downloads")
        if len(data) > max_size:
            raise SizeExceededError(
                f"{record.uri} is {len(data)} bytes, exceeding max_size_bytes ({max_size})"
            )

        local_path = self.files.write(record.remote_path, data)
        updated = record.copy(version=version, local_path=str(local_path))
        self.store.upsert(updated)

        record.version = updated.version
        record.local_path = updated.local_path
        logger.debug(f"Cached {record.uri} ({len(data)} bytes) at {local_path}")
        return data

    def _fetch_remote_version(self, record: CacheRecord) -> Optional[int]:
        executor = self._remote_executor
        if executor is None:
            raise StoreUnavailableError(f"Cache manager is {self._state}, not open")
        ref = self.resolve_ref(record)
        return call_with_timeout(
            executor,
            ref.get_metadata,
            self.config.metadata_timeout,
            description=f"Metadata request for {record.uri}",
        )

    def _schedule_check(self, record: CacheRecord, max_size: int) -> Optional[Future]:
        """Start a detached freshness check for a record.

        At most one check per key is in flight at a time.
        """
        with self._state_lock:
            if self._state != _OPEN or record.uri in self._pending:
                return None
            future = self._executor.submit(
                self._background_check, record.copy(), max_size
            )
            self._pending[record.uri] = future

        future.add_done_callback(lambda f, uri=record.uri: self._check_done(uri, f))
        return future

    def _check_done(self, uri: str, future: Future) -> None:
        with self._state_lock:
            if self._pending.get(uri) is future:
                del self._pending[uri]

    def _background_check(self, record: CacheRecord, max_size: int) -> bool:
        try:
            return self.check_for_update(record, max_size)
        except CacheError as e:
            self._record_stat("refresh_failures")
            logger.warning(f"Background refresh failed for {record.uri}: {e}")
        except Exception as e:
            self._record_stat("refresh_failures")
            logger.exception(f"Unexpected error refreshing {record.uri}: {e}")
        return False

    def wait_for_background(self, timeout: Optional[float] = None) -> bool:
        """Block until in-flight background checks finish.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            True if no background checks remain in flight
        """
        with self._state_lock:
            futures = list(self._pending.values())
        if not futures:
            return True
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    # =========================================================================
    # Eviction and status
    # =========================================================================

    def evict(self, uri: str, remove_file: bool = True) -> int:
        """Remove a cache entry.

        Args:
            uri: Cache key
            remove_file: Also delete the cached file

        Returns:
            Number of records removed (0 or 1)
        """
        self._require_open()
        with self._key_lock(uri):
            record = self.store.get(uri)
            if record is None:
                return 0
            if remove_file:
                self.files.delete(record.local_path)
            removed = self.store.delete(uri)
        logger.debug(f"Evicted {uri}")
        return removed

    def clear_all(self) -> int:
        """Remove every cache entry and cached file.

        Queued background checks are cancelled. Checks already running see
        the entry gone once they take its key lock and discard their result.

        Returns:
            Number of records removed
        """
        self._require_open()
        with self._state_lock:
            pending = list(self._pending.values())
        # Outside the state lock: cancel() runs the done callbacks inline
        for future in pending:
            future.cancel()

        removed = 0
        for record in self.store.list_all():
            with self._key_lock(record.uri):
                self.files.delete(record.local_path)
                removed += self.store.delete(record.uri)
        self.files.clear()
        logger.info(f"Cleared {removed} cache entries from {self.cache_root}")
        return removed

    def get_status(self, uri: str) -> Optional[Dict[str, Any]]:
        """Get cache status for an entry.

        Args:
            uri: Cache key

        Returns:
            Status dict, or None if not cached
        """
        self._require_open()
        record = self.store.get(uri)
        if record is None:
            return None

        size_bytes = None
        if self.files.exists(record.local_path):
            try:
                size_bytes = Path(record.local_path).stat().st_size
            except FileNotFoundError:
                # Evicted or replaced since the existence check
                pass
        with self._state_lock:
            refresh_pending = uri in self._pending

        return {
            "cached": True,
            "uri": record.uri,
            "bucket": record.bucket,
            "remote_path": record.remote_path,
            "local_path": record.local_path,
            "exists_locally": size_bytes is not None,
            "size_bytes": size_bytes,
            "version": record.version,
            "refresh_pending": refresh_pending,
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics for this manager.

        Returns:
            Statistics dict
        """
        with self._stats_lock:
            stats: Dict[str, Any] = dict(self._stats)

        stats["cache_dir"] = str(self.cache_root)
        stats["refresh_strategy"] = self.strategy.value
        stats["total_items"] = self.store.count() if self.is_open else None

        # Calculate hit rate
        total_requests = stats["cache_hits"] + stats["cache_misses"]
        stats["cache_hit_rate"] = (
            stats["cache_hits"] / total_requests if total_requests > 0 else 0.0
        )
        return stats

    # =========================================================================
    # Internals
    # =========================================================================

    def _max_size(self, max_size_bytes: Optional[int]) -> int:
        return max_size_bytes if max_size_bytes is not None else self.config.max_item_size

    def _record_stat(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def _key_lock(self, uri: str) -> "_KeyLock":
        return _KeyLock(self.lock_dir / key_to_lock_name(uri), uri, self.config.lock_timeout)


class _KeyLock:
    """Per-key file lock raising CacheLockError on timeout."""

    def __init__(self, lock_path: Path, uri: str, timeout: float):
        self._lock = FileLock(lock_path, timeout=timeout)
        self._uri = uri
        self._timeout = timeout

    def __enter__(self) -> "_KeyLock":
        try:
            self._lock.acquire()
        except Timeout as e:
            raise CacheLockError(
                f"Timeout acquiring lock for {self._uri} after {self._timeout} seconds"
            ) from e
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._lock.release()
