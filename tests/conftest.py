"""Shared fixtures for blobcache tests."""

import tempfile
import threading
from pathlib import Path

import pytest

from blobcache.cache.config import CacheConfig
from blobcache.cache.manager import CacheManager
from blobcache.errors import RemoteNotFoundError, SizeExceededError
from blobcache.strategy import RefreshStrategy

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"logo-v1"


class FakeRemoteClient:
    """In-memory remote store that counts calls and can fail or stall."""

    def __init__(self):
        self.objects = {}
        self.metadata_calls = 0
        self.bytes_calls = 0
        self.metadata_error = None
        self.bytes_error = None
        # When set to an Event, metadata requests block until it is set
        self.metadata_gate = None
        self._lock = threading.Lock()

    def put(self, bucket, remote_path, data, version):
        self.objects[(bucket, remote_path)] = {"data": data, "version": version}

    def fetch_metadata(self, bucket, remote_path):
        with self._lock:
            self.metadata_calls += 1
        if self.metadata_gate is not None:
            self.metadata_gate.wait(timeout=10)
        if self.metadata_error is not None:
            raise self.metadata_error
        obj = self.objects.get((bucket, remote_path))
        if obj is None:
            raise RemoteNotFoundError(f"{bucket}/{remote_path}")
        return obj["version"]

    def fetch_bytes(self, bucket, remote_path, max_size_bytes):
        with self._lock:
            self.bytes_calls += 1
        if self.bytes_error is not None:
            raise self.bytes_error
        obj = self.objects.get((bucket, remote_path))
        if obj is None:
            raise RemoteNotFoundError(f"{bucket}/{remote_path}")
        if len(obj["data"]) > max_size_bytes:
            raise SizeExceededError(f"{bucket}/{remote_path}")
        return obj["data"]


@pytest.fixture
def temp_cache_dir():
    """Create temporary cache directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def cache_config(temp_cache_dir):
    """Create test cache configuration."""
    return CacheConfig(
        cache_dir=temp_cache_dir,
        refresh_strategy=RefreshStrategy.BY_METADATA_DATE,
        metadata_timeout=5.0,
        lock_timeout=10.0,
    )


@pytest.fixture
def remote():
    """Create fake remote store holding img/logo.png in bucket b1."""
    client = FakeRemoteClient()
    client.put("b1", "img/logo.png", PNG_BYTES, 1000)
    return client


@pytest.fixture
def cache_manager(remote, cache_config):
    """Create an opened cache manager using the metadata-date strategy."""
    manager = CacheManager(remote, config=cache_config)
    manager.open()
    yield manager
    manager.close()


@pytest.fixture
def cache_first_manager(remote, cache_config):
    """Create an opened cache manager using the cache-first strategy."""
    manager = CacheManager(
        remote, config=cache_config, strategy=RefreshStrategy.CACHE_FIRST
    )
    manager.open()
    yield manager
    manager.close()
