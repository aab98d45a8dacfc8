"""Demonstration of the blob cache.

This script shows the cache lifecycle against a local file:// bucket:
1. A first lookup misses and downloads the object
2. A second lookup hits and checks freshness in the background
3. Changing the remote object refreshes the cached copy
"""

import logging
import os
import tempfile
import time
from pathlib import Path

from blobcache import CacheConfig, CacheManager, CloudFilesClient


def demo_cache():
    """Run the cache against a temporary bucket directory."""
    logging.basicConfig(level=logging.INFO)

    with tempfile.TemporaryDirectory() as tmpdir:
        tmp = Path(tmpdir)
        bucket_dir = tmp / "bucket"
        (bucket_dir / "img").mkdir(parents=True)
        logo = bucket_dir / "img" / "logo.png"
        logo.write_bytes(b"\x89PNG logo v1")

        config = CacheConfig(cache_dir=tmp / "cache", default_bucket=f"file://{bucket_dir}")

        print("=" * 70)
        print("BLOB CACHE DEMONSTRATION")
        print("=" * 70)

        with CacheManager(CloudFilesClient(), config=config) as cache:
            print("\n1. First lookup (miss)")
            print("-" * 70)
            obj = cache.lookup("img/logo.png")
            print(f"Fetched: {obj.fetched}")
            print(f"Local path: {obj.local_path}")
            print(f"Version: {obj.version}")

            print("\n2. Second lookup (hit)")
            print("-" * 70)
            obj = cache.lookup("img/logo.png")
            cache.wait_for_background(timeout=10)
            print(f"Fetched: {obj.fetched}")
            print(f"Content: {cache.files.read(obj.local_path)!r}")

            print("\n3. Remote object changes")
            print("-" * 70)
            logo.write_bytes(b"\x89PNG logo v2")
            future = time.time() + 60
            os.utime(logo, (future, future))
            cache.lookup("img/logo.png")  # serves v1, refreshes in background
            cache.wait_for_background(timeout=10)
            print(f"Content now: {cache.read_bytes('img/logo.png')!r}")

            print("\n4. Stats")
            print("-" * 70)
            for key, value in cache.get_stats().items():
                print(f"  {key}: {value}")


if __name__ == "__main__":
    demo_cache()
