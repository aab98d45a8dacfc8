"""Freshness checks for cached records."""

from concurrent.futures import Executor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, TypeVar

from blobcache.errors import RemoteTimeoutError

T = TypeVar("T")


def is_version_current(cached_version: Optional[int], remote_version: Optional[int]) -> bool:
    """Check if a cached version stamp matches the remote one.

    Version stamps are compared for equality only. A missing stamp on either
    side means freshness cannot be confirmed.

    Args:
        cached_version: Version stored with the cache record
        remote_version: Version currently reported by the remote store

    Returns:
        True if the cached copy is known to be current

    Examples:
        >>> is_version_current(1000, 1000)
        True
        >>> is_version_current(None, 1000)
        False
        >>> is_version_current(1000, None)
        False
    """
    if cached_version is None or remote_version is None:
        return False
    return cached_version == remote_version


def call_with_timeout(
    executor: Executor,
    fn: Callable[[], T],
    timeout: float,
    description: str = "remote call",
) -> T:
    """Run fn on executor and wait at most timeout seconds for its result.

    A call that times out keeps running in its worker; its result is dropped.
    Executor threads are joined at interpreter exit, so a remote call that
    never returns delays exit until the underlying client gives up. Bound
    the client's own network timeouts when that matters.

    Raises:
        RemoteTimeoutError: If fn does not finish within timeout
    """
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as e:
        future.cancel()
        raise RemoteTimeoutError(f"{description} timed out after {timeout}s") from e
