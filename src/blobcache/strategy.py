"""Refresh strategies controlling how cached records are revalidated."""

from enum import Enum
from typing import Union


class RefreshStrategy(str, Enum):
    """How the cache decides whether a local copy is still fresh.

    BY_METADATA_DATE compares the remote last-modified stamp with the cached
    version on every hit. CACHE_FIRST trusts any local record once present and
    only contacts the remote store on a miss.
    """

    BY_METADATA_DATE = "by_metadata_date"
    CACHE_FIRST = "cache_first"

    @classmethod
    def parse(cls, value: Union[str, "RefreshStrategy"]) -> "RefreshStrategy":
        """Convert a config value to a RefreshStrategy.

        Args:
            value: Strategy instance or its name/value (case-insensitive)

        Returns:
            RefreshStrategy member

        Raises:
            ValueError: If value does not name a strategy

        Examples:
            >>> RefreshStrategy.parse("cache_first")
            <RefreshStrategy.CACHE_FIRST: 'cache_first'>
            >>> RefreshStrategy.parse("BY_METADATA_DATE")
            <RefreshStrategy.BY_METADATA_DATE: 'by_metadata_date'>
        """
        if isinstance(value, cls):
            return value

        normalized = str(value).strip().lower().replace("-", "_")
        for member in cls:
            if normalized in (member.value, member.name.lower()):
                return member

        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown refresh strategy '{value}'. Valid: {valid}")

    @property
    def checks_remote(self) -> bool:
        """Whether cache hits trigger a remote freshness check."""
        return self is RefreshStrategy.BY_METADATA_DATE
