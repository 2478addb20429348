"""
KeyValueStore interface.

Defines the contract for the durable key/value store with TTL that backs the
market data cache and the session store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """
    Abstract base class for TTL key/value stores.

    Values are strings (callers serialise JSON). No transactions are offered;
    every write path owns a disjoint key namespace.
    """

    # =========================================================================
    # Plain Keys
    # =========================================================================

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """
        Get a value.

        Args:
            key: Full key including prefix

        Returns:
            Stored value, or None if missing or expired.
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """
        Set a value with optional expiry.

        Args:
            key: Full key including prefix
            value: Serialised value
            ttl_seconds: Expiry in seconds (None = no expiry)
        """
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """
        Delete keys.

        Returns:
            Number of keys that existed and were removed.
        """
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether a key is present and not expired."""
        pass

    @abstractmethod
    async def scan(self, prefix: str) -> list[str]:
        """
        List keys starting with a prefix.

        Args:
            prefix: Key prefix (no glob characters)

        Returns:
            Matching keys in no particular order.
        """
        pass

    # =========================================================================
    # Lists (newest first)
    # =========================================================================

    @abstractmethod
    async def list_push(
        self,
        key: str,
        value: str,
        max_len: int | None = None,
        ttl_seconds: int | None = None,
    ) -> int:
        """
        Push a value to the head of a list.

        Args:
            key: List key
            value: Serialised value
            max_len: Trim the list to this many entries after the push
            ttl_seconds: Refresh the list's expiry

        Returns:
            List length after trimming.
        """
        pass

    @abstractmethod
    async def list_range(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        """Get list entries between start and stop (inclusive)."""
        pass

    # =========================================================================
    # Sets
    # =========================================================================

    @abstractmethod
    async def set_add(self, key: str, *members: str) -> int:
        """Add members to a set. Returns the number newly added."""
        pass

    @abstractmethod
    async def set_remove(self, key: str, *members: str) -> int:
        """Remove members from a set. Returns the number removed."""
        pass

    @abstractmethod
    async def set_members(self, key: str) -> set[str]:
        """Get all members of a set."""
        pass

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    async def ping(self) -> bool:
        """Check the store is reachable."""
        pass

    async def close(self) -> None:
        """Release connections. Default is a no-op."""
        pass
