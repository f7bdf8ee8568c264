"""
Abstract Document Store Interface

DESIGN DECISION: We define an abstract interface for the realtime store.
This allows us to:
1. Swap Firebase for another realtime backend later
2. Use an in-process store for testing
3. Run fully offline against a local file
4. Keep the ledger engine ignorant of the backing technology

The interface is intentionally small: a tree of JSON values addressed
by slash-separated paths, with live subscriptions. Writes are
last-write-wins; there is no version check or compare-and-swap.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable

# Placeholder replaced by the store with a strictly increasing integer
# (milliseconds) when written. Same shape as the Realtime Database one.
SERVER_TIMESTAMP = {".sv": "timestamp"}

SnapshotCallback = Callable[[Any], None]


def normalize_path(path: str) -> str:
    """Strip surrounding slashes and collapse empty segments."""
    return "/".join(part for part in path.split("/") if part)


def split_path(path: str) -> list[str]:
    normalized = normalize_path(path)
    return normalized.split("/") if normalized else []


def join_path(*parts: str) -> str:
    return normalize_path("/".join(parts))


class Subscription(ABC):
    """Handle for a live listener. Closing it stops all further callbacks."""

    @abstractmethod
    def close(self) -> None:
        """Stop delivering snapshots. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass


class DocumentStore(ABC):
    """
    Abstract interface for the shared realtime document store.

    Any implementation (in-memory, local file, Firebase)
    must implement these methods.
    """

    @abstractmethod
    async def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
    ) -> Subscription:
        """
        Register a live listener at a path.

        on_snapshot fires once with the current value (None if nothing is
        stored), then again with the full value every time anything at,
        below or above the path changes, until the subscription is closed.

        No ordering is guaranteed between listeners on different paths.
        """
        pass

    @abstractmethod
    async def push(self, path: str, value: Any) -> str:
        """
        Append a value under a store-generated unique key.

        Keys generated by one store sort in creation order.

        Returns:
            The generated key, to be used as the entity id
        """
        pass

    @abstractmethod
    async def set(self, path: str, value: Any) -> None:
        """
        Replace the value at a path. Writing None removes it.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(self, path: str, changes: dict[str, Any]) -> None:
        """
        Write several children of a path in one step.

        All children are applied together; listeners see either none
        or all of them.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def remove(self, path: str) -> None:
        """
        Delete the value at a path. Removing a missing path is a no-op.
        """
        pass

    @abstractmethod
    async def get(self, path: str) -> Any:
        """Read the current value at a path once."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
