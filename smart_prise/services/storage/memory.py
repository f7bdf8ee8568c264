"""
In-Process Document Store

A realtime store held in a Python dict, with the same observable
behavior as the hosted backend:
- listeners get the current value on subscribe and on every related change
- empty collections are not stored (reading them back gives None)
- push keys and server timestamps increase strictly

Used by the test suite, by demos, and as the base of the local file store.
All writes complete without suspending, so on one event loop every write
(including a multi-child update) is atomic from every listener's view.
"""

import copy
import time
from typing import Any, Callable, Optional

import structlog

from smart_prise.services.storage.interface import (
    SERVER_TIMESTAMP,
    DocumentStore,
    SnapshotCallback,
    StorageError,
    Subscription,
    join_path,
    split_path,
)

logger = structlog.get_logger(__name__)


class MemorySubscription(Subscription):
    """Listener registered on an InMemoryDocumentStore."""

    def __init__(
        self,
        store: "InMemoryDocumentStore",
        path: str,
        callback: SnapshotCallback,
    ):
        self._store = store
        self.path = path
        self.parts = split_path(path)
        self._callback = callback
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._store._detach(self)

    def deliver(self, value: Any) -> None:
        if self._closed:
            return
        try:
            self._callback(value)
        except Exception as e:
            # A broken listener must not stop delivery to the others
            logger.error(
                "snapshot_listener_failed",
                path=self.path,
                error=str(e),
            )


def _prune(value: Any) -> Any:
    """Drop empty containers the way the hosted store does."""
    if isinstance(value, dict):
        pruned = {
            key: child
            for key, child in ((k, _prune(v)) for k, v in value.items())
            if child is not None
        }
        return pruned or None
    if isinstance(value, list):
        pruned = [_prune(item) for item in value]
        return pruned if any(item is not None for item in pruned) else None
    return value


def _related(a: list[str], b: list[str]) -> bool:
    """True if one path is an ancestor of (or equal to) the other."""
    shorter = min(len(a), len(b))
    return a[:shorter] == b[:shorter]


class InMemoryDocumentStore(DocumentStore):
    """
    Document store backed by a nested dict.

    Args:
        initial: Optional starting tree
        clock: Millisecond clock, injectable for tests
    """

    def __init__(
        self,
        initial: Optional[dict] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._root: dict = _prune(copy.deepcopy(initial or {})) or {}
        self._listeners: list[MemorySubscription] = []
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._last_timestamp = 0

    # ------------------------------------------------------------------
    # Tree helpers
    # ------------------------------------------------------------------

    def _read(self, parts: list[str]) -> Any:
        node: Any = self._root
        for part in parts:
            if isinstance(node, dict):
                node = node.get(part)
            elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
                node = node[int(part)]
            else:
                return None
            if node is None:
                return None
        return node

    def _write(self, parts: list[str], value: Any) -> None:
        if not parts:
            self._root = value if isinstance(value, dict) else {}
            return

        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if isinstance(child, list):
                child = {str(i): item for i, item in enumerate(child) if item is not None}
                node[part] = child
            elif not isinstance(child, dict):
                if value is None:
                    return
                child = {}
                node[part] = child
            node = child

        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = value
        self._root = _prune(self._root) or {}

    def _next_timestamp(self) -> int:
        timestamp = max(self._clock(), self._last_timestamp + 1)
        self._last_timestamp = timestamp
        return timestamp

    def _resolve_server_values(self, value: Any) -> Any:
        if value == SERVER_TIMESTAMP:
            return self._next_timestamp()
        if isinstance(value, dict):
            return {k: self._resolve_server_values(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve_server_values(item) for item in value]
        return value

    def _prepare(self, value: Any) -> Any:
        return _prune(self._resolve_server_values(copy.deepcopy(value)))

    def _detach(self, subscription: MemorySubscription) -> None:
        if subscription in self._listeners:
            self._listeners.remove(subscription)

    def _notify(self, changed: list[list[str]]) -> None:
        for listener in list(self._listeners):
            if any(_related(listener.parts, parts) for parts in changed):
                listener.deliver(copy.deepcopy(self._read(listener.parts)))

    def _persist(self, changed: list[list[str]]) -> None:
        """Hook for subclasses that save the tree somewhere. Runs before listeners."""
        pass

    def _apply(self, writes: list[tuple[list[str], Any]]) -> None:
        """
        Apply writes, persist, then notify.

        If persisting fails the tree is restored and nobody is notified,
        so a failed write leaves no trace.
        """
        previous = copy.deepcopy(self._root)
        for parts, value in writes:
            self._write(parts, value)
        changed = [parts for parts, _ in writes]
        try:
            self._persist(changed)
        except StorageError:
            self._root = previous
            raise
        self._notify(changed)

    # ------------------------------------------------------------------
    # DocumentStore API
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
    ) -> Subscription:
        subscription = MemorySubscription(self, join_path(path), on_snapshot)
        self._listeners.append(subscription)
        subscription.deliver(copy.deepcopy(self._read(subscription.parts)))
        return subscription

    async def push(self, path: str, value: Any) -> str:
        key = f"{self._next_timestamp():015d}"
        parts = split_path(path) + [key]
        self._apply([(parts, self._prepare(value))])
        return key

    async def set(self, path: str, value: Any) -> None:
        self._apply([(split_path(path), self._prepare(value))])

    async def update(self, path: str, changes: dict[str, Any]) -> None:
        if not isinstance(changes, dict):
            raise StorageError("update() expects a mapping of child paths to values")
        base = split_path(path)
        writes = []
        for child, value in changes.items():
            parts = base + split_path(child)
            if len(parts) == len(base):
                raise StorageError("update() child paths must not be empty")
            writes.append((parts, self._prepare(value)))
        if writes:
            self._apply(writes)

    async def remove(self, path: str) -> None:
        parts = split_path(path)
        if self._read(parts) is None:
            return
        self._apply([(parts, None)])

    async def get(self, path: str) -> Any:
        return copy.deepcopy(self._read(split_path(path)))

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
