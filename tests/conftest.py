"""Shared fixtures: in-memory stores with scripted behavior."""

import pytest

from smart_prise.services.storage import InMemoryDocumentStore, StorageError
from smart_prise.services.storage.interface import join_path
from smart_prise.services.storage.memory import MemorySubscription


class ScriptedStore(InMemoryDocumentStore):
    """
    In-memory store that records updates and can be told to fail them.

    Setting `fail_updates` makes every update raise, as a dropped
    connection would.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_updates = False
        self.updates: list[tuple[str, dict]] = []

    async def update(self, path, changes):
        if self.fail_updates:
            raise StorageError("connection lost")
        self.updates.append((path, dict(changes)))
        await super().update(path, changes)


class DeferredStore(InMemoryDocumentStore):
    """In-memory store whose listeners wait for the first change."""

    async def subscribe(self, path, on_snapshot):
        subscription = MemorySubscription(self, join_path(path), on_snapshot)
        self._listeners.append(subscription)
        return subscription


@pytest.fixture
def store():
    return ScriptedStore()


@pytest.fixture
def deferred_store():
    return DeferredStore()
