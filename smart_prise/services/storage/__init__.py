"""
Storage Services Package

Provides the abstract document store interface and its implementations.
Firebase Realtime Database is the hosted backend; the in-memory and
local-file stores serve tests and offline use.
"""

from smart_prise.services.storage.interface import (
    SERVER_TIMESTAMP,
    ConnectionError,
    DocumentStore,
    StorageError,
    Subscription,
    join_path,
)
from smart_prise.services.storage.memory import InMemoryDocumentStore
from smart_prise.services.storage.local_file import LocalFileDocumentStore
from smart_prise.services.storage.firebase import (
    FirebaseClient,
    FirebaseDocumentStore,
)

__all__ = [
    # Interfaces
    "DocumentStore",
    "Subscription",
    "SERVER_TIMESTAMP",
    "join_path",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # Implementations
    "FirebaseClient",
    "FirebaseDocumentStore",
    "InMemoryDocumentStore",
    "LocalFileDocumentStore",
]
