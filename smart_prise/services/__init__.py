"""Services package."""

from smart_prise.services.storage import (
    ConnectionError,
    DocumentStore,
    FirebaseClient,
    FirebaseDocumentStore,
    InMemoryDocumentStore,
    LocalFileDocumentStore,
    StorageError,
    Subscription,
)

__all__ = [
    "ConnectionError",
    "DocumentStore",
    "FirebaseClient",
    "FirebaseDocumentStore",
    "InMemoryDocumentStore",
    "LocalFileDocumentStore",
    "StorageError",
    "Subscription",
]
