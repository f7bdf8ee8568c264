"""
Firebase Realtime Database Storage Implementation

DESIGN DECISION: The Realtime Database is the hosted backend because:
1. Listeners push every change to all connected clients
2. Push keys are time-ordered, which gives messages a natural order
3. Server timestamps give a single clock for all clients
4. No server of our own to run

TRADEOFFS:
- Last write wins, no transactions across paths (we write one path per action)
- The admin SDK delivers listener events on its own thread; we hop back
  onto the event loop before touching any client state
- Empty arrays are not stored; readers must treat missing keys as empty

The implementation follows the abstract interface, so the engine never
imports firebase_admin directly.
"""

import asyncio
from typing import Any, Optional

import firebase_admin
import structlog
from firebase_admin import credentials, db
from firebase_admin.exceptions import FirebaseError
from tenacity import retry, stop_after_attempt, wait_exponential

from smart_prise.config import get_settings
from smart_prise.services.storage.interface import (
    ConnectionError,
    DocumentStore,
    SnapshotCallback,
    StorageError,
    Subscription,
    join_path,
)

logger = structlog.get_logger(__name__)

FIREBASE_APP_NAME = "smart-prise"


class FirebaseClient:
    """
    Low-level Firebase wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self):
        self._app: Optional[firebase_admin.App] = None
        self._settings = get_settings().firebase

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> firebase_admin.App:
        """
        Initialize (or reuse) the Firebase app.

        Uses service account credentials for authentication.
        """
        if self._app is None:
            try:
                self._app = firebase_admin.get_app(FIREBASE_APP_NAME)
            except ValueError:
                try:
                    cred = credentials.Certificate(self._settings.credentials_path)
                    self._app = firebase_admin.initialize_app(
                        cred,
                        {"databaseURL": self._settings.database_url},
                        name=FIREBASE_APP_NAME,
                    )
                except FileNotFoundError:
                    raise ConnectionError(
                        f"Firebase credentials file not found: {self._settings.credentials_path}"
                    )
                except Exception as e:
                    raise ConnectionError(f"Failed to connect to Firebase: {e}")
        return self._app

    def reference(self, path: str) -> db.Reference:
        """Get a database reference for a slash-separated path."""
        return db.reference("/" + join_path(path), app=self.connect())


class FirebaseSubscription(Subscription):
    """Wraps the SDK listener registration."""

    def __init__(self, path: str):
        self.path = path
        self._registration = None
        self._closed = False

    def attach(self, registration) -> None:
        self._registration = registration
        if self._closed:
            registration.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._registration is not None:
            try:
                self._registration.close()
            except Exception as e:
                logger.warning("listener_close_failed", path=self.path, error=str(e))


class FirebaseDocumentStore(DocumentStore):
    """
    Firebase Realtime Database implementation of the document store.

    SDK calls block, so each one runs in a worker thread.
    """

    def __init__(self, client: Optional[FirebaseClient] = None):
        self._client = client or FirebaseClient()

    async def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
    ) -> Subscription:
        loop = asyncio.get_running_loop()
        subscription = FirebaseSubscription(join_path(path))
        ref = self._client.reference(path)

        def deliver(value: Any) -> None:
            if not subscription.closed:
                on_snapshot(value)

        def on_event(event: db.Event) -> None:
            # Events carry only the changed part; hand listeners the full value
            try:
                value = ref.get()
            except Exception as e:
                logger.error("snapshot_fetch_failed", path=subscription.path, error=str(e))
                return
            loop.call_soon_threadsafe(deliver, value)

        try:
            registration = await asyncio.to_thread(ref.listen, on_event)
        except (FirebaseError, ValueError) as e:
            raise StorageError(f"Failed to subscribe to {path}: {e}")
        subscription.attach(registration)
        return subscription

    async def push(self, path: str, value: Any) -> str:
        # Not retried: a push whose reply was lost may already have landed.
        try:
            child = await asyncio.to_thread(self._client.reference(path).push, value)
            return child.key
        except (FirebaseError, ValueError) as e:
            raise StorageError(f"Failed to push to {path}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def set(self, path: str, value: Any) -> None:
        try:
            await asyncio.to_thread(self._client.reference(path).set, value)
        except (FirebaseError, ValueError) as e:
            raise StorageError(f"Failed to write {path}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def update(self, path: str, changes: dict[str, Any]) -> None:
        if not changes:
            return
        try:
            await asyncio.to_thread(self._client.reference(path).update, changes)
        except (FirebaseError, ValueError) as e:
            raise StorageError(f"Failed to update {path}: {e}")

    async def remove(self, path: str) -> None:
        try:
            await asyncio.to_thread(self._client.reference(path).delete)
        except (FirebaseError, ValueError) as e:
            raise StorageError(f"Failed to remove {path}: {e}")

    async def get(self, path: str) -> Any:
        try:
            return await asyncio.to_thread(self._client.reference(path).get)
        except (FirebaseError, ValueError) as e:
            raise StorageError(f"Failed to read {path}: {e}")
