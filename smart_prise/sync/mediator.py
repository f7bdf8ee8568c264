"""
Remote Sync Mediator

Keeps each client's in-memory copy of users, messages and the signed-in
user's ledger consistent with the shared document store.

Document layout:
    users/{userId}        -> User
    messages/{messageId}  -> ChatMessage (store-generated key)
    data/{userId}         -> {salary, expenses, commitments, history, theme}

CONSISTENCY MODEL:
1. A user action updates local state immediately (optimistic)
2. The same change is written to the store (last write wins, no CAS)
3. The store's listener re-delivers the value, which replaces local
   state unconditionally

Two sessions editing the same commitment at once race; whichever write the
store accepts last wins. This is accepted behavior, not something the
mediator tries to resolve.
"""

import asyncio
from typing import Any, Awaitable, Iterable, Optional
from uuid import UUID

import structlog

from smart_prise.audit import AuditLogger
from smart_prise.errors import SyncUnavailable
from smart_prise.models.ledger import (
    BOOTSTRAP_ADMIN_ID,
    ChatMessage,
    LedgerDocument,
    User,
    new_user,
)
from smart_prise.services.storage import (
    SERVER_TIMESTAMP,
    DocumentStore,
    StorageError,
    Subscription,
    join_path,
)
from smart_prise.sync.session import SessionContext
from smart_prise.sync.snapshots import parse_messages, parse_users

logger = structlog.get_logger(__name__)

USERS_PATH = "users"
MESSAGES_PATH = "messages"
DATA_PATH = "data"


def user_path(user_id: str) -> str:
    return join_path(USERS_PATH, user_id)


def message_path(message_id: str) -> str:
    return join_path(MESSAGES_PATH, message_id)


def ledger_path(user_id: str) -> str:
    return join_path(DATA_PATH, user_id)


class SyncMediator:
    """
    Mediates between local client state and the shared document store.

    Lifecycle:
    1. start()          -> subscribe users/messages, bootstrap the admin
    2. open_session()   -> subscribe the user's ledger
    3. commit_ledger()  -> optimistic apply + remote write
    4. close_session()  -> release the ledger subscription
    5. stop()           -> release everything
    """

    def __init__(
        self,
        store: DocumentStore,
        audit_logger: Optional[AuditLogger] = None,
        admin_username: str = "admin",
        admin_password: str = "admin",
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._admin_username = admin_username
        self._admin_password = admin_password

        self.users: dict[str, User] = {}
        self.messages: list[ChatMessage] = []

        self._users_ready = asyncio.Event()
        self._messages_ready = asyncio.Event()
        self._subscriptions: list[Subscription] = []
        self._sessions: list[SessionContext] = []
        self._pending: set[asyncio.Task] = set()
        self._bootstrapping = False

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def users_ready(self) -> bool:
        return self._users_ready.is_set()

    @property
    def messages_ready(self) -> bool:
        return self._messages_ready.is_set()

    @property
    def admin_username(self) -> str:
        return self._admin_username

    @property
    def sessions(self) -> list[SessionContext]:
        return list(self._sessions)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, timeout: Optional[float] = None) -> None:
        """
        Subscribe to the shared collections and wait for the users snapshot.

        Returns once the admin bootstrap has settled.
        """
        self._subscriptions.append(
            await self._store.subscribe(USERS_PATH, self._on_users_snapshot)
        )
        self._subscriptions.append(
            await self._store.subscribe(MESSAGES_PATH, self._on_messages_snapshot)
        )
        await asyncio.wait_for(self._users_ready.wait(), timeout)
        await self.settle()
        logger.info("sync_started", users=len(self.users), messages=len(self.messages))

    async def settle(self) -> None:
        """Wait for background work (admin bootstrap) to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def stop(self) -> None:
        """Tear down every session and shared subscription."""
        for session in list(self._sessions):
            self.close_session(session)
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
        await self.settle()

    def _schedule(self, work: Awaitable[Any]) -> None:
        task = asyncio.get_running_loop().create_task(work)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def _on_users_snapshot(self, raw: Any) -> None:
        self.users = parse_users(raw)

        # Open sessions see credential changes made elsewhere
        for session in self._sessions:
            current = self.users.get(session.user_id)
            if current is not None:
                session.user = current

        if self._admin_missing() and not self._bootstrapping:
            self._bootstrapping = True
            self._schedule(self._bootstrap_admin())

        self._users_ready.set()

    def _on_messages_snapshot(self, raw: Any) -> None:
        self.messages = parse_messages(raw)
        self._messages_ready.set()

    # ------------------------------------------------------------------
    # Admin bootstrap
    # ------------------------------------------------------------------

    def _admin_missing(self) -> bool:
        return not any(
            user.username == self._admin_username
            for user in self.users.values()
        )

    async def _bootstrap_admin(self) -> None:
        try:
            await self.ensure_admin()
        except StorageError as e:
            logger.error("admin_bootstrap_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_remote_write_failed(
                    path=user_path(BOOTSTRAP_ADMIN_ID),
                    error_message=str(e),
                )
        finally:
            self._bootstrapping = False

    async def ensure_admin(self) -> bool:
        """
        Seed the bootstrap administrator if no account has the reserved name.

        The account always lives at the same id, so clients seeding at the
        same time overwrite each other instead of creating duplicates.
        Other accounts are left untouched.

        Returns:
            True if a write was issued
        """
        if not self._admin_missing():
            return False

        admin = new_user(
            username=self._admin_username,
            password=self._admin_password,
            is_admin=True,
            user_id=BOOTSTRAP_ADMIN_ID,
        )
        await self._store.set(user_path(admin.id), admin.to_document())
        logger.info("admin_bootstrapped", user_id=admin.id)
        if self._audit_logger:
            await self._audit_logger.log_admin_bootstrapped(admin.id, admin.username)
        return True

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def require_users(self) -> None:
        if not self.users_ready:
            raise SyncUnavailable(USERS_PATH)

    def require_messages(self) -> None:
        if not self.messages_ready:
            raise SyncUnavailable(MESSAGES_PATH)

    def require_ledger(self, session: SessionContext) -> None:
        if session.closed or not session.ledger_ready:
            raise SyncUnavailable(ledger_path(session.user_id))

    def find_user_by_name(self, username: str) -> Optional[User]:
        username = username.strip()
        return next(
            (user for user in self.users.values() if user.username == username),
            None,
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def open_session(
        self,
        user: User,
        correlation_id: UUID,
    ) -> SessionContext:
        """Create a session and subscribe to the user's ledger document."""
        session = SessionContext(user, correlation_id)
        subscription = await self._store.subscribe(
            ledger_path(user.id),
            session.apply_snapshot,
        )
        session.track(subscription)
        self._sessions.append(session)
        return session

    def close_session(self, session: SessionContext) -> None:
        session.close()
        if session in self._sessions:
            self._sessions.remove(session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def commit_ledger(
        self,
        session: SessionContext,
        updated: LedgerDocument,
        fields: Iterable[str],
    ) -> LedgerDocument:
        """
        Apply a new ledger value locally and write the changed fields.

        All fields go out in one update, so other clients never see a
        partial change (e.g. an archived month whose expenses are still
        active).

        Raises:
            SyncUnavailable: The ledger snapshot has not arrived yet
            StorageError: The write failed; the local value is rolled back
        """
        self.require_ledger(session)

        previous = session.ledger
        session.apply_local(updated)

        document = updated.to_document()
        changes = {field: document[field] for field in fields}
        try:
            await self._store.update(ledger_path(session.user_id), changes)
        except StorageError:
            # Only undo our own optimistic value, never a newer snapshot
            if session.ledger is updated:
                session.apply_local(previous)
            raise
        return session.ledger

    async def push_message(self, message: ChatMessage) -> str:
        """Append a message; the store assigns its key and timestamp."""
        document = message.to_document()
        document.pop("id", None)
        document["timestamp"] = SERVER_TIMESTAMP
        return await self._store.push(MESSAGES_PATH, document)

    async def remove_message(self, message_id: str) -> None:
        await self._store.remove(message_path(message_id))

    async def put_user(self, user: User) -> None:
        await self._store.set(user_path(user.id), user.to_document())

    async def remove_user(self, user_id: str) -> None:
        """Delete an account together with its ledger, in one write."""
        await self._store.update("", {
            user_path(user_id): None,
            ledger_path(user_id): None,
        })
