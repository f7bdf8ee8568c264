"""
Main Orchestrator for Smart Prise

This module ties together all the components and defines the
end-to-end flows for:
1. Accounts (bootstrap, login, logout, user administration)
2. The ledger (salary, expenses, commitments, month archival, theme)
3. Messaging (broadcast and direct threads)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing mutates before the relevant initial snapshot has arrived
- Every change goes optimistic-local first, then to the store
- Every failure comes back as a tagged ActionResult, never a crash
- Every step is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import datetime
from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from smart_prise.audit import AuditLogger, configure_logging, create_correlation_id
from smart_prise.config import get_settings, validate_all_settings
from smart_prise.errors import (
    AuthenticationError,
    LedgerError,
    PermissionDenied,
    SyncUnavailable,
    ValidationError,
)
from smart_prise.ledger import (
    LedgerSummary,
    apply_archive,
    archive_month,
    can_pay_installment,
    delete_commitment,
    find_commitment,
    pay_installment,
    replace_commitment,
    summarize,
)
from smart_prise.messaging import (
    can_delete_message,
    conversation_partners,
    visible_messages,
)
from smart_prise.models.audit import AuditEventType
from smart_prise.models.ledger import (
    BOOTSTRAP_ADMIN_ID,
    BROADCAST_RECIPIENT,
    ChatMessage,
    LedgerDocument,
    Theme,
    User,
    new_commitment,
    new_expense,
    new_message,
    new_user,
    parse_salary,
)
from smart_prise.models.results import ActionResult, ErrorKind
from smart_prise.services.storage import (
    DocumentStore,
    FirebaseClient,
    FirebaseDocumentStore,
    InMemoryDocumentStore,
    LocalFileDocumentStore,
    StorageError,
)
from smart_prise.sync import (
    MESSAGES_PATH,
    USERS_PATH,
    SessionContext,
    SyncMediator,
    ledger_path,
)

logger = structlog.get_logger(__name__)

_ERROR_KINDS = [
    (ValidationError, ErrorKind.VALIDATION),
    (AuthenticationError, ErrorKind.AUTHENTICATION),
    (SyncUnavailable, ErrorKind.SYNC_UNAVAILABLE),
    (PermissionDenied, ErrorKind.PERMISSION_DENIED),
]


def _error_kind(error: LedgerError) -> ErrorKind:
    for error_cls, kind in _ERROR_KINDS:
        if isinstance(error, error_cls):
            return kind
    return ErrorKind.VALIDATION


class _Flow:
    """Shared error boundary for every flow."""

    def __init__(
        self,
        mediator: SyncMediator,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._mediator = mediator
        self._audit_logger = audit_logger

    async def _reject(
        self,
        action: str,
        error: Exception,
        path: str = "",
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ActionResult:
        """Turn a caught failure into a tagged result and audit it."""
        if isinstance(error, StorageError):
            logger.error("remote_write_failed", action=action, path=path, error=str(error))
            if self._audit_logger:
                await self._audit_logger.log_remote_write_failed(
                    path=path,
                    error_message=str(error),
                    user_id=user_id,
                    correlation_id=correlation_id,
                )
            return ActionResult.failed(
                ErrorKind.STORAGE,
                "Could not save the change, please try again",
            )

        kind = _error_kind(error)
        logger.info("action_rejected", action=action, kind=kind.value, reason=str(error))
        if self._audit_logger:
            await self._audit_logger.log_rejected(
                action=action,
                reason=str(error),
                user_id=user_id,
                correlation_id=correlation_id,
            )
        issues = error.issues if isinstance(error, ValidationError) else None
        return ActionResult.failed(kind, str(error), issues)

    async def _run(
        self,
        action: str,
        operation: Awaitable[ActionResult],
        path: str = "",
        session: Optional[SessionContext] = None,
    ) -> ActionResult:
        try:
            return await operation
        except (LedgerError, StorageError) as e:
            return await self._reject(
                action,
                e,
                path=path,
                user_id=session.user_id if session else None,
                correlation_id=session.correlation_id if session else None,
            )


class AccountFlow(_Flow):
    """
    Orchestrates accounts and sessions.

    Login needs the users snapshot. Creating and deleting accounts
    requires the admin flag; the bootstrap administrator can never
    be deleted.
    """

    def _authenticate(self, username: str, password: str) -> User:
        user = self._mediator.find_user_by_name(username)
        if user is None or user.password != password:
            raise AuthenticationError()
        return user

    async def login(
        self,
        username: str,
        password: str,
    ) -> tuple[ActionResult, Optional[SessionContext]]:
        """
        Check credentials and open a session.

        Returns:
            (result, session). session is None on failure.
        """
        try:
            self._mediator.require_users()
            user = self._authenticate(username, password)
            session = await self._mediator.open_session(user, create_correlation_id())
        except AuthenticationError as e:
            if self._audit_logger:
                await self._audit_logger.log_login_failed(username)
            return ActionResult.failed(ErrorKind.AUTHENTICATION, str(e)), None
        except (LedgerError, StorageError) as e:
            return await self._reject("login", e, path=USERS_PATH), None

        if self._audit_logger:
            await self._audit_logger.log_login(session.user_id, session.correlation_id)
        return ActionResult.ok(f"Welcome {user.username}", ledger=session.ledger), session

    async def logout(self, session: SessionContext) -> ActionResult:
        """Close the session. Nothing is delivered to it afterwards."""
        already_closed = session.closed
        self._mediator.close_session(session)
        if self._audit_logger and not already_closed:
            await self._audit_logger.log_session_closed(session.user_id, session.correlation_id)
        return ActionResult.ok("Signed out")

    def _require_admin(self, session: SessionContext) -> None:
        if not session.user.is_admin:
            raise PermissionDenied("Only administrators can manage users")

    async def create_user(
        self,
        session: SessionContext,
        username: str,
        password: str,
        is_admin: bool = False,
    ) -> ActionResult:
        async def _create() -> ActionResult:
            self._mediator.require_users()
            self._require_admin(session)
            user = new_user(username, password, is_admin=is_admin)
            if self._mediator.find_user_by_name(user.username) is not None:
                raise ValidationError(f"Username '{user.username}' is already taken")

            await self._mediator.put_user(user)
            if self._audit_logger:
                await self._audit_logger.log_user_created(
                    admin_id=session.user_id,
                    user_id=user.id,
                    username=user.username,
                    is_admin=user.is_admin,
                    correlation_id=session.correlation_id,
                )
            return ActionResult.ok("User created", entity_id=user.id)

        return await self._run("create_user", _create(), path=USERS_PATH, session=session)

    async def delete_user(self, session: SessionContext, user_id: str) -> ActionResult:
        """Delete an account and its ledger. Unknown ids are a no-op."""
        async def _delete() -> ActionResult:
            self._mediator.require_users()
            self._require_admin(session)
            target = self._mediator.users.get(user_id)
            if target is None:
                return ActionResult.ok()
            if target.id == BOOTSTRAP_ADMIN_ID or target.username == self._mediator.admin_username:
                raise PermissionDenied("The main administrator cannot be deleted")

            await self._mediator.remove_user(target.id)
            if self._audit_logger:
                await self._audit_logger.log_user_deleted(
                    admin_id=session.user_id,
                    user_id=target.id,
                    correlation_id=session.correlation_id,
                )
            return ActionResult.ok("User deleted", entity_id=target.id)

        return await self._run("delete_user", _delete(), path=USERS_PATH, session=session)

    async def change_password(self, session: SessionContext, new_password: str) -> ActionResult:
        async def _change() -> ActionResult:
            self._mediator.require_users()
            if session.user_id not in self._mediator.users:
                # Account deleted elsewhere; writing would bring it back
                logger.info("password_change_skipped", user_id=session.user_id)
                return ActionResult.ok()
            current = session.user
            updated = new_user(
                current.username,
                new_password,
                is_admin=current.is_admin,
                user_id=current.id,
            )
            await self._mediator.put_user(updated)
            session.user = updated
            if self._audit_logger:
                await self._audit_logger.log_password_changed(
                    session.user_id,
                    session.correlation_id,
                )
            return ActionResult.ok("Password changed")

        return await self._run("change_password", _change(), path=USERS_PATH, session=session)


class LedgerFlow(_Flow):
    """
    Orchestrates changes to the signed-in user's ledger.

    Flow for every mutation:
    1. Check the ledger snapshot has arrived
    2. Build the new value with the pure ledger engine
    3. Commit it (optimistic local apply + one store update)
    4. Audit

    Operations naming an id that no longer exists succeed without
    writing anything; another session may have removed it already.
    """

    def __init__(
        self,
        mediator: SyncMediator,
        audit_logger: Optional[AuditLogger] = None,
        locale: str = "ar_EG",
        clock: Callable[[], datetime] = datetime.now,
    ):
        super().__init__(mediator, audit_logger)
        self._locale = locale
        self._clock = clock

    async def _commit(
        self,
        session: SessionContext,
        updated: LedgerDocument,
        *fields: str,
    ) -> LedgerDocument:
        return await self._mediator.commit_ledger(session, updated, fields)

    async def _audit_change(
        self,
        session: SessionContext,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_ledger_change(
                event_type=event_type,
                user_id=session.user_id,
                entity_type=entity_type,
                entity_id=entity_id,
                description=description,
                details=details,
                correlation_id=session.correlation_id,
            )

    async def _guarded(
        self,
        action: str,
        session: SessionContext,
        operation: Callable[[], Awaitable[ActionResult]],
    ) -> ActionResult:
        async def _checked() -> ActionResult:
            self._mediator.require_ledger(session)
            return await operation()

        return await self._run(action, _checked(), path=ledger_path(session.user_id), session=session)

    # ------------------------------------------------------------------
    # Salary
    # ------------------------------------------------------------------

    async def set_salary(self, session: SessionContext, raw_salary) -> ActionResult:
        async def _set() -> ActionResult:
            salary = parse_salary(raw_salary)
            ledger = await self._commit(session, session.ledger.evolve(salary=salary), "salary")
            await self._audit_change(
                session,
                AuditEventType.SALARY_UPDATED,
                "salary",
                None,
                "Salary updated",
                {"salary": str(salary)},
            )
            return ActionResult.ok("Salary saved", ledger=ledger)

        return await self._guarded("set_salary", session, _set)

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    async def add_expense(
        self,
        session: SessionContext,
        value,
        category: str,
        name: Optional[str] = None,
        due_date=None,
    ) -> ActionResult:
        async def _add() -> ActionResult:
            expense = new_expense(
                owner_id=session.user_id,
                value=value,
                category=category,
                name=name,
                due_date=due_date,
                today=self._clock().date(),
            )
            updated = session.ledger.evolve(expenses=[*session.ledger.expenses, expense])
            ledger = await self._commit(session, updated, "expenses")
            await self._audit_change(
                session,
                AuditEventType.EXPENSE_ADDED,
                "expense",
                expense.id,
                f"Expense '{expense.name}' added",
                {"value": str(expense.value), "category": expense.category},
            )
            return ActionResult.ok("Expense added", ledger=ledger, entity_id=expense.id)

        return await self._guarded("add_expense", session, _add)

    async def toggle_expense_paid(self, session: SessionContext, expense_id: str) -> ActionResult:
        async def _toggle() -> ActionResult:
            expense = next((e for e in session.ledger.expenses if e.id == expense_id), None)
            if expense is None:
                return ActionResult.ok(ledger=session.ledger)

            toggled = expense.evolve(paid=not expense.paid)
            updated = session.ledger.evolve(
                expenses=[toggled if e.id == expense_id else e for e in session.ledger.expenses]
            )
            ledger = await self._commit(session, updated, "expenses")
            await self._audit_change(
                session,
                AuditEventType.EXPENSE_PAID_TOGGLED,
                "expense",
                expense_id,
                f"Expense '{toggled.name}' marked {'paid' if toggled.paid else 'unpaid'}",
                {"paid": toggled.paid},
            )
            return ActionResult.ok(ledger=ledger, entity_id=expense_id)

        return await self._guarded("toggle_expense_paid", session, _toggle)

    async def delete_expense(self, session: SessionContext, expense_id: str) -> ActionResult:
        async def _delete() -> ActionResult:
            remaining = [e for e in session.ledger.expenses if e.id != expense_id]
            if len(remaining) == len(session.ledger.expenses):
                return ActionResult.ok(ledger=session.ledger)

            ledger = await self._commit(session, session.ledger.evolve(expenses=remaining), "expenses")
            await self._audit_change(
                session,
                AuditEventType.EXPENSE_DELETED,
                "expense",
                expense_id,
                "Expense deleted",
            )
            return ActionResult.ok("Expense deleted", ledger=ledger, entity_id=expense_id)

        return await self._guarded("delete_expense", session, _delete)

    # ------------------------------------------------------------------
    # Commitments
    # ------------------------------------------------------------------

    async def add_commitment(
        self,
        session: SessionContext,
        commitment_type: str,
        total_value,
        installments_count,
        duration: str = "",
        due_date=None,
        description: Optional[str] = None,
    ) -> ActionResult:
        async def _add() -> ActionResult:
            commitment = new_commitment(
                owner_id=session.user_id,
                commitment_type=commitment_type,
                total_value=total_value,
                installments_count=installments_count,
                duration=duration,
                due_date=due_date,
                description=description,
            )
            updated = session.ledger.evolve(
                commitments=[*session.ledger.commitments, commitment]
            )
            ledger = await self._commit(session, updated, "commitments")
            await self._audit_change(
                session,
                AuditEventType.COMMITMENT_ADDED,
                "commitment",
                commitment.id,
                f"Commitment '{commitment.type}' added",
                {
                    "total_value": str(commitment.total_value),
                    "installments_count": commitment.installments_count,
                },
            )
            return ActionResult.ok("Commitment added", ledger=ledger, entity_id=commitment.id)

        return await self._guarded("add_commitment", session, _add)

    async def pay_installment(self, session: SessionContext, commitment_id: str) -> ActionResult:
        """
        Pay one installment. Paying a completed commitment succeeds
        without writing, as the disabled action in the UI would.
        """
        async def _pay() -> ActionResult:
            commitment = find_commitment(session.ledger.commitments, commitment_id)
            if commitment is None:
                return ActionResult.ok(ledger=session.ledger)
            if not can_pay_installment(commitment):
                return ActionResult.ok(
                    "Commitment already completed",
                    ledger=session.ledger,
                    entity_id=commitment_id,
                )

            paid = pay_installment(commitment)
            updated = session.ledger.evolve(
                commitments=replace_commitment(session.ledger.commitments, paid)
            )
            ledger = await self._commit(session, updated, "commitments")
            if self._audit_logger:
                await self._audit_logger.log_installment_paid(
                    user_id=session.user_id,
                    commitment_id=commitment_id,
                    paid_amount=str(paid.paid_amount),
                    remaining_amount=str(paid.remaining_amount),
                    completed=paid.completed,
                    correlation_id=session.correlation_id,
                )
            message = "Commitment completed" if paid.completed else "Installment paid"
            return ActionResult.ok(message, ledger=ledger, entity_id=commitment_id)

        return await self._guarded("pay_installment", session, _pay)

    async def delete_commitment(self, session: SessionContext, commitment_id: str) -> ActionResult:
        async def _delete() -> ActionResult:
            if find_commitment(session.ledger.commitments, commitment_id) is None:
                return ActionResult.ok(ledger=session.ledger)

            updated = session.ledger.evolve(
                commitments=delete_commitment(session.ledger.commitments, commitment_id)
            )
            ledger = await self._commit(session, updated, "commitments")
            await self._audit_change(
                session,
                AuditEventType.COMMITMENT_DELETED,
                "commitment",
                commitment_id,
                "Commitment deleted",
            )
            return ActionResult.ok("Commitment deleted", ledger=ledger, entity_id=commitment_id)

        return await self._guarded("delete_commitment", session, _delete)

    # ------------------------------------------------------------------
    # Month archival
    # ------------------------------------------------------------------

    async def archive_month(self, session: SessionContext) -> ActionResult:
        """
        Close the month: snapshot active expenses into history and clear them.

        History and expenses go out in one update. A month with no
        expenses is left alone.
        """
        async def _archive() -> ActionResult:
            ledger = session.ledger
            if not ledger.expenses:
                return ActionResult.ok(ledger=ledger)
            record = archive_month(
                ledger.salary,
                ledger.expenses,
                session.user_id,
                self._clock(),
                locale=self._locale,
            )
            ledger = await self._commit(session, apply_archive(ledger, record), "history", "expenses")
            if self._audit_logger:
                await self._audit_logger.log_month_archived(
                    user_id=session.user_id,
                    record_id=record.id,
                    month_name=record.month_name,
                    total_expenses=str(record.total_expenses),
                    expense_count=len(record.expenses),
                    correlation_id=session.correlation_id,
                )
            return ActionResult.ok("Month archived", ledger=ledger, entity_id=record.id)

        return await self._guarded("archive_month", session, _archive)

    # ------------------------------------------------------------------
    # Theme and summary
    # ------------------------------------------------------------------

    async def set_theme(self, session: SessionContext, theme) -> ActionResult:
        async def _set() -> ActionResult:
            try:
                selected = Theme(theme)
            except ValueError:
                raise ValidationError(f"Unknown theme '{theme}'") from None
            ledger = await self._commit(session, session.ledger.evolve(theme=selected), "theme")
            await self._audit_change(
                session,
                AuditEventType.THEME_CHANGED,
                "theme",
                None,
                f"Theme set to {selected.value}",
            )
            return ActionResult.ok(ledger=ledger)

        return await self._guarded("set_theme", session, _set)

    def summary(self, session: SessionContext) -> LedgerSummary:
        """Derived totals for the current local ledger, recomputed each call."""
        return summarize(session.ledger, self._clock().date())


class MessagingFlow(_Flow):
    """
    Orchestrates the shared message board.

    Messages are appended with a server timestamp and deleted only
    by their sender.
    """

    def __init__(
        self,
        mediator: SyncMediator,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        super().__init__(mediator, audit_logger)
        self._clock = clock

    async def send_message(
        self,
        session: SessionContext,
        text: str,
        recipient: str = BROADCAST_RECIPIENT,
    ) -> ActionResult:
        async def _send() -> ActionResult:
            self._mediator.require_users()
            recipient_id = recipient or BROADCAST_RECIPIENT
            if recipient_id != BROADCAST_RECIPIENT and recipient_id not in self._mediator.users:
                raise ValidationError("Unknown recipient")

            message = new_message(session.user, recipient_id, text, now=self._clock())
            key = await self._mediator.push_message(message)
            if self._audit_logger:
                await self._audit_logger.log_message_sent(
                    user_id=session.user_id,
                    message_id=key,
                    recipient=recipient_id,
                    correlation_id=session.correlation_id,
                )
            return ActionResult.ok("Message sent", entity_id=key)

        return await self._run("send_message", _send(), path=MESSAGES_PATH, session=session)

    async def delete_message(self, session: SessionContext, message_id: str) -> ActionResult:
        async def _delete() -> ActionResult:
            self._mediator.require_messages()
            message = next((m for m in self._mediator.messages if m.id == message_id), None)
            if message is None:
                return ActionResult.ok()
            if not can_delete_message(message, session.user_id):
                raise PermissionDenied("Only the sender can delete a message")

            await self._mediator.remove_message(message_id)
            if self._audit_logger:
                await self._audit_logger.log_message_deleted(
                    user_id=session.user_id,
                    message_id=message_id,
                    correlation_id=session.correlation_id,
                )
            return ActionResult.ok("Message deleted", entity_id=message_id)

        return await self._run("delete_message", _delete(), path=MESSAGES_PATH, session=session)

    def visible_messages(
        self,
        session: SessionContext,
        selected_recipient_id: str = BROADCAST_RECIPIENT,
    ) -> list[ChatMessage]:
        return visible_messages(self._mediator.messages, session.user_id, selected_recipient_id)

    def conversation_partners(self, session: SessionContext) -> list[str]:
        return conversation_partners(self._mediator.messages, session.user_id)


def _create_store(backend: str) -> DocumentStore:
    app_settings = get_settings().app
    if backend == "firebase":
        return FirebaseDocumentStore(FirebaseClient())
    if backend == "local":
        return LocalFileDocumentStore(
            app_settings.local_storage_path,
            namespace=app_settings.local_storage_namespace,
        )
    return InMemoryDocumentStore()


def create_app_components(
    backend: Optional[str] = None,
) -> tuple[AccountFlow, LedgerFlow, MessagingFlow, SyncMediator]:
    """
    Factory function to create all application components.

    Args:
        backend: "memory", "local" or "firebase".
                 Defaults to the configured storage backend.

    Returns:
        (account_flow, ledger_flow, messaging_flow, mediator)

    The caller must `await mediator.start()` before using the flows.
    """
    app_settings = get_settings().app
    configure_logging(app_settings.log_level)
    backend = backend or app_settings.storage_backend

    checks = validate_all_settings()
    if backend == "firebase" and not checks.get("firebase", True):
        logger.warning("firebase_settings_invalid", error=checks.get("firebase_error"))

    try:
        store = _create_store(backend)
    except (StorageError, ValueError) as e:
        # Storage not configured - continue in memory
        logger.warning("storage_not_configured", backend=backend, error=str(e))
        store = InMemoryDocumentStore()

    audit_logger = AuditLogger(store)
    mediator = SyncMediator(
        store,
        audit_logger=audit_logger,
        admin_username=app_settings.admin_username,
        admin_password=app_settings.admin_password,
    )

    account_flow = AccountFlow(mediator, audit_logger)
    ledger_flow = LedgerFlow(mediator, audit_logger, locale=app_settings.locale)
    messaging_flow = MessagingFlow(mediator, audit_logger)

    return account_flow, ledger_flow, messaging_flow, mediator
