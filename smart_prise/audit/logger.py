"""
Audit Logger

DESIGN DECISION: Every significant ledger action is logged.
This provides:
1. Complete traceability of who changed which ledger
2. Debugging capability when clients disagree
3. A household can see the history of its actions

The audit logger:
- Is async to not block the event loop
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace one session's events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from smart_prise.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from smart_prise.services.storage import DocumentStore


AUDIT_PATH = "audit"


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for local JSON logging."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(ensure_ascii=False)
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The document store under audit/ (for persistence)
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
    ):
        """
        Initialize audit logger.

        Args:
            store: Document store for persistence.
                   If None, only logs locally.
        """
        self._store = store
        self._logger = structlog.get_logger("smart_prise.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to the store if available.

        Returns True if the store write succeeded (or no store configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._store:
            try:
                await self._store.push(AUDIT_PATH, event.to_document())
                return True
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_admin_bootstrapped(self, user_id: str, username: str) -> None:
        await self.log(AuditEventBuilder.admin_bootstrapped(user_id, username))

    async def log_user_created(
        self,
        admin_id: str,
        user_id: str,
        username: str,
        is_admin: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.user_created(
            admin_id=admin_id,
            user_id=user_id,
            username=username,
            is_admin=is_admin,
            correlation_id=correlation_id,
        ))

    async def log_user_deleted(
        self,
        admin_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.user_deleted(admin_id, user_id, correlation_id))

    async def log_password_changed(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.password_changed(user_id, correlation_id))

    async def log_login(self, user_id: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.login_succeeded(user_id, correlation_id))

    async def log_login_failed(self, username: str) -> None:
        await self.log(AuditEventBuilder.login_failed(username))

    async def log_session_closed(self, user_id: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.session_closed(user_id, correlation_id))

    async def log_ledger_change(
        self,
        event_type: AuditEventType,
        user_id: str,
        entity_type: str,
        entity_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a change to a user's ledger document."""
        await self.log(AuditEventBuilder.ledger_changed(
            event_type=event_type,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_installment_paid(
        self,
        user_id: str,
        commitment_id: str,
        paid_amount: str,
        remaining_amount: str,
        completed: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.installment_paid(
            user_id=user_id,
            commitment_id=commitment_id,
            paid_amount=paid_amount,
            remaining_amount=remaining_amount,
            completed=completed,
            correlation_id=correlation_id,
        ))

    async def log_month_archived(
        self,
        user_id: str,
        record_id: str,
        month_name: str,
        total_expenses: str,
        expense_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.month_archived(
            user_id=user_id,
            record_id=record_id,
            month_name=month_name,
            total_expenses=total_expenses,
            expense_count=expense_count,
            correlation_id=correlation_id,
        ))

    async def log_message_sent(
        self,
        user_id: str,
        message_id: str,
        recipient: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.message_sent(user_id, message_id, recipient, correlation_id))

    async def log_message_deleted(
        self,
        user_id: str,
        message_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.message_deleted(user_id, message_id, correlation_id))

    async def log_rejected(
        self,
        action: str,
        reason: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an action the core refused (validation, permission, sync)."""
        await self.log(AuditEventBuilder.action_rejected(action, reason, user_id, correlation_id))

    async def log_remote_write_failed(
        self,
        path: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.remote_write_failed(
            path=path,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    One is created per login session and passed through every action.
    """
    return uuid4()
