"""
Audit Models for Smart Prise

Every significant ledger action is logged for audit purposes.
This provides:
1. Traceability of who changed which ledger and when
2. Debugging information when sync goes wrong
3. A way to reconstruct what a household did each month

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every user intent and every sync milestone has its own event type.
    """
    # Accounts
    ADMIN_BOOTSTRAPPED = "admin_bootstrapped"
    USER_CREATED = "user_created"
    USER_DELETED = "user_deleted"
    PASSWORD_CHANGED = "password_changed"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    SESSION_CLOSED = "session_closed"

    # Ledger
    SALARY_UPDATED = "salary_updated"
    EXPENSE_ADDED = "expense_added"
    EXPENSE_PAID_TOGGLED = "expense_paid_toggled"
    EXPENSE_DELETED = "expense_deleted"
    COMMITMENT_ADDED = "commitment_added"
    INSTALLMENT_PAID = "installment_paid"
    COMMITMENT_COMPLETED = "commitment_completed"
    COMMITMENT_DELETED = "commitment_deleted"
    MONTH_ARCHIVED = "month_archived"
    THEME_CHANGED = "theme_changed"

    # Messaging
    MESSAGE_SENT = "message_sent"
    MESSAGE_DELETED = "message_deleted"

    # Rejections
    ACTION_REJECTED = "action_rejected"

    # System events
    REMOTE_WRITE_FAILED = "remote_write_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'commitment', 'message')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Who did it
    user_id: Optional[str] = Field(
        default=None,
        description="Account that performed the action"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one session)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_document(self) -> dict:
        """Convert to the record appended under audit/ in the document store."""
        return self.model_dump(mode="json", exclude_none=True)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.login_succeeded(user_id, correlation_id)
        event = AuditEventBuilder.month_archived(user_id, record_id, "يناير ٢٠٢٥", "1500", 3)
    """

    @staticmethod
    def admin_bootstrapped(user_id: str, username: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADMIN_BOOTSTRAPPED,
            entity_type="user",
            entity_id=user_id,
            description=f"Bootstrap administrator seeded: {username}",
            details={"username": username},
        )

    @staticmethod
    def user_created(
        admin_id: str,
        user_id: str,
        username: str,
        is_admin: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_CREATED,
            entity_type="user",
            entity_id=user_id,
            user_id=admin_id,
            correlation_id=correlation_id,
            description=f"User created: {username}",
            details={"username": username, "is_admin": is_admin},
            is_user_action=True,
        )

    @staticmethod
    def user_deleted(
        admin_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_DELETED,
            entity_type="user",
            entity_id=user_id,
            user_id=admin_id,
            correlation_id=correlation_id,
            description="User deleted",
            is_user_action=True,
        )

    @staticmethod
    def password_changed(
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PASSWORD_CHANGED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Password changed",
            is_user_action=True,
        )

    @staticmethod
    def login_succeeded(user_id: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_SUCCEEDED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="User logged in",
            is_user_action=True,
        )

    @staticmethod
    def login_failed(username: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            description="Login rejected",
            details={"username": username},
            is_user_action=True,
        )

    @staticmethod
    def session_closed(user_id: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_CLOSED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Session closed and subscriptions released",
            is_user_action=True,
        )

    @staticmethod
    def ledger_changed(
        event_type: AuditEventType,
        user_id: str,
        entity_type: str,
        entity_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        """Generic builder for changes to a user's ledger document."""
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def installment_paid(
        user_id: str,
        commitment_id: str,
        paid_amount: str,
        remaining_amount: str,
        completed: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.COMMITMENT_COMPLETED
            if completed
            else AuditEventType.INSTALLMENT_PAID
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="commitment",
            entity_id=commitment_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=(
                "Commitment paid off"
                if completed
                else f"Installment paid, {remaining_amount} remaining"
            ),
            details={
                "paid_amount": paid_amount,
                "remaining_amount": remaining_amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def month_archived(
        user_id: str,
        record_id: str,
        month_name: str,
        total_expenses: str,
        expense_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTH_ARCHIVED,
            entity_type="monthly_record",
            entity_id=record_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Month archived: {month_name}",
            details={
                "month_name": month_name,
                "total_expenses": total_expenses,
                "expense_count": expense_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def message_sent(
        user_id: str,
        message_id: str,
        recipient: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_SENT,
            entity_type="message",
            entity_id=message_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Message sent to {recipient}",
            details={"recipient": recipient},
            is_user_action=True,
        )

    @staticmethod
    def message_deleted(
        user_id: str,
        message_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_DELETED,
            entity_type="message",
            entity_id=message_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Message deleted by its sender",
            is_user_action=True,
        )

    @staticmethod
    def action_rejected(
        action: str,
        reason: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Action rejected: {action}",
            details={"action": action, "reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def remote_write_failed(
        path: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Remote write failed at {path}",
            error_message=error_message,
            details={"path": path},
        )
