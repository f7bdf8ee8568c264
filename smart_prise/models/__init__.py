"""
Data Models Package

This package contains all Pydantic models used in Smart Prise.
All data flowing between the engine and the store conforms to these schemas.
"""

from smart_prise.models.ledger import (
    BOOTSTRAP_ADMIN_ID,
    BROADCAST_RECIPIENT,
    COMMITMENT_TYPES,
    DEFAULT_EXPENSE_CATEGORIES,
    ChatMessage,
    Commitment,
    Expense,
    LedgerDocument,
    LedgerModel,
    MonthlyRecord,
    Theme,
    User,
    new_commitment,
    new_expense,
    new_message,
    new_user,
    parse_salary,
)
from smart_prise.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from smart_prise.models.results import ActionResult, ErrorKind

__all__ = [
    # Ledger models
    "BOOTSTRAP_ADMIN_ID",
    "BROADCAST_RECIPIENT",
    "COMMITMENT_TYPES",
    "DEFAULT_EXPENSE_CATEGORIES",
    "ChatMessage",
    "Commitment",
    "Expense",
    "LedgerDocument",
    "LedgerModel",
    "MonthlyRecord",
    "Theme",
    "User",
    "new_commitment",
    "new_expense",
    "new_message",
    "new_user",
    "parse_salary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Results
    "ActionResult",
    "ErrorKind",
]
