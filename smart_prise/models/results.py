"""
Action Results

Every public flow operation returns an ActionResult instead of raising.
The caller checks `success`; on failure the prior state is untouched
and `message` is safe to show to the user.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from smart_prise.models.ledger import LedgerDocument


class ErrorKind(str, Enum):
    """Tag identifying why an action failed."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    SYNC_UNAVAILABLE = "sync_unavailable"
    PERMISSION_DENIED = "permission_denied"
    STORAGE = "storage"


class ActionResult(BaseModel):
    """Outcome of one user action."""

    success: bool
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    issues: list[str] = Field(
        default_factory=list,
        description="Individual validation problems, if any"
    )

    # Updated local ledger after an optimistic apply
    ledger: Optional[LedgerDocument] = None

    # Id of a created entity (expense, commitment, message, user)
    entity_id: Optional[str] = None

    @classmethod
    def ok(
        cls,
        message: str = "",
        ledger: Optional[LedgerDocument] = None,
        entity_id: Optional[str] = None,
    ) -> "ActionResult":
        return cls(success=True, message=message, ledger=ledger, entity_id=entity_id)

    @classmethod
    def failed(
        cls,
        kind: ErrorKind,
        message: str,
        issues: Optional[list[str]] = None,
    ) -> "ActionResult":
        return cls(
            success=False,
            error_kind=kind,
            message=message,
            issues=issues or [],
        )
