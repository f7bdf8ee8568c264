"""
Ledger Exceptions

Every failure the core can produce is one of these.
Flows catch them and turn them into tagged ActionResults,
so none of them ever reaches the presentation layer as a crash.

Storage failures live with the storage interface
(see smart_prise.services.storage.interface).
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class ValidationError(LedgerError):
    """
    Malformed or out-of-range input at entity construction.

    Carries every issue found so the UI can show them all at once.
    """

    def __init__(self, message: str, issues: Optional[list[str]] = None):
        self.issues = issues or [message]
        super().__init__(message)


class AuthenticationError(LedgerError):
    """
    Credential mismatch at login.

    The message never says whether the user exists.
    """

    def __init__(self, message: str = "Invalid username or password"):
        super().__init__(message)


class SyncUnavailable(LedgerError):
    """The store has not delivered the initial snapshot for a path yet."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Waiting for initial data at '{path}'")


class PermissionDenied(LedgerError):
    """Action requires the admin flag or ownership the caller lacks."""
    pass
