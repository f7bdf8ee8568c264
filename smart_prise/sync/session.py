"""
Session Context

DESIGN DECISION: "Current user" and "current theme" are not globals.
A SessionContext is created at successful login, passed into every
ledger operation, and closed at logout. Closing it releases every
subscription it owns, so a stale session never receives updates
meant for the next user.
"""

import asyncio
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog

from smart_prise.models.ledger import LedgerDocument, Theme, User
from smart_prise.services.storage import Subscription
from smart_prise.sync.snapshots import parse_ledger

logger = structlog.get_logger(__name__)


class SessionContext:
    """
    Per-login state: the user, their ledger mirror and its subscriptions.

    The ledger has two writers:
    - apply_local: optimistic value set right after a user action
    - apply_snapshot: authoritative value delivered by the store,
      which replaces the local value unconditionally
    """

    def __init__(self, user: User, correlation_id: UUID):
        self.user = user
        self.correlation_id = correlation_id
        self.created_at = datetime.utcnow()
        self.ledger = LedgerDocument()
        self._ledger_ready = asyncio.Event()
        self._subscriptions: list[Subscription] = []
        self._closed = False

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def theme(self) -> Theme:
        return self.ledger.theme

    @property
    def ledger_ready(self) -> bool:
        return self._ledger_ready.is_set()

    @property
    def closed(self) -> bool:
        return self._closed

    def apply_snapshot(self, raw: Any) -> None:
        """Replace the local ledger with what the store holds."""
        if self._closed:
            return
        self.ledger = parse_ledger(raw)
        self._ledger_ready.set()
        logger.debug("ledger_snapshot_applied", user_id=self.user_id)

    def apply_local(self, ledger: LedgerDocument) -> None:
        """Set an optimistic value until the store echoes it back."""
        self.ledger = ledger

    def track(self, subscription: Subscription) -> None:
        if self._closed:
            subscription.close()
        else:
            self._subscriptions.append(subscription)

    def close(self) -> None:
        """Release every subscription. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
