"""Remote sync: session context, snapshot parsing and the sync mediator."""

from smart_prise.sync.mediator import (
    DATA_PATH,
    MESSAGES_PATH,
    USERS_PATH,
    SyncMediator,
    ledger_path,
    message_path,
    user_path,
)
from smart_prise.sync.session import SessionContext
from smart_prise.sync.snapshots import parse_ledger, parse_messages, parse_users

__all__ = [
    "DATA_PATH",
    "MESSAGES_PATH",
    "USERS_PATH",
    "SessionContext",
    "SyncMediator",
    "ledger_path",
    "message_path",
    "parse_ledger",
    "parse_messages",
    "parse_users",
    "user_path",
]
