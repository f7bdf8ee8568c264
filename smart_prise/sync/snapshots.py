"""
Snapshot Parsing

Turns raw values delivered by the store into typed entities.

The store is shared with other clients, so parsing is tolerant:
- a missing collection is empty (the store does not keep empty arrays)
- a collection may arrive as a key -> value map instead of a list
- a malformed entry is skipped and logged, never fatal
"""

from decimal import Decimal
from typing import Any

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from smart_prise.models.ledger import (
    ChatMessage,
    Commitment,
    Expense,
    LedgerDocument,
    MonthlyRecord,
    Theme,
    User,
)

logger = structlog.get_logger(__name__)


def as_entries(raw: Any) -> list[tuple[str, Any]]:
    """Normalize a list or key -> value map into (key, value) pairs."""
    if raw is None:
        return []
    if isinstance(raw, dict):
        return [(str(key), value) for key, value in raw.items() if value is not None]
    if isinstance(raw, list):
        return [(str(i), value) for i, value in enumerate(raw) if value is not None]
    logger.warning("unexpected_collection_shape", type=type(raw).__name__)
    return []


def _parse_each(model_cls: type[BaseModel], raw: Any, collection: str) -> list:
    parsed = []
    for key, value in as_entries(raw):
        try:
            parsed.append(model_cls.model_validate(value))
        except PydanticValidationError as e:
            logger.warning(
                "malformed_entry_skipped",
                collection=collection,
                key=key,
                error_count=e.error_count(),
            )
    return parsed


def parse_users(raw: Any) -> dict[str, User]:
    """Users keyed by id. The key under users/ wins over any stored id."""
    users: dict[str, User] = {}
    for key, value in as_entries(raw):
        if not isinstance(value, dict):
            continue
        try:
            users[key] = User.model_validate({**value, "id": key})
        except PydanticValidationError as e:
            logger.warning(
                "malformed_entry_skipped",
                collection="users",
                key=key,
                error_count=e.error_count(),
            )
    return users


def parse_messages(raw: Any) -> list[ChatMessage]:
    """Messages with ids taken from their store keys, in server order."""
    messages = []
    for key, value in as_entries(raw):
        if not isinstance(value, dict):
            continue
        try:
            messages.append(ChatMessage.model_validate({**value, "id": key}))
        except PydanticValidationError as e:
            logger.warning(
                "malformed_entry_skipped",
                collection="messages",
                key=key,
                error_count=e.error_count(),
            )
    messages.sort(key=lambda m: (m.timestamp, m.id))
    return messages


def parse_ledger(raw: Any) -> LedgerDocument:
    """Build a LedgerDocument from whatever is stored at data/{userId}."""
    if not isinstance(raw, dict):
        return LedgerDocument()

    salary = Decimal("0")
    try:
        salary = LedgerDocument.model_validate({"salary": raw.get("salary", 0)}).salary
    except PydanticValidationError:
        logger.warning("malformed_salary_ignored", value=str(raw.get("salary")))

    try:
        theme = Theme(raw.get("theme", Theme.LIGHT.value))
    except ValueError:
        theme = Theme.LIGHT

    return LedgerDocument(
        salary=salary,
        expenses=_parse_each(Expense, raw.get("expenses"), "expenses"),
        commitments=_parse_each(Commitment, raw.get("commitments"), "commitments"),
        history=_parse_each(MonthlyRecord, raw.get("history"), "history"),
        theme=theme,
    )
