"""Messaging package: per-viewer views over the shared message collection."""

from smart_prise.messaging.partitioner import (
    can_delete_message,
    conversation_partners,
    visible_messages,
)

__all__ = ["can_delete_message", "conversation_partners", "visible_messages"]
