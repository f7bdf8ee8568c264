"""
Messaging Partitioner

Splits the single shared message collection into what one viewer sees.

Two views exist:
- broadcast ("all"): every message addressed to everyone
- direct thread: messages between the viewer and one other user,
  in both directions

Both views keep server order (ascending timestamp, ties by store key).
"""

from typing import Iterable

from smart_prise.models.ledger import BROADCAST_RECIPIENT, ChatMessage


def _in_thread(message: ChatMessage, viewer_id: str, other_id: str) -> bool:
    return (
        (message.sender_id == viewer_id and message.recipient == other_id)
        or (message.sender_id == other_id and message.recipient == viewer_id)
    )


def visible_messages(
    messages: Iterable[ChatMessage],
    viewer_id: str,
    selected_recipient_id: str = BROADCAST_RECIPIENT,
) -> list[ChatMessage]:
    """
    Messages the viewer sees for the selected conversation.

    Args:
        messages: Every message in the shared collection
        viewer_id: Id of the signed-in user
        selected_recipient_id: "all" or the id of the other party

    Returns:
        Matching messages in server order
    """
    if selected_recipient_id == BROADCAST_RECIPIENT:
        selected = [m for m in messages if m.is_broadcast]
    else:
        selected = [
            m for m in messages
            if _in_thread(m, viewer_id, selected_recipient_id)
        ]
    return sorted(selected, key=lambda m: (m.timestamp, m.id))


def can_delete_message(message: ChatMessage, viewer_id: str) -> bool:
    """Only the sender may delete a message."""
    return message.sender_id == viewer_id


def conversation_partners(
    messages: Iterable[ChatMessage],
    viewer_id: str,
) -> list[str]:
    """Ids of users the viewer has a direct thread with, first contact first."""
    partners: list[str] = []
    for message in sorted(messages, key=lambda m: (m.timestamp, m.id)):
        if message.is_broadcast:
            continue
        if message.sender_id == viewer_id:
            other = message.recipient
        elif message.recipient == viewer_id:
            other = message.sender_id
        else:
            continue
        if other != viewer_id and other not in partners:
            partners.append(other)
    return partners
