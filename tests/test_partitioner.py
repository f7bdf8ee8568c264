"""Tests for the messaging partitioner."""

from smart_prise.messaging import (
    can_delete_message,
    conversation_partners,
    visible_messages,
)
from smart_prise.models.ledger import ChatMessage


def _message(key, sender, recipient, timestamp):
    return ChatMessage(
        id=key,
        sender_id=sender,
        sender_name=sender,
        recipient=recipient,
        text=f"{sender} -> {recipient}",
        timestamp=timestamp,
    )


MESSAGES = [
    _message("k3", "b", "a", 30),
    _message("k1", "a", "all", 10),
    _message("k2", "a", "b", 20),
    _message("k4", "c", "b", 40),
    _message("k5", "b", "all", 50),
]


class TestVisibleMessages:
    """Per-viewer views over the shared collection."""

    def test_broadcast_view(self):
        view = visible_messages(MESSAGES, "c", "all")
        assert [m.id for m in view] == ["k1", "k5"]

    def test_thread_is_symmetric(self):
        from_a = visible_messages(MESSAGES, "a", "b")
        from_b = visible_messages(MESSAGES, "b", "a")
        assert [m.id for m in from_a] == ["k2", "k3"]
        assert [m.id for m in from_b] == ["k2", "k3"]

    def test_third_party_thread_hidden(self):
        assert visible_messages(MESSAGES, "a", "c") == []

    def test_ties_broken_by_key(self):
        tied = [_message("k9", "a", "all", 5), _message("k8", "b", "all", 5)]
        assert [m.id for m in visible_messages(tied, "a")] == ["k8", "k9"]

    def test_direct_messages_never_in_broadcast(self):
        view = visible_messages(MESSAGES, "a", "all")
        assert all(m.recipient == "all" for m in view)


class TestMessageOwnership:
    """Only the sender may delete."""

    def test_sender_can_delete(self):
        assert can_delete_message(MESSAGES[1], "a")

    def test_others_cannot_delete(self):
        assert not can_delete_message(MESSAGES[1], "b")


class TestConversationPartners:
    """Users with a direct thread."""

    def test_partners(self):
        assert conversation_partners(MESSAGES, "b") == ["a", "c"]

    def test_no_partners(self):
        assert conversation_partners(MESSAGES, "z") == []
