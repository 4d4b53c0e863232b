"""
Startup Backoffice Platform
Tests — Chat (admin ↔ startup conversations).

Covers:
    - One conversation per (admin, startup) pair
    - Messages: validation, realtime fan-out, participant check
    - Read receipts
    - API round trip
"""

import pytest

from app.core.exceptions import MissingFieldError, NotFoundError, ValidationError
from app.services import chat_service

BASE = "/api/v1/conversations"


@pytest.fixture()
def conversation(admin):
    return chat_service.get_or_create_conversation(admin, counterpart_id=100)


# ═════════════════════════════════════════════════════════════════════════════
# CONVERSATIONS
# ═════════════════════════════════════════════════════════════════════════════

class TestConversations:
    def test_one_per_pair(self, conversation, startup):
        again = chat_service.get_or_create_conversation(startup, counterpart_id=1)

        assert again.id == conversation.id
        assert (again.admin_id, again.startup_id) == (1, 100)

    def test_counterpart_required(self, admin):
        with pytest.raises(MissingFieldError):
            chat_service.get_or_create_conversation(admin, counterpart_id=None)

    def test_listing_is_per_participant(self, conversation, admin, startup, other_startup):
        chat_service.get_or_create_conversation(admin, counterpart_id=200)

        assert len(chat_service.list_conversations(admin).all()) == 2
        assert [c.id for c in chat_service.list_conversations(startup).all()] == [conversation.id]
        assert len(chat_service.list_conversations(other_startup).all()) == 1


# ═════════════════════════════════════════════════════════════════════════════
# MESSAGES
# ═════════════════════════════════════════════════════════════════════════════

class TestMessages:
    def test_published_on_conversation_topic(self, conversation, startup, realtime_events):
        message = chat_service.send_message(conversation.id, startup, "  Hello there  ")

        assert message.content == "Hello there"
        assert conversation.last_message_at is not None
        (event,) = realtime_events.for_topic(f"conversation:{conversation.id}")
        assert event["event"] == "new_message"
        assert event["payload"]["sender_type"] == "startup"

    def test_empty_and_oversized_rejected(self, conversation, startup):
        with pytest.raises(MissingFieldError):
            chat_service.send_message(conversation.id, startup, "   ")
        with pytest.raises(ValidationError):
            chat_service.send_message(conversation.id, startup, "x" * (chat_service.MAX_MESSAGE_LENGTH + 1))

    def test_non_participant_cannot_post(self, conversation, other_startup):
        with pytest.raises(NotFoundError):
            chat_service.send_message(conversation.id, other_startup, "Let me in")

    def test_mark_read_only_touches_counterpart_messages(self, conversation, admin, startup, realtime_events):
        chat_service.send_message(conversation.id, startup, "Question one")
        chat_service.send_message(conversation.id, startup, "Question two")
        chat_service.send_message(conversation.id, admin, "Answer")

        assert chat_service.mark_read(conversation.id, admin) == 2
        assert chat_service.mark_read(conversation.id, admin) == 0
        assert realtime_events.events[-1]["event"] == "messages_read"

        unread = [m for m in chat_service.list_messages(conversation.id, admin) if m.read_at is None]
        assert [m.content for m in unread] == ["Answer"]


# ═════════════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════════════

class TestChatAPI:
    def test_conversation_flow(self, client, startup_headers, admin_headers):
        res = client.post(BASE, json={"counterpart_id": 1}, headers=startup_headers)
        assert res.status_code == 201
        conversation_id = res.get_json()["id"]

        res = client.post(f"{BASE}/{conversation_id}/messages", json={"content": "Hi"},
                          headers=startup_headers)
        assert res.status_code == 201

        res = client.get(f"{BASE}/{conversation_id}/messages", headers=admin_headers)
        assert res.get_json()["total"] == 1

        res = client.post(f"{BASE}/{conversation_id}/read", headers=admin_headers)
        assert res.get_json() == {"marked_read": 1}

    def test_outsider_gets_404(self, client, conversation, other_startup_headers):
        res = client.get(f"{BASE}/{conversation.id}/messages", headers=other_startup_headers)
        assert res.status_code == 404
