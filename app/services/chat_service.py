"""
Startup Backoffice Platform
Chat Service — admin ↔ startup conversations.

One conversation exists per (admin, startup) pair. New messages are
published as `new_message` on the `conversation:{id}` topic after commit.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from app.auth import Actor
from app.core.exceptions import MissingFieldError, NotFoundError, ValidationError
from app.models import db
from app.models.chat import ChatMessage, Conversation
from app.services.realtime import conversation_topic, get_realtime
from app.utils.helpers import parse_int

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000


def _utcnow():
    return datetime.now(timezone.utc)


def get_conversation_for_actor(conversation_id: int, actor: Actor) -> Conversation:
    conversation = db.session.get(Conversation, conversation_id)
    if conversation is None or not conversation.has_participant(actor.id, actor.type):
        raise NotFoundError(resource="Conversation", resource_id=conversation_id)
    return conversation


def list_conversations(actor: Actor):
    q = Conversation.query
    if actor.is_admin:
        q = q.filter(Conversation.admin_id == actor.id)
    else:
        q = q.filter(Conversation.startup_id == actor.id)
    return q.order_by(Conversation.last_message_at.desc().nulls_last(), Conversation.id.desc())


def get_or_create_conversation(actor: Actor, *, counterpart_id, sprint_id=None) -> Conversation:
    """Open (or reuse) the conversation between the actor and a counterpart."""
    counterpart_id = parse_int(counterpart_id, "counterpart_id", minimum=1)
    if counterpart_id is None:
        raise MissingFieldError("counterpart_id")
    if actor.is_admin:
        admin_id, startup_id = actor.id, counterpart_id
    else:
        admin_id, startup_id = counterpart_id, actor.id

    conversation = Conversation.query.filter_by(admin_id=admin_id, startup_id=startup_id).first()
    if conversation is not None:
        return conversation

    conversation = Conversation(
        admin_id=admin_id,
        startup_id=startup_id,
        sprint_id=parse_int(sprint_id, "sprint_id"),
    )
    db.session.add(conversation)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return Conversation.query.filter_by(admin_id=admin_id, startup_id=startup_id).one()
    logger.info("Conversation %s opened admin=%s startup=%s", conversation.id, admin_id, startup_id)
    return conversation


def send_message(conversation_id: int, actor: Actor, content: str) -> ChatMessage:
    conversation = get_conversation_for_actor(conversation_id, actor)
    content = (content or "").strip()
    if not content:
        raise MissingFieldError("content")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message exceeds {MAX_MESSAGE_LENGTH} characters",
                              details={"content": "too long"})

    message = ChatMessage(
        conversation_id=conversation.id,
        sender_id=actor.id,
        sender_type=actor.type,
        content=content,
    )
    db.session.add(message)
    conversation.last_message_at = _utcnow()
    db.session.commit()

    get_realtime().publish(conversation_topic(conversation.id), "new_message", message.to_dict())
    return message


def list_messages(conversation_id: int, actor: Actor):
    conversation = get_conversation_for_actor(conversation_id, actor)
    return conversation.messages


def mark_read(conversation_id: int, actor: Actor) -> int:
    """Mark every message from the other participant as read."""
    conversation = get_conversation_for_actor(conversation_id, actor)
    count = (
        ChatMessage.query
        .filter(
            ChatMessage.conversation_id == conversation.id,
            ChatMessage.sender_type != actor.type,
            ChatMessage.read_at.is_(None),
        )
        .update({ChatMessage.read_at: _utcnow()}, synchronize_session="fetch")
    )
    db.session.commit()
    if count:
        get_realtime().publish(conversation_topic(conversation.id), "messages_read", {
            "reader_id": actor.id, "reader_type": actor.type, "count": count,
        })
    return count
