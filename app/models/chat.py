"""
Startup Backoffice Platform
Chat domain models.

Models:
    - Conversation: one channel per (admin, startup) pair
    - ChatMessage: message posted in a conversation
"""

from datetime import datetime, timezone

from app.models import db

SENDER_TYPES = {"admin", "startup"}


def _utcnow():
    return datetime.now(timezone.utc)


class Conversation(db.Model):
    __tablename__ = "conversations"
    __table_args__ = (
        db.UniqueConstraint("admin_id", "startup_id", name="uq_conversation_participants"),
    )

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, nullable=False, index=True)
    startup_id = db.Column(db.Integer, nullable=False, index=True)
    sprint_id = db.Column(
        db.Integer, db.ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True,
    )
    last_message_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    messages = db.relationship(
        "ChatMessage", backref="conversation", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ChatMessage.id",
    )

    @property
    def topic(self):
        return f"conversation:{self.id}"

    def has_participant(self, actor_id, actor_type):
        if actor_type == "admin":
            return self.admin_id == actor_id
        return self.startup_id == actor_id

    def to_dict(self):
        return {
            "id": self.id,
            "admin_id": self.admin_id,
            "startup_id": self.startup_id,
            "sprint_id": self.sprint_id,
            "last_message_at": self.last_message_at.isoformat() if self.last_message_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Conversation {self.id}: admin={self.admin_id} startup={self.startup_id}>"


class ChatMessage(db.Model):
    __tablename__ = "chat_messages"

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(
        db.Integer, db.ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    sender_id = db.Column(db.Integer, nullable=False)
    sender_type = db.Column(db.String(10), nullable=False, comment="admin | startup")
    content = db.Column(db.Text, nullable=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "sender_type": self.sender_type,
            "content": self.content,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ChatMessage {self.id} in {self.conversation_id}>"
