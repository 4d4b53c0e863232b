"""
Startup Backoffice Platform
Chat API Blueprint.

Endpoints:
    GET    /api/v1/conversations                     — the actor's conversations
    POST   /api/v1/conversations                     — open or reuse one
    GET    /api/v1/conversations/<id>/messages       — paginated history
    POST   /api/v1/conversations/<id>/messages       — send
    POST   /api/v1/conversations/<id>/read           — mark counterpart messages read
"""

import logging

from flask import Blueprint, jsonify

from app.auth import current_actor, require_actor
from app.blueprints import json_body, paginate_query
from app.services import chat_service
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

chat_bp = Blueprint("chat", __name__, url_prefix="/api/v1")
register_error_handlers(chat_bp)


@chat_bp.route("/conversations", methods=["GET"])
@require_actor()
def list_conversations():
    items, total = paginate_query(chat_service.list_conversations(current_actor()))
    return jsonify({"items": [c.to_dict() for c in items], "total": total})


@chat_bp.route("/conversations", methods=["POST"])
@require_actor()
def open_conversation():
    data = json_body()
    conversation = chat_service.get_or_create_conversation(
        current_actor(), counterpart_id=data.get("counterpart_id"), sprint_id=data.get("sprint_id"),
    )
    return jsonify(conversation.to_dict()), 201


@chat_bp.route("/conversations/<int:conversation_id>/messages", methods=["GET"])
@require_actor()
def list_messages(conversation_id):
    items, total = paginate_query(chat_service.list_messages(conversation_id, current_actor()))
    return jsonify({"items": [m.to_dict() for m in items], "total": total})


@chat_bp.route("/conversations/<int:conversation_id>/messages", methods=["POST"])
@require_actor()
def send_message(conversation_id):
    message = chat_service.send_message(conversation_id, current_actor(), json_body().get("content"))
    return jsonify(message.to_dict()), 201


@chat_bp.route("/conversations/<int:conversation_id>/read", methods=["POST"])
@require_actor()
def mark_read(conversation_id):
    count = chat_service.mark_read(conversation_id, current_actor())
    return jsonify({"marked_read": count})
