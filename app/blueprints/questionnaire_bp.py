"""
Startup Backoffice Platform
Questionnaire API Blueprint.

Endpoints:
    POST   /api/v1/questionnaires                       — submit (anonymous or startup)
    GET    /api/v1/questionnaires                       — list (admin: all, startup: own)
    GET    /api/v1/questionnaires/<id>                  — detail
    PUT    /api/v1/questionnaires/<id>                  — edit & resubmit
    POST   /api/v1/questionnaires/link                  — claim an anonymous submission
    POST   /api/v1/questionnaires/<id>/review           — admin review decision
    POST   /api/v1/questionnaires/<id>/intake-meeting   — admin books discovery call
    POST   /api/v1/questionnaires/<id>/notes            — admin internal note

Anonymous callers identify their record with `temporary_id` (query string
or JSON body). Service layer owns all business logic and commits.
"""

import logging

from flask import Blueprint, jsonify, request

from app.auth import ActorRole, current_actor, require_actor
from app.blueprints import json_body, paginate_query
from app.services import questionnaire_lifecycle as ql
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

questionnaire_bp = Blueprint("questionnaire", __name__, url_prefix="/api/v1")
register_error_handlers(questionnaire_bp)


def _content(data: dict) -> dict:
    return {
        "basic_info": data.get("basic_info"),
        "requirements": data.get("requirements"),
        "service_selection": data.get("service_selection"),
    }


def _serialize(q):
    actor = current_actor()
    return q.to_dict(include_internal=actor is not None and actor.is_admin)


# ═════════════════════════════════════════════════════════════════════════════
# Startup / anonymous
# ═════════════════════════════════════════════════════════════════════════════


@questionnaire_bp.route("/questionnaires", methods=["POST"])
def submit_questionnaire():
    data = json_body()
    q = ql.submit_questionnaire(_content(data), current_actor(), draft=bool(data.get("draft")))
    return jsonify(_serialize(q)), 201


@questionnaire_bp.route("/questionnaires", methods=["GET"])
@require_actor()
def list_questionnaires():
    query = ql.list_questionnaires(current_actor(), status=request.args.get("status"))
    items, total = paginate_query(query)
    return jsonify({"items": [_serialize(q) for q in items], "total": total})


@questionnaire_bp.route("/questionnaires/<int:questionnaire_id>", methods=["GET"])
def get_questionnaire(questionnaire_id):
    q = ql.get_for_actor(questionnaire_id, current_actor(), request.args.get("temporary_id"))
    return jsonify(_serialize(q))


@questionnaire_bp.route("/questionnaires/<int:questionnaire_id>", methods=["PUT"])
def update_questionnaire(questionnaire_id):
    data = json_body()
    q = ql.update_questionnaire(
        questionnaire_id, _content(data), current_actor(),
        temporary_id=data.get("temporary_id") or request.args.get("temporary_id"),
    )
    return jsonify(_serialize(q))


@questionnaire_bp.route("/questionnaires/link", methods=["POST"])
@require_actor(ActorRole.STARTUP)
def link_questionnaire():
    data = json_body()
    q = ql.link_to_owner(data.get("temporary_id"), current_actor().id)
    return jsonify(_serialize(q))


# ═════════════════════════════════════════════════════════════════════════════
# Admin
# ═════════════════════════════════════════════════════════════════════════════


@questionnaire_bp.route("/questionnaires/<int:questionnaire_id>/review", methods=["POST"])
@require_actor(ActorRole.ADMIN)
def review_questionnaire(questionnaire_id):
    data = json_body()
    q = ql.review_questionnaire(
        questionnaire_id,
        current_actor(),
        status=data.get("status"),
        notes=data.get("notes"),
        rejection_reason=data.get("rejection_reason"),
        revision_notes=data.get("revision_notes"),
    )
    return jsonify(_serialize(q))


@questionnaire_bp.route("/questionnaires/<int:questionnaire_id>/intake-meeting", methods=["POST"])
@require_actor(ActorRole.ADMIN)
def schedule_intake_meeting(questionnaire_id):
    q = ql.schedule_intake_meeting(questionnaire_id, current_actor(), json_body().get("note"))
    return jsonify(_serialize(q))


@questionnaire_bp.route("/questionnaires/<int:questionnaire_id>/notes", methods=["POST"])
@require_actor(ActorRole.ADMIN)
def add_internal_note(questionnaire_id):
    q = ql.add_internal_note(questionnaire_id, current_actor(), json_body().get("note"))
    return jsonify(_serialize(q)), 201
