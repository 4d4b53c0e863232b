"""
Startup Backoffice Platform
Sprint API Blueprint.

Endpoints:
    POST   /api/v1/sprints                               — admin: create from questionnaire
    GET    /api/v1/sprints                               — list (admin: all, startup: own)
    GET    /api/v1/sprints/<id>                          — detail with history & milestones
    GET    /api/v1/sprints/<id>/history                  — status history
    POST   /api/v1/sprints/<id>/select-package           — startup
    POST   /api/v1/sprints/<id>/documents                — startup
    POST   /api/v1/sprints/<id>/meeting                  — startup or admin
    POST   /api/v1/sprints/<id>/finish                   — startup
    POST   /api/v1/sprints/<id>/status                   — admin override
    POST   /api/v1/sprints/<id>/verify-payment           — admin
    PUT    /api/v1/sprints/<id>/team                     — admin
    POST   /api/v1/sprints/<id>/archive                  — admin
    POST   /api/v1/sprints/<id>/milestones               — admin
    PATCH  /api/v1/sprints/<id>/milestones/<mid>         — admin
"""

import logging

from flask import Blueprint, jsonify, request

from app.auth import ActorRole, current_actor, require_actor
from app.blueprints import json_body, paginate_query
from app.core.exceptions import MissingFieldError
from app.services import sprint_lifecycle as sl
from app.utils.errors import register_error_handlers
from app.utils.helpers import parse_int

logger = logging.getLogger(__name__)

sprint_bp = Blueprint("sprint", __name__, url_prefix="/api/v1")
register_error_handlers(sprint_bp)


# ═════════════════════════════════════════════════════════════════════════════
# Read
# ═════════════════════════════════════════════════════════════════════════════


@sprint_bp.route("/sprints", methods=["GET"])
@require_actor()
def list_sprints():
    query = sl.list_sprints(
        current_actor(),
        status=request.args.get("status"),
        include_archived=request.args.get("include_archived", "false").lower() == "true",
    )
    items, total = paginate_query(query)
    return jsonify({"items": [s.to_dict() for s in items], "total": total})


@sprint_bp.route("/sprints/<int:sprint_id>", methods=["GET"])
@require_actor()
def get_sprint(sprint_id):
    sprint = sl.get_for_actor(sprint_id, current_actor())
    return jsonify(sprint.to_dict(include_history=True))


@sprint_bp.route("/sprints/<int:sprint_id>/history", methods=["GET"])
@require_actor()
def get_history(sprint_id):
    sprint = sl.get_for_actor(sprint_id, current_actor())
    return jsonify([h.to_dict() for h in sprint.status_history])


# ═════════════════════════════════════════════════════════════════════════════
# Startup steps
# ═════════════════════════════════════════════════════════════════════════════


@sprint_bp.route("/sprints/<int:sprint_id>/select-package", methods=["POST"])
@require_actor(ActorRole.STARTUP)
def select_package(sprint_id):
    sprint = sl.select_package(sprint_id, json_body().get("package_id"), current_actor())
    return jsonify(sprint.to_dict())


@sprint_bp.route("/sprints/<int:sprint_id>/documents", methods=["POST"])
@require_actor(ActorRole.STARTUP)
def submit_documents(sprint_id):
    sprint = sl.submit_documents(sprint_id, current_actor(), json_body().get("documents"))
    return jsonify(sprint.to_dict())


@sprint_bp.route("/sprints/<int:sprint_id>/meeting", methods=["POST"])
@require_actor()
def schedule_meeting(sprint_id):
    data = json_body()
    sprint = sl.schedule_meeting(
        sprint_id,
        current_actor(),
        meeting_url=data.get("meeting_url"),
        scheduled_at=data.get("scheduled_at"),
        meeting_type=data.get("meeting_type") or "kickoff",
    )
    return jsonify(sprint.to_dict())


@sprint_bp.route("/sprints/<int:sprint_id>/finish", methods=["POST"])
@require_actor(ActorRole.STARTUP)
def finish_sprint(sprint_id):
    sprint = sl.finish_sprint(sprint_id, current_actor(), json_body().get("note"))
    return jsonify(sprint.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# Admin
# ═════════════════════════════════════════════════════════════════════════════


@sprint_bp.route("/sprints", methods=["POST"])
@require_actor(ActorRole.ADMIN)
def create_sprint():
    data = json_body()
    questionnaire_id = parse_int(data.get("questionnaire_id"), "questionnaire_id", minimum=1)
    if questionnaire_id is None:
        raise MissingFieldError("questionnaire_id")
    sprint = sl.create_sprint_from_questionnaire(
        questionnaire_id,
        current_actor(),
        package_options=data.get("package_options"),
        name=data.get("name"),
        description=data.get("description") or "",
        sprint_type=data.get("type") or "custom",
        estimated_duration=data.get("estimated_duration"),
        milestones=data.get("milestones"),
    )
    return jsonify(sprint.to_dict(include_history=True)), 201


@sprint_bp.route("/sprints/<int:sprint_id>/status", methods=["POST"])
@require_actor(ActorRole.ADMIN)
def set_status(sprint_id):
    data = json_body()
    sprint = sl.set_sprint_status(sprint_id, current_actor(), data.get("status"), data.get("note"))
    return jsonify(sprint.to_dict())


@sprint_bp.route("/sprints/<int:sprint_id>/verify-payment", methods=["POST"])
@require_actor(ActorRole.ADMIN)
def verify_payment(sprint_id):
    sprint = sl.verify_payment(sprint_id, current_actor())
    return jsonify(sprint.to_dict())


@sprint_bp.route("/sprints/<int:sprint_id>/team", methods=["PUT"])
@require_actor(ActorRole.ADMIN)
def assign_team(sprint_id):
    sprint = sl.assign_team(sprint_id, current_actor(), json_body().get("admin_ids"))
    return jsonify(sprint.to_dict())


@sprint_bp.route("/sprints/<int:sprint_id>/archive", methods=["POST"])
@require_actor(ActorRole.ADMIN)
def archive_sprint(sprint_id):
    sprint = sl.archive_sprint(sprint_id, current_actor())
    return jsonify(sprint.to_dict())


@sprint_bp.route("/sprints/<int:sprint_id>/milestones", methods=["POST"])
@require_actor(ActorRole.ADMIN)
def add_milestone(sprint_id):
    milestone = sl.add_milestone(sprint_id, current_actor(), json_body())
    return jsonify(milestone.to_dict()), 201


@sprint_bp.route("/sprints/<int:sprint_id>/milestones/<int:milestone_id>", methods=["PATCH"])
@require_actor(ActorRole.ADMIN)
def update_milestone(sprint_id, milestone_id):
    milestone = sl.update_milestone_status(
        sprint_id, milestone_id, current_actor(), json_body().get("status"),
    )
    return jsonify(milestone.to_dict())
