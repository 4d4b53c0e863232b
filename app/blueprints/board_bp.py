"""
Startup Backoffice Platform
Board & Task API Blueprint.

Endpoints:
    Sprint board          GET    /api/v1/sprints/<sid>/board        (payment-gated)
    Boards                GET/POST /api/v1/boards
                          GET/DELETE /api/v1/boards/<id>
                          GET    /api/v1/boards/<id>/summary
    Columns               POST   /api/v1/boards/<id>/columns
                          PATCH/DELETE /api/v1/boards/<id>/columns/<cid>
    Members               POST   /api/v1/boards/<id>/members
                          PATCH/DELETE /api/v1/boards/<id>/members/<mid>
    Tasks                 GET/POST /api/v1/boards/<id>/tasks
                          GET/PATCH/DELETE /api/v1/tasks/<tid>
                          POST   /api/v1/tasks/<tid>/move
    Collaboration         GET/POST /api/v1/tasks/<tid>/comments
                          PATCH/DELETE /api/v1/tasks/<tid>/comments/<cid>
                          POST   /api/v1/tasks/<tid>/subtasks
                          PATCH/DELETE /api/v1/tasks/<tid>/subtasks/<sid>
                          GET/POST /api/v1/tasks/<tid>/time-logs      (POST admin only)
                          DELETE /api/v1/tasks/<tid>/time-logs/<lid> (admin only)
                          POST/DELETE /api/v1/tasks/<tid>/watchers
                          POST   /api/v1/tasks/<tid>/attachments
"""

import logging

from flask import Blueprint, jsonify, request

from app.auth import ActorRole, current_actor, require_actor
from app.blueprints import json_body, paginate_query
from app.services import board_service, progress, task_ordering
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

board_bp = Blueprint("board", __name__, url_prefix="/api/v1")
register_error_handlers(board_bp)


# ═════════════════════════════════════════════════════════════════════════════
# Boards
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/sprints/<int:sprint_id>/board", methods=["GET"])
@require_actor()
def get_sprint_board(sprint_id):
    board = board_service.get_or_create_board_for_sprint(sprint_id, current_actor())
    return jsonify(board.to_dict(include_columns=True))


@board_bp.route("/boards", methods=["GET"])
@require_actor()
def list_boards():
    items, total = paginate_query(board_service.list_boards(current_actor()))
    return jsonify({"items": [b.to_dict() for b in items], "total": total})


@board_bp.route("/boards", methods=["POST"])
@require_actor(ActorRole.ADMIN)
def create_board():
    data = json_body()
    board = board_service.create_board(
        current_actor(), name=data.get("name"), description=data.get("description") or "",
    )
    return jsonify(board.to_dict(include_columns=True)), 201


@board_bp.route("/boards/<int:board_id>", methods=["GET"])
@require_actor()
def get_board(board_id):
    board = board_service.get_board_for_actor(board_id, current_actor())
    return jsonify(board.to_dict(include_columns=True))


@board_bp.route("/boards/<int:board_id>", methods=["DELETE"])
@require_actor(ActorRole.ADMIN)
def archive_board(board_id):
    board = board_service.archive_board(board_id, current_actor())
    return jsonify(board.to_dict())


@board_bp.route("/boards/<int:board_id>/summary", methods=["GET"])
@require_actor()
def board_summary(board_id):
    board = board_service.get_board(board_id)
    board_service.authorize(board, current_actor(), "can_view_analytics")
    return jsonify(progress.board_summary(board))


# ═════════════════════════════════════════════════════════════════════════════
# Columns
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/boards/<int:board_id>/columns", methods=["POST"])
@require_actor()
def add_column(board_id):
    data = json_body()
    column = board_service.add_column(
        board_id,
        current_actor(),
        name=data.get("name"),
        role=data.get("role"),
        position=data.get("position"),
        wip_limit=data.get("wip_limit", 0),
        color=data.get("color"),
    )
    return jsonify(column.to_dict()), 201


@board_bp.route("/boards/<int:board_id>/columns/<int:column_id>", methods=["PATCH"])
@require_actor()
def update_column(board_id, column_id):
    column = board_service.update_column(board_id, column_id, current_actor(), json_body())
    return jsonify(column.to_dict())


@board_bp.route("/boards/<int:board_id>/columns/<int:column_id>", methods=["DELETE"])
@require_actor()
def archive_column(board_id, column_id):
    column = board_service.archive_column(board_id, column_id, current_actor())
    return jsonify(column.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# Members
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/boards/<int:board_id>/members", methods=["POST"])
@require_actor()
def add_member(board_id):
    data = json_body()
    member = board_service.add_member(
        board_id,
        current_actor(),
        user_id=data.get("user_id"),
        user_type=data.get("user_type"),
        role=data.get("role") or "member",
        permissions=data.get("permissions"),
    )
    return jsonify(member.to_dict()), 201


@board_bp.route("/boards/<int:board_id>/members/<int:member_id>", methods=["PATCH"])
@require_actor()
def update_member(board_id, member_id):
    data = json_body()
    member = board_service.update_member(
        board_id, member_id, current_actor(),
        role=data.get("role"), permissions=data.get("permissions"),
    )
    return jsonify(member.to_dict())


@board_bp.route("/boards/<int:board_id>/members/<int:member_id>", methods=["DELETE"])
@require_actor()
def remove_member(board_id, member_id):
    board_service.remove_member(board_id, member_id, current_actor())
    return "", 204


# ═════════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/boards/<int:board_id>/tasks", methods=["GET"])
@require_actor()
def list_tasks(board_id):
    column_id = request.args.get("column_id", type=int)
    tasks = task_ordering.list_tasks(board_id, current_actor(), column_id=column_id).all()
    return jsonify([t.to_dict() for t in tasks])


@board_bp.route("/boards/<int:board_id>/tasks", methods=["POST"])
@require_actor()
def create_task(board_id):
    task = task_ordering.create_task(board_id, current_actor(), json_body())
    return jsonify(task.to_dict()), 201


@board_bp.route("/tasks/<int:task_id>", methods=["GET"])
@require_actor()
def get_task(task_id):
    actor = current_actor()
    task = task_ordering.get_task_for_actor(task_id, actor)
    result = task.to_dict(include_details=True)
    result["comments"] = [c.to_dict() for c in task_ordering.list_comments(task_id, actor)]
    return jsonify(result)


@board_bp.route("/tasks/<int:task_id>", methods=["PATCH"])
@require_actor()
def update_task(task_id):
    task = task_ordering.update_task(task_id, current_actor(), json_body())
    return jsonify(task.to_dict())


@board_bp.route("/tasks/<int:task_id>/move", methods=["POST"])
@require_actor()
def move_task(task_id):
    data = json_body()
    task = task_ordering.move_task(
        task_id, current_actor(), column_id=data.get("column_id"), position=data.get("position"),
    )
    return jsonify(task.to_dict())


@board_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
@require_actor()
def archive_task(task_id):
    task = task_ordering.archive_task(task_id, current_actor())
    return jsonify(task.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# Collaboration
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/tasks/<int:task_id>/comments", methods=["GET"])
@require_actor()
def list_comments(task_id):
    comments = task_ordering.list_comments(task_id, current_actor())
    return jsonify([c.to_dict() for c in comments])


@board_bp.route("/tasks/<int:task_id>/comments", methods=["POST"])
@require_actor()
def add_comment(task_id):
    data = json_body()
    comment = task_ordering.add_comment(
        task_id,
        current_actor(),
        content=data.get("content"),
        is_internal=bool(data.get("is_internal")),
        mentions=data.get("mentions"),
    )
    return jsonify(comment.to_dict()), 201


@board_bp.route("/tasks/<int:task_id>/watchers", methods=["POST"])
@require_actor()
def watch_task(task_id):
    data = json_body()
    task = task_ordering.watch_task(
        task_id, current_actor(), user_id=data.get("user_id"), user_type=data.get("user_type"),
    )
    return jsonify(task.to_dict())


@board_bp.route("/tasks/<int:task_id>/watchers", methods=["DELETE"])
@require_actor()
def unwatch_task(task_id):
    data = json_body()
    task = task_ordering.unwatch_task(
        task_id, current_actor(), user_id=data.get("user_id"), user_type=data.get("user_type"),
    )
    return jsonify(task.to_dict())


@board_bp.route("/tasks/<int:task_id>/attachments", methods=["POST"])
@require_actor()
def add_attachment(task_id):
    data = json_body()
    task = task_ordering.add_attachment(
        task_id, current_actor(), name=data.get("name"), url=data.get("url"),
    )
    return jsonify(task.to_dict()), 201


@board_bp.route("/tasks/<int:task_id>/comments/<int:comment_id>", methods=["PATCH"])
@require_actor()
def update_comment(task_id, comment_id):
    comment = task_ordering.update_comment(
        task_id, comment_id, current_actor(), content=json_body().get("content"),
    )
    return jsonify(comment.to_dict())


@board_bp.route("/tasks/<int:task_id>/comments/<int:comment_id>", methods=["DELETE"])
@require_actor()
def delete_comment(task_id, comment_id):
    task_ordering.delete_comment(task_id, comment_id, current_actor())
    return "", 204


# ═════════════════════════════════════════════════════════════════════════════
# Subtasks & time logs
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/tasks/<int:task_id>/subtasks", methods=["POST"])
@require_actor()
def add_subtask(task_id):
    subtask = task_ordering.add_subtask(task_id, current_actor(), json_body())
    return jsonify(subtask.to_dict()), 201


@board_bp.route("/tasks/<int:task_id>/subtasks/<int:subtask_id>", methods=["PATCH"])
@require_actor()
def update_subtask(task_id, subtask_id):
    subtask = task_ordering.update_subtask(task_id, subtask_id, current_actor(), json_body())
    return jsonify(subtask.to_dict())


@board_bp.route("/tasks/<int:task_id>/subtasks/<int:subtask_id>", methods=["DELETE"])
@require_actor()
def delete_subtask(task_id, subtask_id):
    task_ordering.delete_subtask(task_id, subtask_id, current_actor())
    return "", 204


@board_bp.route("/tasks/<int:task_id>/time-logs", methods=["GET"])
@require_actor()
def list_time_logs(task_id):
    logs = task_ordering.list_time_logs(task_id, current_actor())
    return jsonify({
        "items": [entry.to_dict() for entry in logs],
        "total_hours": round(sum(entry.hours for entry in logs), 2),
    })


@board_bp.route("/tasks/<int:task_id>/time-logs", methods=["POST"])
@require_actor(ActorRole.ADMIN)
def log_time(task_id):
    data = json_body()
    entry = task_ordering.log_time(
        task_id,
        current_actor(),
        hours=data.get("hours"),
        description=data.get("description"),
        log_date=data.get("log_date"),
    )
    return jsonify(entry.to_dict()), 201


@board_bp.route("/tasks/<int:task_id>/time-logs/<int:log_id>", methods=["DELETE"])
@require_actor(ActorRole.ADMIN)
def delete_time_log(task_id, log_id):
    task = task_ordering.delete_time_log(task_id, log_id, current_actor())
    return jsonify({"task_id": task.id, "total_hours": task.total_hours})
