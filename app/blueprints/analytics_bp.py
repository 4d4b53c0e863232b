"""
Startup Backoffice Platform
Analytics Blueprint.

Admin-only dashboard metrics.

Endpoints:
    GET /api/v1/analytics/dashboard?period=30d     full dashboard
    GET /api/v1/analytics/overdue-tasks?limit=20   overdue task list
"""

from flask import Blueprint, jsonify, request

from app.auth import ActorRole, require_actor
from app.services import analytics_service as svc
from app.utils.errors import register_error_handlers

analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/v1/analytics")
register_error_handlers(analytics_bp)


@analytics_bp.route("/dashboard", methods=["GET"])
@require_actor(ActorRole.ADMIN)
def dashboard():
    """Status distributions, overdue tasks and period activity."""
    return jsonify(svc.get_dashboard(request.args.get("period"))), 200


@analytics_bp.route("/overdue-tasks", methods=["GET"])
@require_actor(ActorRole.ADMIN)
def overdue_tasks():
    limit = min(max(request.args.get("limit", 20, type=int), 1), 200)
    return jsonify(svc.get_overdue_tasks(limit)), 200
