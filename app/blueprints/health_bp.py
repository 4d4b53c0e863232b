"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — liveness, no dependency calls
    GET /api/v1/health/ready  — load balancer probe
    GET /api/v1/health/live   — database, redis and collaborator backends
"""

import logging
import time

import redis as redis_lib
from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")

APP_NAME = "Startup Backoffice Platform"


def _probe(check, *errors) -> dict:
    """Run ``check()`` and report ok/error with its latency."""
    started = time.perf_counter()
    try:
        check()
    except errors as exc:
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _ping_database():
    db.session.execute(db.text("SELECT 1"))


def _ping_redis():
    redis_lib.from_url(current_app.config["REDIS_URL"], socket_timeout=2).ping()


def _redis_in_use() -> bool:
    cfg = current_app.config
    backends = (cfg.get("REALTIME_BACKEND"), cfg.get("NOTIFICATION_BACKEND"))
    return "redis" in backends and bool(cfg.get("REDIS_URL"))


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "app": APP_NAME}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    database = _probe(_ping_database, SQLAlchemyError)
    if database["status"] != "ok":
        logger.error("Health check: database unreachable: %s", database["detail"])

    # Redis outages degrade realtime/notifications only, not overall health
    if _redis_in_use():
        redis_check = _probe(_ping_redis, redis_lib.RedisError)
    else:
        redis_check = {"status": "skipped", "detail": "no redis-backed collaborator"}

    healthy = database["status"] == "ok"
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": {
            "database": database,
            "redis": redis_check,
            "collaborators": {
                "realtime": current_app.config.get("REALTIME_BACKEND"),
                "notifications": current_app.config.get("NOTIFICATION_BACKEND"),
            },
            "app": {"name": APP_NAME, "debug": current_app.debug, "testing": current_app.testing},
        },
    }), 200 if healthy else 503
