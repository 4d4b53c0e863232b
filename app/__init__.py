"""
Startup Backoffice Platform
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")  # in-memory SQLite, memory collaborators
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from app.config import config
from app.middleware.jwt_auth import init_jwt_middleware
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing
from app.models import db
from app.services.notification import init_notifier
from app.services.realtime import init_realtime

logger = logging.getLogger(__name__)

_JSON_METHODS = frozenset({"POST", "PUT", "PATCH"})
_MAX_BODY_BYTES = 2 * 1024 * 1024


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign_keys is switched on per connection."""
    if "sqlite" not in type(dbapi_conn).__module__:
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # per-blueprint limits only
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def create_app(config_name=None):
    """
    Build the backoffice API.

    Args:
        config_name: "development", "testing" or "production".
                     Falls back to the APP_ENV env var, then "development".
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])
    app.config.setdefault("MAX_CONTENT_LENGTH", _MAX_BODY_BYTES)

    configure_logging(app)
    _init_extensions(app)

    # Collaborators live in app.extensions["notifier"] / ["realtime"]
    init_notifier(app)
    init_realtime(app)

    # Timing first so the request id exists before the actor is resolved
    init_request_timing(app)
    init_jwt_middleware(app)
    app.before_request(_require_json_body)

    _init_schema(app, config_name)
    _register_blueprints(app)
    _register_http_errors(app)

    # Limits attach to view functions, so blueprints must already be registered
    init_rate_limits(app, limiter)

    logger.debug("Backoffice app created (config=%s)", config_name)
    return app


# ── Factory steps ────────────────────────────────────────────────────────

def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = [o.strip() for o in (app.config.get("CORS_ORIGINS") or "").split(",") if o.strip()]
    if not origins or origins == ["*"]:
        CORS(app)
    else:
        CORS(app, origins=origins)


def _require_json_body():
    if request.method not in _JSON_METHODS or not request.path.startswith("/api/"):
        return None
    if request.data and "json" not in (request.content_type or ""):
        abort(415, description="Content-Type must be application/json")
    return None


def _init_schema(app, config_name):
    """Create missing tables outside production; production runs `flask db upgrade`."""
    # Model modules register their tables on db.metadata when imported
    from app.models import board, chat, questionnaire, sprint  # noqa: F401

    if config_name == "production":
        return
    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()


def _register_blueprints(app):
    from app.blueprints.analytics_bp import analytics_bp
    from app.blueprints.board_bp import board_bp
    from app.blueprints.chat_bp import chat_bp
    from app.blueprints.health_bp import health_bp
    from app.blueprints.questionnaire_bp import questionnaire_bp
    from app.blueprints.sprint_bp import sprint_bp

    for bp in (health_bp, questionnaire_bp, sprint_bp, board_bp, chat_bp, analytics_bp):
        app.register_blueprint(bp)


def _register_http_errors(app):
    """JSON bodies for errors raised outside the blueprint handlers."""

    def _body(message, code, status, **extra):
        return {"error": message, "code": code, **extra}, status

    app.register_error_handler(
        404, lambda e: _body("Not found", "ERR_NOT_FOUND", 404, path=request.path))
    app.register_error_handler(
        405, lambda e: _body("Method not allowed", "ERR_METHOD_NOT_ALLOWED", 405))
    app.register_error_handler(
        413, lambda e: _body("Request body too large", "ERR_PAYLOAD_TOO_LARGE", 413))
    app.register_error_handler(
        415, lambda e: _body(e.description, "ERR_UNSUPPORTED_MEDIA_TYPE", 415))
    app.register_error_handler(
        429, lambda e: _body("Too many requests", "ERR_RATE_LIMITED", 429, retry_after=e.description))

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("Unhandled server error: %s", e, exc_info=True)
        return _body("Internal server error", "ERR_INTERNAL", 500)
