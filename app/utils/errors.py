"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, register_error_handlers, E

    return api_error(E.UNAUTHENTICATED, "Authentication required")

    bp = Blueprint("sprint", __name__, url_prefix="/api/v1")
    register_error_handlers(bp)

Every error body has the same shape::

    {"error": "<message>", "code": "<ERR_...>", "details": {...}}   # details optional
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import (
    AccessDenied,
    ConflictError,
    InvalidStateTransition,
    NotFoundError,
    PlatformError,
    PreconditionFailed,
    ValidationError,
)
from app.models import db

logger = logging.getLogger(__name__)


class E:
    """Codes for errors produced at the HTTP layer.

    Service exceptions carry their own ``code`` attribute.
    """

    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"
    DATABASE = "ERR_DATABASE"


_CODE_STATUS: dict[str, int] = {
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.DATABASE: 500,
}

# Most specific first; PaymentRequired rides on AccessDenied, AlreadyExists on Conflict
_EXCEPTION_STATUS: tuple[tuple[type[PlatformError], int], ...] = (
    (NotFoundError, 404),
    (ValidationError, 422),
    (InvalidStateTransition, 409),
    (ConflictError, 409),
    (PreconditionFailed, 409),
    (AccessDenied, 403),
)


def api_error(code: str, message: str, *, status: int | None = None,
              details: dict | None = None):
    """Return ``(jsonify(body), status)`` for a Flask view.

    ``status`` defaults to the code's entry in ``_CODE_STATUS``, else 400.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _CODE_STATUS.get(code, 400)


def _platform_handler(status: int):
    def handle(error: PlatformError):
        # A failed operation must not leave a half-written session for the next request
        db.session.rollback()
        logger.info("%s on %s: %s", error.code, request.endpoint, error)
        return api_error(error.code, str(error), status=status, details=error.details)
    return handle


def register_error_handlers(bp):
    """Attach the platform exception → HTTP mapping to a blueprint."""
    for exc_class, status in _EXCEPTION_STATUS:
        bp.register_error_handler(exc_class, _platform_handler(status))

    @bp.errorhandler(SQLAlchemyError)
    def _handle_database(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error endpoint=%s", request.endpoint)
        return api_error(E.DATABASE, "Database error")

    return bp
