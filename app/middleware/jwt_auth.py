"""
Bearer-token middleware.

Resolves ``Authorization: Bearer <jwt>`` into ``g.actor`` once per request.
A missing, expired or tampered token leaves ``g.actor = None``; endpoints
decide through ``app.auth.require_actor`` whether anonymous callers are
allowed (questionnaire submission is the only such endpoint).
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.services.jwt_service import actor_from_token

logger = logging.getLogger(__name__)

_API_PREFIX = "/api/v1/"
_UNAUTHENTICATED_PREFIXES = ("/api/v1/health",)
_SCHEME = "Bearer "


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization", "")
    if not header.startswith(_SCHEME):
        return None
    return header[len(_SCHEME):].strip() or None


def init_jwt_middleware(app):
    @app.before_request
    def _resolve_actor():
        g.actor = None
        if not request.path.startswith(_API_PREFIX) or request.path.startswith(_UNAUTHENTICATED_PREFIXES):
            return

        token = _bearer_token()
        if token is None:
            return
        try:
            g.actor = actor_from_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired token on %s %s", request.method, request.path)
        except pyjwt.InvalidTokenError as exc:
            logger.warning("Rejected token on %s %s: %s", request.method, request.path, exc)
