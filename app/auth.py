"""
Startup Backoffice Platform
Actor context & role guard.

Provides:
    - ActorRole: the two actor kinds the platform knows (admin, startup)
    - Actor: immutable (id, role) pair resolved once per request by the JWT
      middleware and stored on ``flask.g.actor``
    - require_actor(): decorator rejecting anonymous or wrong-role callers

Services receive an Actor explicitly and never inspect ``g`` themselves.
"""

import functools
import logging
from dataclasses import dataclass
from enum import Enum

from flask import g

from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


class ActorRole(str, Enum):
    ADMIN = "admin"
    STARTUP = "startup"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller. Trusted as given by the identity boundary."""
    id: int
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role is ActorRole.ADMIN

    @property
    def type(self) -> str:
        return self.role.value

    def as_recipient(self) -> dict:
        return {"id": self.id, "type": self.role.value}


def current_actor() -> Actor | None:
    """Return the actor resolved for this request, or None if anonymous."""
    return getattr(g, "actor", None)


def require_actor(*roles: ActorRole):
    """
    Decorator: require an authenticated actor, optionally of given roles.

    Usage:
        @bp.route("/sprints/<int:sprint_id>/status", methods=["POST"])
        @require_actor(ActorRole.ADMIN)
        def set_status(sprint_id):
            ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            actor = current_actor()
            if actor is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")
            if roles and actor.role not in roles:
                logger.info(
                    "Role denied: actor=%s:%s needs=%s",
                    actor.type, actor.id, ",".join(r.value for r in roles),
                )
                return api_error(E.FORBIDDEN, "Insufficient role for this operation")
            return f(*args, **kwargs)
        return decorated
    return decorator
