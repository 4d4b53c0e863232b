"""
Per-blueprint rate limits (Flask-Limiter).

The Limiter in app/__init__.py carries no default limits; each API
blueprint gets its own budget here, keyed by the calling actor.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

# Blueprint name → limit. Questionnaire intake is the only anonymous write.
BLUEPRINT_LIMITS = {
    "questionnaire": "20/minute",
    "chat": "120/minute",
    "sprint": "300/minute",
    "board": "300/minute",
    "analytics": "60/minute",
}
EXEMPT_BLUEPRINTS = ("health",)


def actor_rate_limit_key():
    """`startup:100` for authenticated callers, the client address otherwise."""
    actor = getattr(g, "actor", None)
    if actor is None:
        return request.remote_addr or "unknown"
    return f"{actor.type}:{actor.id}"


def init_rate_limits(app, limiter):
    """Attach BLUEPRINT_LIMITS to registered blueprints; no-op under TESTING."""
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        logger.debug("Rate limiting disabled")
        return

    applied = {}
    for name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(name)
        if bp is None:
            continue
        limiter.limit(limit, key_func=actor_rate_limit_key)(bp)
        applied[name] = limit

    for name in EXEMPT_BLUEPRINTS:
        if name in app.blueprints:
            limiter.exempt(app.blueprints[name])

    logger.info("Rate limits applied: %s", ", ".join(f"{k}={v}" for k, v in applied.items()))
