"""
JWT Service — verifies access tokens minted by the identity service.

Claims this platform relies on:
    sub   actor id (string-encoded int)
    role  "admin" | "startup"
    type  must be "access"
    exp   expiry; PyJWT enforces it on decode

``generate_access_token`` mints the same shape for local development and
the test-suite; production never issues tokens itself.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from app.auth import Actor, ActorRole

ALGORITHM = "HS256"
TOKEN_TYPE = "access"
DEFAULT_ACCESS_EXPIRES = 900  # seconds


def _signing_key() -> str:
    cfg = current_app.config
    return cfg.get("JWT_SECRET_KEY") or cfg["SECRET_KEY"]


def generate_access_token(actor_id: int, role: ActorRole | str) -> str:
    issued = datetime.now(timezone.utc)
    lifetime = current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)
    claims = {
        "sub": str(actor_id),
        "role": ActorRole(role).value,
        "type": TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(seconds=lifetime),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, _signing_key(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature, expiry and token type; return the claims.

    Raises jwt.ExpiredSignatureError / jwt.InvalidTokenError.
    """
    claims = jwt.decode(token, _signing_key(), algorithms=[ALGORITHM])
    if claims.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError(f"Expected an access token, got type={claims.get('type')!r}")
    return claims


def actor_from_token(token: str) -> Actor:
    claims = decode_access_token(token)
    try:
        return Actor(id=int(claims["sub"]), role=ActorRole(claims.get("role")))
    except (KeyError, TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError(f"Malformed actor claims: {exc}") from exc
