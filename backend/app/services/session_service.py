# Overview: Service-layer operations for session tokens; issues and verifies signed JWTs.

"""
Session Token Service

WHY: A session token proves "this request comes from user N" and nothing
more. It is a signed JWT (HS256 by default) with sub/iat/exp claims.

Tenant and role are NOT embedded in the token. They are re-resolved from the
membership table on every request (tenant_service.resolve_membership), so a
role change or deactivation takes effect on the caller's very next request
without a re-login.

Expiry is passive: tokens are checked at validation time, there is no
server-side revocation list.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from ..extensions import db
from ..models import User


class InvalidTokenError(Exception):
    """Token missing, malformed, tampered with, or expired."""


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


def _secret() -> str:
    return current_app.config["JWT_SECRET"]


def _algorithm() -> str:
    return current_app.config.get("JWT_ALGORITHM", "HS256")


def issue_token(user_id: int, ttl: timedelta | None = None) -> IssuedToken:
    """
    Sign a session token for user_id.

    ttl defaults to SESSION_TOKEN_TTL_HOURS (72h).
    """
    if ttl is None:
        ttl = timedelta(hours=current_app.config.get("SESSION_TOKEN_TTL_HOURS", 72))

    now = datetime.now(timezone.utc)
    expires_at = now + ttl
    claims = {
        # PyJWT requires sub to be a string
        "sub": str(user_id),
        "iat": now,
        "exp": expires_at,
    }
    token = jwt.encode(claims, _secret(), algorithm=_algorithm())
    return IssuedToken(token=token, expires_at=expires_at)


def decode_token(token: str) -> int:
    """
    Verify signature and expiry; return the user id.

    Raises InvalidTokenError for anything that is not a valid, unexpired
    token signed with our secret.
    """
    try:
        claims = jwt.decode(
            token,
            _secret(),
            algorithms=[_algorithm()],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidTokenError("Token expired")
    except jwt.InvalidTokenError:
        raise InvalidTokenError("Invalid token")

    try:
        return int(claims["sub"])
    except (TypeError, ValueError):
        raise InvalidTokenError("Invalid token subject")


def validate_session(token: str) -> User | None:
    """
    Resolve a bearer token to its User.

    Returns None if the token is invalid/expired or the user no longer exists.
    Membership/tenant checks happen afterwards, in tenant_service.
    """
    try:
        user_id = decode_token(token)
    except InvalidTokenError:
        return None

    return db.session.get(User, user_id)
