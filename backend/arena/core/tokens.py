"""JWT access token helpers.

Tokens are issued by the platform's auth service; this service only verifies
them. ``create_access_token`` mirrors the issuer for tests and local tooling.
"""

from __future__ import annotations

from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Any

import jwt

ALGORITHM = "HS256"
ROLE_PLAYER = "player"
ROLE_ADMIN = "admin"
ROLES = frozenset({ROLE_PLAYER, ROLE_ADMIN})


class AccessTokenError(ValueError):
    """Base access token error."""


class AccessTokenInvalidError(AccessTokenError):
    """Raised when an access token cannot be decoded or is malformed."""


class AccessTokenExpiredError(AccessTokenError):
    """Raised when an access token is expired."""


def create_access_token(
    *,
    user_id: int,
    secret: str,
    now: datetime,
    expires_in_seconds: int,
    role: str = ROLE_PLAYER,
) -> str:
    """Create a JWT access token containing sub, role and exp."""
    if role not in ROLES:
        raise ValueError(f"unknown role: {role}")
    exp = int((now + timedelta(seconds=expires_in_seconds)).timestamp())
    payload = {"sub": str(user_id), "role": role, "exp": exp}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_access_token(token: str, *, secret: str, now: datetime) -> dict[str, Any]:
    """Decode and validate an access token; returns ``{"user_id", "role"}``."""
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={"verify_exp": False},
        )
    except jwt.InvalidTokenError as exc:
        raise AccessTokenInvalidError("invalid access token") from exc

    exp = payload.get("exp")
    if not isinstance(exp, int):
        raise AccessTokenInvalidError("missing or invalid exp")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.isdigit():
        raise AccessTokenInvalidError("missing or invalid sub")

    role = payload.get("role", ROLE_PLAYER)
    if role not in ROLES:
        raise AccessTokenInvalidError("invalid role")

    now_ts = int(now.astimezone(timezone.utc).timestamp())
    if now_ts >= exp:
        raise AccessTokenExpiredError("access token expired")

    return {"user_id": int(subject), "role": role}
