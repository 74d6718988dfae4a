"""Dependency helpers shared by API routers."""

from __future__ import annotations

from typing import NoReturn

from fastapi import Header

import arena.runtime as runtime
from arena.api.errors import raise_api_error
from arena.core.clock import utc_now
from arena.core.tokens import AccessTokenExpiredError
from arena.core.tokens import AccessTokenInvalidError
from arena.core.tokens import decode_access_token
from arena.rooms.service import Actor
from matchroom.errors import AdminRequired


def raise_token_invalid() -> NoReturn:
    raise_api_error(status_code=401, code="AUTH_TOKEN_INVALID", message="invalid access token")


def raise_token_expired() -> NoReturn:
    raise_api_error(status_code=401, code="AUTH_TOKEN_EXPIRED", message="access token expired")


def actor_from_token(access_token: str) -> Actor:
    """Return the caller asserted by a valid access token."""
    try:
        claims = decode_access_token(access_token, secret=runtime.settings.arena_jwt_secret, now=utc_now())
    except AccessTokenExpiredError:
        raise_token_expired()
    except AccessTokenInvalidError:
        raise_token_invalid()
    return Actor(user_id=int(claims["user_id"]), role=str(claims["role"]))


def require_current_user(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Actor:
    """Read and validate Bearer access token from Authorization header."""
    if authorization is None:
        raise_token_invalid()

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise_token_invalid()
    return actor_from_token(token)


def require_admin(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Actor:
    actor = require_current_user(authorization)
    if not actor.is_admin:
        raise AdminRequired("admin role required", user_id=actor.user_id)
    return actor
