"""Access token issue/verify tests."""

from __future__ import annotations

from datetime import datetime
from datetime import timedelta
from datetime import timezone

import jwt
import pytest

from arena.core.tokens import ALGORITHM
from arena.core.tokens import AccessTokenExpiredError
from arena.core.tokens import AccessTokenInvalidError
from arena.core.tokens import create_access_token
from arena.core.tokens import decode_access_token

SECRET = "unit-test-secret-key-32-bytes-minimum"
NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_token_round_trip_keeps_user_and_role() -> None:
    """Input: admin token for user 7 -> Output: decoded user_id=7, role=admin."""
    token = create_access_token(user_id=7, secret=SECRET, now=NOW, expires_in_seconds=60, role="admin")
    assert decode_access_token(token, secret=SECRET, now=NOW) == {"user_id": 7, "role": "admin"}


def test_role_defaults_to_player_when_claim_missing() -> None:
    """Input: token without role claim -> Output: role=player."""
    exp = int((NOW + timedelta(minutes=1)).timestamp())
    token = jwt.encode({"sub": "8", "exp": exp}, SECRET, algorithm=ALGORITHM)
    assert decode_access_token(token, secret=SECRET, now=NOW)["role"] == "player"


def test_expired_token_is_rejected() -> None:
    """Input: decode at exp -> Output: expired error."""
    token = create_access_token(user_id=7, secret=SECRET, now=NOW, expires_in_seconds=60)
    with pytest.raises(AccessTokenExpiredError):
        decode_access_token(token, secret=SECRET, now=NOW + timedelta(seconds=60))


def test_token_signed_with_other_secret_is_invalid() -> None:
    """Input: token signed by a different secret -> Output: invalid error."""
    token = create_access_token(
        user_id=7,
        secret="another-secret-key-that-is-32-bytes+",
        now=NOW,
        expires_in_seconds=60,
    )
    with pytest.raises(AccessTokenInvalidError):
        decode_access_token(token, secret=SECRET, now=NOW)


@pytest.mark.parametrize(
    "payload",
    [
        {"sub": "abc", "role": "player"},
        {"role": "player"},
        {"sub": "7", "role": "superuser"},
    ],
)
def test_malformed_claims_are_invalid(payload: dict[str, object]) -> None:
    """Input: non-numeric sub or unknown role -> Output: invalid error."""
    claims = {**payload, "exp": int((NOW + timedelta(minutes=1)).timestamp())}
    token = jwt.encode(claims, SECRET, algorithm=ALGORITHM)
    with pytest.raises(AccessTokenInvalidError):
        decode_access_token(token, secret=SECRET, now=NOW)


def test_unknown_role_cannot_be_issued() -> None:
    with pytest.raises(ValueError):
        create_access_token(user_id=7, secret=SECRET, now=NOW, expires_in_seconds=60, role="root")
