"""Access token handling on the REST surface."""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta

from fastapi.testclient import TestClient

from arena.core.clock import utc_now
from arena.core.tokens import create_access_token
from arena_testkit import CREATOR
from arena_testkit import TEST_JWT_SECRET
from arena_testkit import bearer

NewClient = Callable[..., TestClient]


def test_missing_token_is_401(api_client: NewClient) -> None:
    """Input: no Authorization header -> Output: 401 AUTH_TOKEN_INVALID payload."""
    client = api_client()
    response = client.get("/api/rooms")
    assert response.status_code == 401
    assert response.json() == {"code": "AUTH_TOKEN_INVALID", "message": "invalid access token", "detail": {}}


def test_non_bearer_scheme_is_401(api_client: NewClient) -> None:
    client = api_client()
    response = client.get("/api/rooms", headers={"Authorization": "Basic abc"})
    assert response.status_code == 401


def test_foreign_signature_is_401(api_client: NewClient) -> None:
    client = api_client()
    headers = bearer(CREATOR.user_id, secret="some-other-issuer-secret-32-bytes-long")
    response = client.get("/api/rooms", headers=headers)
    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_TOKEN_INVALID"


def test_expired_token_is_401(api_client: NewClient) -> None:
    """Input: token that expired an hour ago -> Output: 401 AUTH_TOKEN_EXPIRED."""
    client = api_client()
    token = create_access_token(
        user_id=CREATOR.user_id,
        secret=TEST_JWT_SECRET,
        now=utc_now() - timedelta(hours=2),
        expires_in_seconds=3600,
    )
    response = client.get("/api/rooms", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_TOKEN_EXPIRED"


def test_health_needs_no_token(api_client: NewClient) -> None:
    client = api_client()
    assert client.get("/api/health").json() == {"status": "ok"}
