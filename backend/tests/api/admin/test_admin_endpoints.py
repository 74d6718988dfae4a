"""Admin REST endpoint tests: disputes, overrides, reporting."""

from __future__ import annotations

from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

from arena.ledger.base import LedgerUnavailable
from arena_testkit import ADMIN
from arena_testkit import CREATOR
from arena_testkit import JOINER
from arena_testkit import PNG_BYTES
from arena_testkit import STARTING_BALANCE
from arena_testkit import bearer

NewClient = Callable[..., TestClient]


def _admin() -> dict[str, str]:
    return bearer(ADMIN.user_id, role="admin")


def _live_room(client: TestClient) -> str:
    room_id = client.post(
        "/api/rooms",
        json={"bet_amount": 100, "ludo_username": "hostplayer"},
        headers=bearer(CREATOR.user_id),
    ).json()["room_id"]
    client.post(f"/api/rooms/{room_id}/join", json={"ludo_username": "guestplayer"}, headers=bearer(JOINER.user_id))
    client.post(
        f"/api/rooms/{room_id}/join-requests/{JOINER.user_id}",
        json={"approve": True},
        headers=bearer(CREATOR.user_id),
    )
    client.put(f"/api/rooms/{room_id}/code", json={"room_code": "LK12345"}, headers=bearer(CREATOR.user_id))
    return room_id


def _claim_win(client: TestClient, room_id: str, user_id: int, username: str) -> None:
    response = client.post(
        f"/api/rooms/{room_id}/claims",
        data={"claim_type": "win", "ludo_username": username},
        files={"evidence": ("win.png", PNG_BYTES, "image/png")},
        headers=bearer(user_id),
    )
    assert response.status_code == 200


def test_dispute_listing_and_resolution(api_client: NewClient) -> None:
    """Input: both players claim win, admin resolves for the joiner -> Output: joiner paid, audit recorded."""
    client = api_client()
    import arena.runtime as runtime

    room_id = _live_room(client)
    _claim_win(client, room_id, CREATOR.user_id, "hostplayer")
    _claim_win(client, room_id, JOINER.user_id, "guestplayer")

    disputes = client.get("/api/admin/disputes", params={"status": "pending"}, headers=_admin()).json()
    assert disputes["total"] == 1
    assert disputes["items"][0]["room_id"] == room_id
    assert disputes["items"][0]["in_dispute"] is True
    assert all(claim["has_evidence"] for claim in disputes["items"][0]["claims"])

    dashboard = client.get("/api/admin/dashboard", headers=_admin()).json()
    assert dashboard["open_disputes"] == 1
    assert dashboard["rooms_by_status"]["ended"] == 1

    claim_id = disputes["items"][0]["claims"][0]["claim_id"]
    evidence = client.get(f"/api/claims/{claim_id}/evidence", headers=_admin())
    assert evidence.status_code == 200
    assert evidence.content == PNG_BYTES

    resolved = client.post(
        f"/api/admin/rooms/{room_id}/resolve-dispute",
        json={"winner_user_id": JOINER.user_id, "admin_notes": "opponent screenshot shows a loss"},
        headers=_admin(),
    )
    assert resolved.status_code == 200
    body = resolved.json()
    assert body["status"] == "finished"
    assert body["room_code"] == "LK12345"
    assert body["winner"]["user_id"] == JOINER.user_id
    assert runtime.ledger.balance(JOINER.user_id) == STARTING_BALANCE + 95

    events = client.get(f"/api/admin/rooms/{room_id}/events", headers=_admin()).json()
    kinds = [event["kind"] for event in events]
    assert kinds[-2:] == ["dispute_resolved", "room_finished"]
    assert "dispute_opened" in kinds

    again = client.post(
        f"/api/admin/rooms/{room_id}/resolve-dispute",
        json={"winner_user_id": CREATOR.user_id},
        headers=_admin(),
    )
    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_RESOLVED"


def test_player_token_cannot_use_admin_routes(api_client: NewClient) -> None:
    client = api_client()
    room_id = _live_room(client)
    for method, path in (
        ("get", "/api/admin/dashboard"),
        ("get", "/api/admin/disputes"),
        ("post", f"/api/admin/rooms/{room_id}/cancel"),
    ):
        response = getattr(client, method)(path, headers=bearer(CREATOR.user_id))
        assert response.status_code == 403
        assert response.json()["code"] == "ADMIN_REQUIRED"


def test_resolve_requires_a_win_claim(api_client: NewClient) -> None:
    client = api_client()
    room_id = _live_room(client)
    _claim_win(client, room_id, CREATOR.user_id, "hostplayer")
    response = client.post(
        f"/api/admin/rooms/{room_id}/resolve-dispute",
        json={"winner_user_id": JOINER.user_id},
        headers=_admin(),
    )
    assert response.status_code == 409
    assert response.json()["code"] == "NO_WIN_CLAIM"


def test_declare_winner_and_admin_cancel(api_client: NewClient) -> None:
    client = api_client()
    import arena.runtime as runtime

    first = _live_room(client)
    declared = client.post(
        f"/api/admin/rooms/{first}/declare-winner",
        json={"winner_user_id": CREATOR.user_id},
        headers=_admin(),
    ).json()
    assert declared["status"] == "finished"

    second = _live_room(client)
    cancelled = client.post(f"/api/admin/rooms/{second}/cancel", json={"reason": "Not Playing"}, headers=_admin())
    assert cancelled.status_code == 200
    assert cancelled.json()["cancellation_reason"] == "Not Playing"
    assert len(cancelled.json()["refunded_players"]) == 2
    assert runtime.ledger.balance(JOINER.user_id) == STARTING_BALANCE - 100

    totals = client.get("/api/admin/dashboard", headers=_admin()).json()
    assert totals["service_charge_collected"] == 5
    assert totals["prizes_paid"] == 195
    assert totals["rooms_by_status"]["cancelled"] == 1


def test_mutual_cancellation_approval(api_client: NewClient) -> None:
    client = api_client()
    room_id = _live_room(client)

    nothing = client.post(f"/api/admin/rooms/{room_id}/approve-cancellation", headers=_admin())
    assert nothing.status_code == 409

    client.post(f"/api/rooms/{room_id}/mutual-cancellation", headers=bearer(JOINER.user_id))
    approved = client.post(f"/api/admin/rooms/{room_id}/approve-cancellation", headers=_admin())
    assert approved.json()["status"] == "cancelled"


def test_status_override_and_admin_code(api_client: NewClient) -> None:
    client = api_client()
    pending_id = client.post(
        "/api/rooms",
        json={"bet_amount": 50, "ludo_username": "hostplayer"},
        headers=bearer(CREATOR.user_id),
    ).json()["room_id"]
    provided = client.put(f"/api/admin/rooms/{pending_id}/code", json={"room_code": "ADM1"}, headers=_admin())
    assert provided.json()["room_code"] == "ADM1"

    illegal = client.put(f"/api/admin/rooms/{pending_id}/status", json={"status": "live"}, headers=_admin())
    assert illegal.status_code == 409

    room_id = _live_room(client)
    ended = client.put(f"/api/admin/rooms/{room_id}/status", json={"status": "ended"}, headers=_admin())
    assert ended.json()["status"] == "ended"

    unknown = client.put(f"/api/admin/rooms/{room_id}/status", json={"status": "paused"}, headers=_admin())
    assert unknown.status_code == 422

    listing = client.get("/api/admin/rooms", params={"status": "ended"}, headers=_admin()).json()
    assert [room["room_id"] for room in listing["items"]] == [room_id]


def test_ledger_outage_returns_retryable_error(api_client: NewClient, monkeypatch: pytest.MonkeyPatch) -> None:
    """Input: ledger down while a claim finishes the room -> Output: 503 + Retry-After, room unchanged."""
    client = api_client()
    import arena.runtime as runtime

    room_id = _live_room(client)

    def _offline(*_args: object) -> bool:
        raise LedgerUnavailable("ledger offline")

    monkeypatch.setattr(runtime.ledger, "credit", _offline)
    response = client.post(
        f"/api/rooms/{room_id}/claims",
        data={"claim_type": "loss", "ludo_username": "guestplayer"},
        headers=bearer(JOINER.user_id),
    )
    assert response.status_code == 503
    assert response.headers["retry-after"] == "5"
    assert response.json()["code"] == "SETTLEMENT_FAILURE"
    assert response.json()["detail"]["settlement_pending"] is True

    detail = client.get(f"/api/admin/rooms/{room_id}", headers=_admin()).json()
    assert detail["status"] == "live"
    assert detail["claims"] == []
