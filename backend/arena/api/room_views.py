"""Room view builders used by REST responses."""

from __future__ import annotations

from datetime import datetime

from arena.core.clock import to_utc_iso
from arena.rooms.service import RoomCodeView
from arena.rooms.store import Page
from arena.rooms.store import StoredEvent
from matchroom.deadlines import seconds_remaining
from matchroom.models import Claim
from matchroom.models import ClaimType
from matchroom.models import PlayerSlot
from matchroom.models import Room
from matchroom.models import RoomStatus


def _iso(value: datetime | None) -> str | None:
    return None if value is None else to_utc_iso(value)


def player_detail(slot: PlayerSlot) -> dict[str, object]:
    return {
        "user_id": slot.user_id,
        "ludo_username": slot.ludo_username,
        "joined_at": _iso(slot.joined_at),
        "join_status": slot.join_status.value,
    }


def claim_detail(claim: Claim) -> dict[str, object]:
    return {
        "claim_id": claim.claim_id,
        "room_id": claim.room_id,
        "user_id": claim.user_id,
        "claim_type": claim.claim_type.value,
        "ludo_username": claim.ludo_username,
        "has_evidence": claim.evidence_ref is not None,
        "claim_status": claim.claim_status.value,
        "admin_notes": claim.admin_notes,
        "resolver_id": claim.resolver_id,
        "created_at": _iso(claim.created_at),
        "resolved_at": _iso(claim.resolved_at),
    }


def winner_detail(room: Room) -> dict[str, object] | None:
    if room.winner is None:
        return None
    return {
        "user_id": room.winner.user_id,
        "amount_won": room.winner.amount_won,
        "net_amount": room.winner.net_amount,
    }


def room_summary(room: Room) -> dict[str, object]:
    creator = room.find_slot(room.creator_user_id)
    return {
        "room_id": room.room_id,
        "status": room.status.value,
        "bet_amount": room.bet_amount,
        "creator_user_id": room.creator_user_id,
        "creator_ludo_username": None if creator is None else creator.ludo_username,
        "player_count": len(room.approved_players),
        "has_pending_request": bool(room.pending_requests),
        "created_at": _iso(room.created_at),
    }


def room_detail(room: Room, *, viewer_id: int | None, now: datetime, is_admin: bool = False) -> dict[str, object]:
    """Full room state; the room code is shown to players and admins only."""
    can_see_code = is_admin or (viewer_id is not None and room.is_player(viewer_id))
    return {
        "room_id": room.room_id,
        "status": room.status.value,
        "bet_amount": room.bet_amount,
        "creator_user_id": room.creator_user_id,
        "players": [player_detail(slot) for slot in room.players],
        "room_code": room.room_code if can_see_code else None,
        "has_room_code": room.room_code is not None,
        "created_at": _iso(room.created_at),
        "game_started_at": _iso(room.game_started_at),
        "game_ended_at": _iso(room.game_ended_at),
        "join_deadline_at": _iso(room.join_deadline_at),
        "join_seconds_remaining": seconds_remaining(room.join_deadline_at, now),
        "code_deadline_at": _iso(room.code_deadline_at),
        "code_seconds_remaining": seconds_remaining(room.code_deadline_at, now),
        "winner": winner_detail(room),
        "total_prize_pool": room.total_prize_pool,
        "service_charge": room.service_charge,
        "claims": [claim_detail(claim) for claim in room.claims],
        "in_dispute": room.in_dispute,
        "cancellation_requested_by": sorted(room.cancellation_requests),
        "cancellation_reason": room.cancellation_reason,
        "version": room.version,
    }


def room_code_detail(view: RoomCodeView) -> dict[str, object]:
    return {
        "room_id": view.room_id,
        "code_available": view.available,
        "room_code": view.room_code,
        "room_creator": view.creator_user_id,
    }


def result_detail(room: Room, *, user_id: int) -> dict[str, object]:
    """The caller's view of the outcome, as polled by the result screen."""
    own = room.claim_for(user_id)
    opponent = room.opponent_of(user_id)
    opponent_claim = None if opponent is None else room.claim_for(opponent.user_id)
    is_winner = None
    if room.status is RoomStatus.FINISHED and room.winner is not None:
        is_winner = room.winner.user_id == user_id
    return {
        "room_id": room.room_id,
        "status": room.status.value,
        "is_winner": is_winner,
        "winner": winner_detail(room),
        "my_claim": None if own is None else claim_detail(own),
        "opponent_claimed": opponent_claim is not None,
        "opponent_claim_type": None if opponent_claim is None else opponent_claim.claim_type.value,
        "in_dispute": room.in_dispute,
        "awaiting_opponent": (
            own is not None and own.is_pending and own.claim_type is ClaimType.WIN and opponent_claim is None
        ),
        "cancellation_reason": room.cancellation_reason,
    }


def cancellation_detail(room: Room) -> dict[str, object]:
    return {
        "room_id": room.room_id,
        "status": room.status.value,
        "cancellation_reason": room.cancellation_reason,
        "refunded_players": [
            {"user_id": slot.user_id, "amount": room.bet_amount} for slot in room.approved_players
        ] if room.status is RoomStatus.CANCELLED else [],
    }


def dispute_detail(room: Room) -> dict[str, object]:
    return {
        "room_id": room.room_id,
        "room_status": room.status.value,
        "bet_amount": room.bet_amount,
        "in_dispute": room.in_dispute,
        "players": [player_detail(slot) for slot in room.approved_players],
        "claims": [claim_detail(claim) for claim in room.claims],
    }


def event_detail(event: StoredEvent) -> dict[str, object]:
    return {
        "version": event.version,
        "kind": event.kind,
        "actor_id": event.actor_id,
        "detail": event.detail,
        "created_at": _iso(event.created_at),
    }


def page_detail(page: Page, items: list[dict[str, object]]) -> dict[str, object]:
    return {
        "items": items,
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
    }
