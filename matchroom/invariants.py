"""Consistency assertions for room state."""

from __future__ import annotations

from matchroom.models import MAX_ROOM_PLAYERS
from matchroom.models import ClaimType
from matchroom.models import JoinStatus
from matchroom.models import Room
from matchroom.models import RoomStatus


def _assert_players_canonical(room: Room) -> None:
    if len(room.players) > MAX_ROOM_PLAYERS:
        raise AssertionError("room.players must contain at most 2 slots")
    if len(room.approved_players) > MAX_ROOM_PLAYERS:
        raise AssertionError("room must have at most 2 approved players")

    user_ids = [slot.user_id for slot in room.players]
    if len(user_ids) != len(set(user_ids)):
        raise AssertionError("room.players must not repeat a user")

    if not room.players:
        raise AssertionError("room must keep its creator slot")
    creator = room.players[0]
    if creator.user_id != room.creator_user_id or creator.join_status is not JoinStatus.APPROVED:
        raise AssertionError("room.players[0] must be the approved creator")

    for slot in room.players:
        if slot.join_status is JoinStatus.REJECTED:
            raise AssertionError("rejected slots must be removed")


def _assert_status_shape(room: Room) -> None:
    approved = len(room.approved_players)
    if room.status is RoomStatus.PENDING and approved != 1:
        raise AssertionError("pending room must have exactly one approved player")
    if room.status in (RoomStatus.LIVE, RoomStatus.ENDED, RoomStatus.FINISHED) and approved != 2:
        raise AssertionError(f"{room.status.value} room must have two approved players")
    if room.status is not RoomStatus.PENDING and room.pending_requests:
        raise AssertionError("only pending rooms may hold join requests")

    if room.status is RoomStatus.FINISHED:
        if room.winner is None or not room.is_player(room.winner.user_id):
            raise AssertionError("finished room must name one of its players as winner")
    elif room.winner is not None:
        raise AssertionError("winner is only set on finished rooms")

    if room.status.is_terminal:
        if room.game_ended_at is None:
            raise AssertionError("terminal room must record game_ended_at")
        if room.join_deadline_at is not None or room.code_deadline_at is not None:
            raise AssertionError("terminal room must not hold deadlines")


def _assert_claims_canonical(room: Room) -> None:
    claimants = [claim.user_id for claim in room.claims]
    if len(claimants) != len(set(claimants)):
        raise AssertionError("at most one claim per player")
    for claim in room.claims:
        if claim.room_id != room.room_id:
            raise AssertionError("claim belongs to another room")
        if not room.is_player(claim.user_id):
            raise AssertionError("claims may only come from approved players")
        if claim.claim_type is ClaimType.WIN and not claim.evidence_ref:
            raise AssertionError("win claim must carry evidence")


def assert_room_consistent(room: Room) -> None:
    """Raise AssertionError when ``room`` violates a structural invariant."""
    _assert_players_canonical(room)
    _assert_status_shape(room)
    _assert_claims_canonical(room)


__all__ = ["assert_room_consistent"]
