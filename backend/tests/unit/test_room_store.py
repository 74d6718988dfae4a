"""Room store persistence, versioning and query tests."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from arena.rooms.store import PendingSettlement
from arena.rooms.store import RoomStore
from arena_testkit import T0
from matchroom.errors import ClaimNotFound
from matchroom.errors import ConflictError
from matchroom.errors import RoomNotFound
from matchroom.models import ClaimType
from matchroom.models import JoinStatus
from matchroom.models import Room
from matchroom.models import RoomRules
from matchroom.models import RoomStatus
from matchroom.settlement import LedgerInstruction
from matchroom.settlement import LedgerOp
from matchroom.transitions import DecideJoin
from matchroom.transitions import RequestJoin
from matchroom.transitions import SetRoomCode
from matchroom.transitions import SubmitClaim
from matchroom.transitions import TransitionContext
from matchroom.transitions import open_room
from matchroom.transitions import transition


def _ctx(seconds: float = 0) -> TransitionContext:
    return TransitionContext(now=T0 + timedelta(seconds=seconds), rules=RoomRules(service_rate=Decimal("0.025")))


def _insert(store: RoomStore, room_id: str, *, seconds: float = 0) -> Room:
    result = open_room(room_id=room_id, creator_user_id=101, ludo_username="host", bet_amount=100, ctx=_ctx(seconds))
    with store.transaction(room_id) as tx:
        tx.insert(result.room)
        tx.append_events(room_id, result.room.version, result.events, result.room.created_at)
    return result.room


def _apply(store: RoomStore, room_id: str, action: object, seconds: float) -> Room:
    with store.transaction(room_id) as tx:
        room = tx.load()
        result = transition(room, action, _ctx(seconds))
        tx.save(result.room, expected_version=room.version, settled=result.settles)
        tx.append_events(room_id, result.room.version, result.events, _ctx(seconds).now)
    return result.room


def test_insert_and_load_round_trip(store: RoomStore) -> None:
    """Input: created room -> Output: loaded room equals the inserted one."""
    room = _insert(store, "R1")
    assert store.get("R1") == room


def test_full_state_survives_reload(store: RoomStore) -> None:
    """Input: live room with code and pending win claim -> Output: identical after reload."""
    _insert(store, "R1")
    _apply(store, "R1", RequestJoin(user_id=202, ludo_username="guest"), 5)
    _apply(store, "R1", DecideJoin(actor_id=101, user_id=202, approve=True), 6)
    _apply(store, "R1", SetRoomCode(actor_id=101, code="LK1"), 7)
    expected = _apply(
        store,
        "R1",
        SubmitClaim(user_id=101, claim_id="C1", claim_type=ClaimType.WIN, ludo_username="host", evidence_ref="C1.png"),
        8,
    )

    loaded = store.get("R1")
    assert loaded == expected
    assert loaded.status is RoomStatus.ENDED
    assert [slot.join_status for slot in loaded.players] == [JoinStatus.APPROVED, JoinStatus.APPROVED]
    assert loaded.claims[0].evidence_ref == "C1.png"
    assert store.find_claim("C1").user_id == 101


def test_stale_version_save_conflicts(store: RoomStore) -> None:
    """Input: save with an outdated expected_version -> Output: ConflictError, row unchanged."""
    room = _insert(store, "R1")
    changed = transition(room, RequestJoin(user_id=202, ludo_username="guest"), _ctx(5)).room
    with pytest.raises(ConflictError):
        with store.transaction("R1") as tx:
            tx.save(changed, expected_version=room.version + 1)
    assert store.get("R1").version == room.version


def test_exception_inside_transaction_rolls_back(store: RoomStore) -> None:
    """Input: error raised after save -> Output: stored room keeps the old version."""
    room = _insert(store, "R1")
    changed = transition(room, RequestJoin(user_id=202, ludo_username="guest"), _ctx(5)).room
    with pytest.raises(RuntimeError):
        with store.transaction("R1") as tx:
            tx.save(changed, expected_version=room.version)
            raise RuntimeError("ledger down")
    assert store.get("R1") == room


def test_missing_room_and_claim(store: RoomStore) -> None:
    with pytest.raises(RoomNotFound):
        store.get("NOPE")
    with pytest.raises(ClaimNotFound):
        store.find_claim("NOPE")


def test_list_rooms_pages_newest_first(store: RoomStore) -> None:
    """Input: three rooms, limit 2 -> Output: page 1 has two newest, total 3."""
    for index in range(3):
        _insert(store, f"R{index}", seconds=index)
    first = store.list_rooms(page=1, limit=2)
    second = store.list_rooms(page=2, limit=2)
    assert [room.room_id for room in first.items] == ["R2", "R1"]
    assert [room.room_id for room in second.items] == ["R0"]
    assert first.total == 3
    assert store.list_rooms(status=RoomStatus.LIVE).total == 0


def test_due_room_ids_uses_stored_deadlines(store: RoomStore) -> None:
    """Input: room with 180s join window -> Output: due only at/after the deadline."""
    _insert(store, "R1")
    assert store.due_room_ids(T0 + timedelta(seconds=179)) == []
    assert store.due_room_ids(T0 + timedelta(seconds=180)) == ["R1"]


def test_pending_request_and_membership_queries(store: RoomStore) -> None:
    _insert(store, "R1")
    _apply(store, "R1", RequestJoin(user_id=202, ludo_username="guest"), 5)
    assert [room.room_id for room in store.rooms_with_pending_requests(101)] == ["R1"]
    assert [room.room_id for room in store.rooms_for_user(202)] == ["R1"]
    assert store.rooms_for_user(202, statuses=(RoomStatus.FINISHED,)) == []


def test_events_are_appended_in_order(store: RoomStore) -> None:
    _insert(store, "R1")
    _apply(store, "R1", RequestJoin(user_id=202, ludo_username="guest"), 5)
    events = store.events("R1")
    assert [(event.version, event.kind) for event in events] == [(1, "room_created"), (2, "join_requested")]
    assert events[1].detail == {"ludo_username": "guest"}


def test_status_counts_cover_every_status(store: RoomStore) -> None:
    _insert(store, "R1")
    counts = store.status_counts()
    assert counts == {"pending": 1, "live": 0, "ended": 0, "finished": 0, "cancelled": 0}


def test_room_locks_are_dropped_once_released(store: RoomStore) -> None:
    """Input: many rooms written, one lock taken re-entrantly -> Output: no lock entry left behind."""
    for index in range(5):
        _insert(store, f"R{index}")
        _apply(store, f"R{index}", RequestJoin(user_id=202, ludo_username="guest"), 5)
    assert store.active_lock_count() == 0

    with store.lock_room("R0"):
        with store.transaction("R0") as tx:
            tx.load()
        assert store.active_lock_count() == 1
    assert store.active_lock_count() == 0


def test_pending_settlement_is_stored_until_cleared(store: RoomStore) -> None:
    """Input: recorded settling claim -> Output: same action and instructions read back, gone after clear."""
    room = _insert(store, "R1")
    pending = PendingSettlement(
        room_id="R1",
        base_version=room.version,
        action=SubmitClaim(user_id=202, claim_id="C9", claim_type=ClaimType.LOSS, ludo_username="guest"),
        decided_at=T0 + timedelta(seconds=40),
        service_rate=Decimal("0.025"),
        instructions=(
            LedgerInstruction(op=LedgerOp.CREDIT, user_id=101, amount=195, idempotency_key="R1:prize:101"),
        ),
    )
    with store.transaction("R1") as tx:
        tx.record_pending_settlement(pending)

    assert store.pending_settlement("R1") == pending
    assert store.pending_settlement_room_ids() == ["R1"]
    with store.transaction("R1") as tx:
        tx.clear_pending_settlement()
    assert store.pending_settlement("R1") is None
