"""Result claim processing: automatic resolution and dispute escalation."""

from __future__ import annotations

import pytest

from matchroom.claims import OutcomeKind
from matchroom.claims import evaluate_claims
from matchroom.errors import AlreadyResolved
from matchroom.errors import EvidenceRequired
from matchroom.errors import InvalidTransition
from matchroom.errors import NotRoomMember
from matchroom.errors import RoomCodeMissing
from matchroom.models import ClaimStatus
from matchroom.models import ClaimType
from matchroom.models import RoomStatus
from matchroom.settlement import LedgerOp
from matchroom.transitions import transition
from room_testkit import CREATOR
from room_testkit import JOINER
from room_testkit import OUTSIDER
from room_testkit import Ledger
from room_testkit import claim
from room_testkit import live_room
from room_testkit import make_ctx
from room_testkit import pending_room


def test_single_loss_claim_declares_opponent_winner() -> None:
    """Input: bet=100, joiner claims loss, 2.5% charge -> Output: creator nets 195."""
    ledger = Ledger()
    room = live_room(ledger)

    result = transition(room, claim(JOINER, ClaimType.LOSS), make_ctx(100))
    finished = ledger.apply(result)

    assert finished.status is RoomStatus.FINISHED
    assert finished.winner is not None
    assert finished.winner.user_id == CREATOR
    assert finished.winner.amount_won == 200
    assert finished.winner.net_amount == 195
    assert finished.total_prize_pool == 200
    assert finished.service_charge == 5
    assert finished.game_ended_at == make_ctx(100).now
    assert finished.claims[0].claim_status is ClaimStatus.VERIFIED
    assert result.settles is True
    assert [(item.op, item.user_id, item.amount) for item in result.instructions] == [
        (LedgerOp.CREDIT, CREATOR, 195),
        (LedgerOp.CREDIT, 0, 5),
    ]


def test_single_win_claim_waits_for_opponent() -> None:
    room = live_room()

    result = transition(room, claim(CREATOR, ClaimType.WIN), make_ctx(100))

    assert result.room.status is RoomStatus.ENDED
    assert result.settles is False
    assert result.instructions == []
    assert evaluate_claims(result.room).kind is OutcomeKind.AWAITING


def test_win_matched_by_loss_resolves_for_win_claimant() -> None:
    ledger = Ledger()
    room = live_room(ledger)
    room = ledger.apply(transition(room, claim(JOINER, ClaimType.WIN), make_ctx(100)))

    result = transition(room, claim(CREATOR, ClaimType.LOSS), make_ctx(110))
    room = ledger.apply(result)

    assert room.status is RoomStatus.FINISHED
    assert room.winner is not None and room.winner.user_id == JOINER
    assert {item.claim_status for item in room.claims} == {ClaimStatus.VERIFIED}
    assert ledger.total(LedgerOp.CREDIT) == 200
    assert sum(1 for item in ledger.instructions if item.user_id == JOINER and item.op is LedgerOp.CREDIT) == 1


@pytest.mark.parametrize("claim_type", [ClaimType.WIN, ClaimType.LOSS])
def test_matching_claims_escalate_to_dispute(claim_type: ClaimType) -> None:
    room = live_room()
    room = transition(room, claim(CREATOR, claim_type), make_ctx(100)).room

    result = transition(room, claim(JOINER, claim_type), make_ctx(110))

    assert result.room.status is RoomStatus.ENDED
    assert result.room.in_dispute is True
    assert result.instructions == []
    assert result.events[-1].kind == "dispute_opened"
    assert all(item.claim_status is ClaimStatus.PENDING for item in result.room.claims)


def test_resubmission_replaces_pending_claim() -> None:
    room = live_room()
    room = transition(room, claim(CREATOR, ClaimType.WIN, claim_id="C-first"), make_ctx(100)).room
    room = transition(room, claim(JOINER, ClaimType.WIN), make_ctx(105)).room
    assert room.in_dispute

    result = transition(room, claim(JOINER, ClaimType.LOSS, claim_id="C-second"), make_ctx(110))

    assert result.room.status is RoomStatus.FINISHED
    assert result.room.winner is not None and result.room.winner.user_id == CREATOR
    assert [item.claim_id for item in result.room.claims] == ["C-first", "C-second"]


def test_win_claim_without_evidence_is_rejected() -> None:
    room = live_room()
    action = claim(CREATOR, ClaimType.WIN, evidence="")
    with pytest.raises(EvidenceRequired):
        transition(room, action, make_ctx(100))
    assert room.claims == []


def test_loss_claim_needs_no_evidence() -> None:
    room = live_room()
    result = transition(room, claim(JOINER, ClaimType.LOSS, evidence=None), make_ctx(100))
    assert result.room.claims[0].evidence_ref is None


def test_claim_requires_room_code() -> None:
    room = live_room(with_code=False)
    with pytest.raises(RoomCodeMissing):
        transition(room, claim(CREATOR, ClaimType.LOSS), make_ctx(100))


def test_claim_requires_live_room_and_membership() -> None:
    with pytest.raises(InvalidTransition):
        transition(pending_room(), claim(CREATOR, ClaimType.LOSS), make_ctx(100))
    with pytest.raises(NotRoomMember):
        transition(live_room(), claim(OUTSIDER, ClaimType.LOSS), make_ctx(100))


def test_claim_after_resolution_is_already_resolved() -> None:
    room = live_room()
    room = transition(room, claim(JOINER, ClaimType.LOSS), make_ctx(100)).room

    with pytest.raises(AlreadyResolved):
        transition(room, claim(JOINER, ClaimType.WIN), make_ctx(110))
    with pytest.raises(AlreadyResolved):
        transition(room, claim(CREATOR, ClaimType.WIN), make_ctx(110))
