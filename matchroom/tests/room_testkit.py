"""Shared helpers for match room engine tests."""

from __future__ import annotations

from datetime import datetime
from datetime import timedelta
from datetime import timezone
from decimal import Decimal

from matchroom.models import ClaimType
from matchroom.models import Room
from matchroom.models import RoomRules
from matchroom.settlement import LedgerInstruction
from matchroom.settlement import LedgerOp
from matchroom.transitions import DecideJoin
from matchroom.transitions import RequestJoin
from matchroom.transitions import SetRoomCode
from matchroom.transitions import SubmitClaim
from matchroom.transitions import TransitionContext
from matchroom.transitions import TransitionResult
from matchroom.transitions import open_room
from matchroom.transitions import transition

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
CREATOR = 101
JOINER = 202
OUTSIDER = 303
ADMIN = 9001


def make_ctx(seconds: float = 0, service_rate: str = "0.025") -> TransitionContext:
    return TransitionContext(
        now=T0 + timedelta(seconds=seconds),
        rules=RoomRules(min_bet_amount=10, service_rate=Decimal(service_rate)),
    )


class Ledger:
    """Collects instructions from a sequence of transitions."""

    def __init__(self) -> None:
        self.instructions: list[LedgerInstruction] = []

    def apply(self, result: TransitionResult) -> Room:
        self.instructions.extend(result.instructions)
        return result.room

    def total(self, op: LedgerOp) -> int:
        return sum(item.amount for item in self.instructions if item.op is op)

    def keys(self) -> list[str]:
        return [item.idempotency_key for item in self.instructions]


def pending_room(ledger: Ledger | None = None, bet_amount: int = 100) -> Room:
    result = open_room(
        room_id="R-TEST",
        creator_user_id=CREATOR,
        ludo_username="creator",
        bet_amount=bet_amount,
        ctx=make_ctx(),
    )
    if ledger is not None:
        return ledger.apply(result)
    return result.room


def live_room(ledger: Ledger | None = None, bet_amount: int = 100, with_code: bool = True) -> Room:
    ledger = ledger if ledger is not None else Ledger()
    room = pending_room(ledger, bet_amount=bet_amount)
    room = ledger.apply(transition(room, RequestJoin(user_id=JOINER, ludo_username="joiner"), make_ctx(10)))
    room = ledger.apply(transition(room, DecideJoin(actor_id=CREATOR, user_id=JOINER, approve=True), make_ctx(20)))
    if with_code:
        room = ledger.apply(transition(room, SetRoomCode(actor_id=CREATOR, code="LK12345"), make_ctx(30)))
    return room


def claim(user_id: int, claim_type: ClaimType, *, evidence: str | None = None, claim_id: str | None = None) -> SubmitClaim:
    if claim_type is ClaimType.WIN and evidence is None:
        evidence = f"evidence-{user_id}"
    return SubmitClaim(
        user_id=user_id,
        claim_id=claim_id or f"C-{user_id}",
        claim_type=claim_type,
        ludo_username=f"ludo{user_id}",
        evidence_ref=evidence,
    )
