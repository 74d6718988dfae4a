"""Settlement arithmetic and ledger instructions for terminal rooms."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP
from decimal import Decimal
from enum import Enum

from matchroom.errors import InvalidAmount
from matchroom.models import PLATFORM_ACCOUNT_ID
from matchroom.models import Room
from matchroom.models import RoomStatus


class LedgerOp(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"
    REFUND = "refund"


@dataclass(frozen=True, slots=True)
class LedgerInstruction:
    """One money movement the ledger must apply exactly once."""

    op: LedgerOp
    user_id: int
    amount: int
    idempotency_key: str


@dataclass(frozen=True, slots=True)
class PrizeBreakdown:
    total_prize_pool: int
    service_charge: int
    net_amount: int


def idempotency_key(room_id: str, kind: str, user_id: int | None = None) -> str:
    """Derive the ledger key for one operation on one room."""
    if user_id is None:
        return f"{room_id}:{kind}"
    return f"{room_id}:{kind}:{user_id}"


def compute_prize(bet_amount: int, service_rate: Decimal) -> PrizeBreakdown:
    """Split the pool of two equal wagers into service charge and winner net."""
    if bet_amount <= 0:
        raise InvalidAmount("bet amount must be positive", bet_amount=bet_amount)
    if not Decimal(0) <= service_rate < Decimal(1):
        raise InvalidAmount("service rate must be in [0, 1)", service_rate=str(service_rate))

    total_prize_pool = 2 * bet_amount
    service_charge = int((Decimal(total_prize_pool) * service_rate).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return PrizeBreakdown(
        total_prize_pool=total_prize_pool,
        service_charge=service_charge,
        net_amount=total_prize_pool - service_charge,
    )


def wager_debit(room_id: str, user_id: int, bet_amount: int) -> LedgerInstruction:
    return LedgerInstruction(
        op=LedgerOp.DEBIT,
        user_id=user_id,
        amount=bet_amount,
        idempotency_key=idempotency_key(room_id, "wager", user_id),
    )


def finish_instructions(room: Room, breakdown: PrizeBreakdown, winner_user_id: int) -> list[LedgerInstruction]:
    """Credit the winner's net prize and the platform's service charge."""
    instructions = [
        LedgerInstruction(
            op=LedgerOp.CREDIT,
            user_id=winner_user_id,
            amount=breakdown.net_amount,
            idempotency_key=idempotency_key(room.room_id, "prize", winner_user_id),
        )
    ]
    if breakdown.service_charge > 0:
        instructions.append(
            LedgerInstruction(
                op=LedgerOp.CREDIT,
                user_id=PLATFORM_ACCOUNT_ID,
                amount=breakdown.service_charge,
                idempotency_key=idempotency_key(room.room_id, "service_charge"),
            )
        )
    return instructions


def refund_instructions(room: Room) -> list[LedgerInstruction]:
    """Refund every committed wager; only approved players have been debited."""
    return [
        LedgerInstruction(
            op=LedgerOp.REFUND,
            user_id=slot.user_id,
            amount=room.bet_amount,
            idempotency_key=idempotency_key(room.room_id, "refund", slot.user_id),
        )
        for slot in room.approved_players
    ]


def settlement_summary(room: Room) -> dict[str, object]:
    """Return the settlement payload of a terminal room."""
    if not room.status.is_terminal:
        raise ValueError("room is not settled")

    payload: dict[str, object] = {
        "room_id": room.room_id,
        "status": room.status.value,
        "bet_amount": room.bet_amount,
        "total_prize_pool": room.total_prize_pool,
        "service_charge": room.service_charge,
    }
    if room.status is RoomStatus.FINISHED and room.winner is not None:
        payload["winner"] = {
            "user_id": room.winner.user_id,
            "amount_won": room.winner.amount_won,
            "net_amount": room.winner.net_amount,
        }
    else:
        payload["refunds"] = [
            {"user_id": slot.user_id, "amount": room.bet_amount} for slot in room.approved_players
        ]
        payload["cancellation_reason"] = room.cancellation_reason
    return payload


def ledger_totals(instructions: list[LedgerInstruction]) -> dict[LedgerOp, int]:
    totals = {op: 0 for op in LedgerOp}
    for instruction in instructions:
        totals[instruction.op] += instruction.amount
    return totals


__all__ = [
    "LedgerInstruction",
    "LedgerOp",
    "PrizeBreakdown",
    "compute_prize",
    "finish_instructions",
    "idempotency_key",
    "ledger_totals",
    "refund_instructions",
    "settlement_summary",
    "wager_debit",
]
