"""Resolution rules for the claim set of one room."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from matchroom.models import ClaimType
from matchroom.models import Room


class OutcomeKind(str, Enum):
    AWAITING = "awaiting"
    AUTO_WIN = "auto_win"
    DISPUTE = "dispute"


@dataclass(frozen=True, slots=True)
class ClaimOutcome:
    kind: OutcomeKind
    winner_user_id: int | None = None
    reason: str = ""


def evaluate_claims(room: Room) -> ClaimOutcome:
    """Decide what the current pending claims of a room imply.

    A lone loss concedes to the opponent. A lone win waits for the opponent or
    an admin. Two matching claims (win/win, loss/loss) are a dispute. A win
    against a loss resolves for the win claimant.
    """
    pending = [claim for claim in room.claims if claim.is_pending]
    if not pending:
        return ClaimOutcome(OutcomeKind.AWAITING, reason="no claims")

    if len(pending) == 1:
        claim = pending[0]
        if claim.claim_type is ClaimType.WIN:
            return ClaimOutcome(OutcomeKind.AWAITING, reason="win claim awaits opponent")
        opponent = room.opponent_of(claim.user_id)
        if opponent is None:
            return ClaimOutcome(OutcomeKind.AWAITING, reason="opponent unknown")
        return ClaimOutcome(OutcomeKind.AUTO_WIN, winner_user_id=opponent.user_id, reason="uncontested loss")

    first, second = pending[0], pending[1]
    if first.claim_type is second.claim_type:
        reason = "both players claim win" if first.claim_type is ClaimType.WIN else "both players claim loss"
        return ClaimOutcome(OutcomeKind.DISPUTE, reason=reason)

    winner = first if first.claim_type is ClaimType.WIN else second
    return ClaimOutcome(OutcomeKind.AUTO_WIN, winner_user_id=winner.user_id, reason="win matched by loss")


__all__ = ["ClaimOutcome", "OutcomeKind", "evaluate_claims"]
