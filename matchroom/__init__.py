"""Match room lifecycle engine: pure state transitions, claims and settlement."""

from matchroom.claims import ClaimOutcome
from matchroom.claims import OutcomeKind
from matchroom.claims import evaluate_claims
from matchroom.deadlines import DeadlineKind
from matchroom.deadlines import due_deadline
from matchroom.models import MAX_ROOM_PLAYERS
from matchroom.models import PLATFORM_ACCOUNT_ID
from matchroom.models import Claim
from matchroom.models import ClaimStatus
from matchroom.models import ClaimType
from matchroom.models import JoinStatus
from matchroom.models import PlayerSlot
from matchroom.models import Room
from matchroom.models import RoomRules
from matchroom.models import RoomStatus
from matchroom.models import Winner
from matchroom.settlement import LedgerInstruction
from matchroom.settlement import LedgerOp
from matchroom.transitions import TransitionContext
from matchroom.transitions import TransitionResult
from matchroom.transitions import open_room
from matchroom.transitions import transition

__all__ = [
    "MAX_ROOM_PLAYERS",
    "PLATFORM_ACCOUNT_ID",
    "Claim",
    "ClaimOutcome",
    "ClaimStatus",
    "ClaimType",
    "DeadlineKind",
    "JoinStatus",
    "LedgerInstruction",
    "LedgerOp",
    "OutcomeKind",
    "PlayerSlot",
    "Room",
    "RoomRules",
    "RoomStatus",
    "TransitionContext",
    "TransitionResult",
    "Winner",
    "due_deadline",
    "evaluate_claims",
    "open_room",
    "transition",
]
