"""Room, player slot and claim types for the match room engine."""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from decimal import Decimal
from enum import Enum

from matchroom.errors import EvidenceRequired

MAX_ROOM_PLAYERS = 2
PLATFORM_ACCOUNT_ID = 0


class RoomStatus(str, Enum):
    PENDING = "pending"
    LIVE = "live"
    ENDED = "ended"
    FINISHED = "finished"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RoomStatus.FINISHED, RoomStatus.CANCELLED)


class JoinStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class ClaimType(str, Enum):
    WIN = "win"
    LOSS = "loss"


class ClaimStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class RoomRules:
    """Platform policy applied by every transition."""

    min_bet_amount: int = 10
    service_rate: Decimal = Decimal("0.05")
    join_timeout: timedelta = timedelta(minutes=3)
    code_timeout: timedelta = timedelta(minutes=3)


@dataclass(slots=True)
class PlayerSlot:
    """One player's membership record inside a room."""

    user_id: int
    ludo_username: str
    joined_at: datetime
    join_status: JoinStatus = JoinStatus.APPROVED


@dataclass(slots=True)
class Claim:
    """A player's self-reported result.

    A win claim without an evidence reference cannot be constructed.
    """

    claim_id: str
    room_id: str
    user_id: int
    claim_type: ClaimType
    ludo_username: str
    created_at: datetime
    evidence_ref: str | None = None
    claim_status: ClaimStatus = ClaimStatus.PENDING
    admin_notes: str | None = None
    resolver_id: int | None = None
    resolved_at: datetime | None = None

    def __post_init__(self) -> None:
        self.claim_type = ClaimType(self.claim_type)
        self.claim_status = ClaimStatus(self.claim_status)
        if self.claim_type is ClaimType.WIN and not self.evidence_ref:
            raise EvidenceRequired("win claim requires evidence", room_id=self.room_id, user_id=self.user_id)

    @property
    def is_pending(self) -> bool:
        return self.claim_status is ClaimStatus.PENDING


@dataclass(slots=True)
class Winner:
    user_id: int
    amount_won: int
    net_amount: int


@dataclass(slots=True)
class Room:
    """Room aggregate state."""

    room_id: str
    bet_amount: int
    creator_user_id: int
    created_at: datetime
    status: RoomStatus = RoomStatus.PENDING
    players: list[PlayerSlot] = field(default_factory=list)
    room_code: str | None = None
    game_started_at: datetime | None = None
    game_ended_at: datetime | None = None
    join_deadline_at: datetime | None = None
    code_deadline_at: datetime | None = None
    winner: Winner | None = None
    total_prize_pool: int | None = None
    service_charge: int | None = None
    claims: list[Claim] = field(default_factory=list)
    cancellation_requests: dict[int, datetime] = field(default_factory=dict)
    cancellation_reason: str | None = None
    version: int = 0

    @property
    def approved_players(self) -> list[PlayerSlot]:
        return [slot for slot in self.players if slot.join_status is JoinStatus.APPROVED]

    @property
    def pending_requests(self) -> list[PlayerSlot]:
        return [slot for slot in self.players if slot.join_status is JoinStatus.PENDING_APPROVAL]

    def find_slot(self, user_id: int) -> PlayerSlot | None:
        for slot in self.players:
            if slot.user_id == user_id:
                return slot
        return None

    def is_player(self, user_id: int) -> bool:
        """Return True when user holds an approved slot."""
        slot = self.find_slot(user_id)
        return slot is not None and slot.join_status is JoinStatus.APPROVED

    def opponent_of(self, user_id: int) -> PlayerSlot | None:
        for slot in self.approved_players:
            if slot.user_id != user_id:
                return slot
        return None

    def claim_for(self, user_id: int) -> Claim | None:
        for claim in self.claims:
            if claim.user_id == user_id:
                return claim
        return None

    @property
    def in_dispute(self) -> bool:
        pending = [claim for claim in self.claims if claim.is_pending]
        if len(pending) != 2:
            return False
        return pending[0].claim_type is pending[1].claim_type


__all__ = [
    "MAX_ROOM_PLAYERS",
    "PLATFORM_ACCOUNT_ID",
    "Claim",
    "ClaimStatus",
    "ClaimType",
    "JoinStatus",
    "PlayerSlot",
    "Room",
    "RoomRules",
    "RoomStatus",
    "Winner",
]
