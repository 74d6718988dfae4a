"""The authoritative state-transition function for match rooms.

Every mutation of a room, whether it comes from a player, an admin or the
timeout supervisor, is expressed as an action and applied by
:func:`transition`. The function works on a copy: either the whole action
applies and a new room is returned, or an error is raised and the input room
is untouched.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Any, Callable, Union

from matchroom.claims import OutcomeKind
from matchroom.claims import evaluate_claims
from matchroom.deadlines import due_deadline
from matchroom.deadlines import timeout_reason
from matchroom.errors import AlreadyMember
from matchroom.errors import AlreadyResolved
from matchroom.errors import BelowMinimumBet
from matchroom.errors import InvalidAmount
from matchroom.errors import InvalidIdentifier
from matchroom.errors import InvalidSlot
from matchroom.errors import InvalidTransition
from matchroom.errors import NoWinClaim
from matchroom.errors import NotCreator
from matchroom.errors import NotRoomMember
from matchroom.errors import RoomCodeMissing
from matchroom.errors import RoomFull
from matchroom.errors import RoomNotJoinable
from matchroom.invariants import assert_room_consistent
from matchroom.models import MAX_ROOM_PLAYERS
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
from matchroom.settlement import compute_prize
from matchroom.settlement import finish_instructions
from matchroom.settlement import refund_instructions
from matchroom.settlement import wager_debit

MAX_ROOM_CODE_LENGTH = 32
MUTUAL_CANCELLATION_REASON = "mutual cancellation"
ADMIN_MUTUAL_CANCELLATION_REASON = "mutual cancellation approved by admin"

# Open statuses only move forward along this order.
_OPEN_STATUS_RANK = {RoomStatus.PENDING: 0, RoomStatus.LIVE: 1, RoomStatus.ENDED: 2}


@dataclass(frozen=True, slots=True)
class TransitionContext:
    now: datetime
    rules: RoomRules = field(default_factory=RoomRules)


@dataclass(frozen=True, slots=True)
class TransitionEvent:
    kind: str
    actor_id: int | None
    detail: dict[str, Any]


@dataclass(slots=True)
class TransitionResult:
    """Outcome of one action: the new room plus its side effects."""

    room: Room
    previous_status: RoomStatus | None = None
    changed: bool = False
    settles: bool = False
    events: list[TransitionEvent] = field(default_factory=list)
    instructions: list[LedgerInstruction] = field(default_factory=list)

    def record(self, kind: str, actor_id: int | None, **detail: Any) -> None:
        self.changed = True
        self.events.append(TransitionEvent(kind=kind, actor_id=actor_id, detail=detail))


@dataclass(frozen=True, slots=True)
class RequestJoin:
    user_id: int
    ludo_username: str


@dataclass(frozen=True, slots=True)
class DecideJoin:
    actor_id: int
    user_id: int
    approve: bool


@dataclass(frozen=True, slots=True)
class SetRoomCode:
    actor_id: int
    code: str
    by_admin: bool = False


@dataclass(frozen=True, slots=True)
class SubmitClaim:
    user_id: int
    claim_id: str
    claim_type: ClaimType
    ludo_username: str
    evidence_ref: str | None = None


@dataclass(frozen=True, slots=True)
class RequestMutualCancellation:
    user_id: int


@dataclass(frozen=True, slots=True)
class CancelRoom:
    actor_id: int
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class ExpireDeadline:
    """Supervisor tick for one room; a no-op unless a stored deadline passed."""


@dataclass(frozen=True, slots=True)
class ResolveDispute:
    admin_id: int
    winner_user_id: int
    admin_notes: str | None = None


@dataclass(frozen=True, slots=True)
class DeclareWinner:
    admin_id: int
    winner_user_id: int
    admin_notes: str | None = None


@dataclass(frozen=True, slots=True)
class AdminCancel:
    admin_id: int
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class ApproveMutualCancellation:
    admin_id: int


@dataclass(frozen=True, slots=True)
class OverrideStatus:
    admin_id: int
    status: RoomStatus


RoomAction = Union[
    RequestJoin,
    DecideJoin,
    SetRoomCode,
    SubmitClaim,
    RequestMutualCancellation,
    CancelRoom,
    ExpireDeadline,
    ResolveDispute,
    DeclareWinner,
    AdminCancel,
    ApproveMutualCancellation,
    OverrideStatus,
]


def open_room(
    *,
    room_id: str,
    creator_user_id: int,
    ludo_username: str,
    bet_amount: int,
    ctx: TransitionContext,
) -> TransitionResult:
    """Build a new pending room and the debit of the creator's wager."""
    if isinstance(bet_amount, bool) or not isinstance(bet_amount, int) or bet_amount <= 0:
        raise InvalidAmount("bet amount must be a positive integer", bet_amount=bet_amount)
    if bet_amount < ctx.rules.min_bet_amount:
        raise BelowMinimumBet(
            f"bet amount must be at least {ctx.rules.min_bet_amount}",
            bet_amount=bet_amount,
            min_bet_amount=ctx.rules.min_bet_amount,
        )

    room = Room(
        room_id=room_id,
        bet_amount=bet_amount,
        creator_user_id=creator_user_id,
        created_at=ctx.now,
        players=[PlayerSlot(user_id=creator_user_id, ludo_username=ludo_username, joined_at=ctx.now)],
        join_deadline_at=ctx.now + ctx.rules.join_timeout,
        version=1,
    )
    assert_room_consistent(room)
    result = TransitionResult(room=room)
    result.instructions.append(wager_debit(room_id, creator_user_id, bet_amount))
    result.record("room_created", creator_user_id, bet_amount=bet_amount)
    return result


def transition(room: Room, action: RoomAction, ctx: TransitionContext) -> TransitionResult:
    """Apply ``action`` to ``room`` and return the resulting room and side effects."""
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise TypeError(f"unsupported room action: {type(action).__name__}")

    draft = deepcopy(room)
    result = TransitionResult(room=draft, previous_status=room.status)
    handler(draft, action, ctx, result)
    if not result.changed:
        result.room = room
        return result

    draft.version += 1
    assert_room_consistent(draft)
    return result


def _require_not_terminal(room: Room) -> None:
    if room.status.is_terminal:
        raise AlreadyResolved(
            f"room is already {room.status.value}",
            room_id=room.room_id,
            status=room.status.value,
        )


def _require_in_play(room: Room) -> None:
    _require_not_terminal(room)
    if room.status not in (RoomStatus.LIVE, RoomStatus.ENDED):
        raise InvalidTransition(
            "room is not live",
            room_id=room.room_id,
            status=room.status.value,
        )


def _require_creator(room: Room, actor_id: int) -> None:
    if actor_id != room.creator_user_id:
        raise NotCreator("only the room creator may do this", room_id=room.room_id, user_id=actor_id)


def _require_player(room: Room, user_id: int) -> None:
    if not room.is_player(user_id):
        raise NotRoomMember("user is not a room player", room_id=room.room_id, user_id=user_id)


def _clear_open_state(room: Room) -> None:
    room.join_deadline_at = None
    room.code_deadline_at = None
    room.cancellation_requests.clear()


def _close_claims(
    room: Room,
    *,
    now: datetime,
    winner_user_id: int | None,
    resolver_id: int | None,
    admin_notes: str | None,
) -> None:
    """Resolve every pending claim against the final outcome.

    Claims agreeing with the winner are verified, the rest rejected. With no
    winner (cancellation) all pending claims are rejected.
    """
    for claim in room.claims:
        if not claim.is_pending:
            continue
        agrees = winner_user_id is not None and (
            (claim.user_id == winner_user_id and claim.claim_type is ClaimType.WIN)
            or (claim.user_id != winner_user_id and claim.claim_type is ClaimType.LOSS)
        )
        claim.claim_status = ClaimStatus.VERIFIED if agrees else ClaimStatus.REJECTED
        claim.resolved_at = now
        claim.resolver_id = resolver_id
        if admin_notes is not None:
            claim.admin_notes = admin_notes


def _finish(
    room: Room,
    *,
    winner_user_id: int,
    ctx: TransitionContext,
    result: TransitionResult,
    actor_id: int | None,
    via: str,
    admin_notes: str | None = None,
) -> None:
    breakdown = compute_prize(room.bet_amount, ctx.rules.service_rate)
    _close_claims(
        room,
        now=ctx.now,
        winner_user_id=winner_user_id,
        resolver_id=actor_id,
        admin_notes=admin_notes,
    )
    room.status = RoomStatus.FINISHED
    room.game_ended_at = ctx.now
    room.winner = Winner(
        user_id=winner_user_id,
        amount_won=breakdown.total_prize_pool,
        net_amount=breakdown.net_amount,
    )
    room.total_prize_pool = breakdown.total_prize_pool
    room.service_charge = breakdown.service_charge
    _clear_open_state(room)

    result.settles = True
    result.instructions.extend(finish_instructions(room, breakdown, winner_user_id))
    result.record(
        "room_finished",
        actor_id,
        winner_user_id=winner_user_id,
        net_amount=breakdown.net_amount,
        service_charge=breakdown.service_charge,
        via=via,
    )


def _cancel(
    room: Room,
    *,
    reason: str,
    ctx: TransitionContext,
    result: TransitionResult,
    actor_id: int | None,
) -> None:
    room.players = room.approved_players
    _close_claims(room, now=ctx.now, winner_user_id=None, resolver_id=actor_id, admin_notes=None)
    room.status = RoomStatus.CANCELLED
    room.game_ended_at = ctx.now
    room.cancellation_reason = reason
    room.total_prize_pool = 0
    room.service_charge = 0
    _clear_open_state(room)

    result.settles = True
    result.instructions.extend(refund_instructions(room))
    result.record("room_cancelled", actor_id, reason=reason)


def _request_join(room: Room, action: RequestJoin, ctx: TransitionContext, result: TransitionResult) -> None:
    if room.status.is_terminal:
        raise RoomNotJoinable("room is closed", room_id=room.room_id, status=room.status.value)
    if room.find_slot(action.user_id) is not None:
        raise AlreadyMember("user already holds a slot in this room", room_id=room.room_id, user_id=action.user_id)
    if len(room.approved_players) >= MAX_ROOM_PLAYERS:
        raise RoomFull("room is full", room_id=room.room_id)
    if room.status is not RoomStatus.PENDING:
        raise RoomNotJoinable("room is not accepting players", room_id=room.room_id, status=room.status.value)
    if len(room.players) >= MAX_ROOM_PLAYERS:
        raise RoomFull("room already has a join request awaiting approval", room_id=room.room_id)

    room.players.append(
        PlayerSlot(
            user_id=action.user_id,
            ludo_username=action.ludo_username,
            joined_at=ctx.now,
            join_status=JoinStatus.PENDING_APPROVAL,
        )
    )
    result.record("join_requested", action.user_id, ludo_username=action.ludo_username)


def _decide_join(room: Room, action: DecideJoin, ctx: TransitionContext, result: TransitionResult) -> None:
    _require_creator(room, action.actor_id)
    slot = room.find_slot(action.user_id)
    if slot is None or slot.join_status is not JoinStatus.PENDING_APPROVAL:
        raise InvalidSlot("no pending join request for user", room_id=room.room_id, user_id=action.user_id)
    if room.status is not RoomStatus.PENDING:
        raise RoomNotJoinable("room is not accepting players", room_id=room.room_id, status=room.status.value)

    if not action.approve:
        room.players.remove(slot)
        result.record("join_rejected", action.actor_id, user_id=action.user_id)
        return

    if len(room.approved_players) >= MAX_ROOM_PLAYERS:
        raise RoomFull("room is full", room_id=room.room_id)

    slot.join_status = JoinStatus.APPROVED
    room.players = room.approved_players
    room.status = RoomStatus.LIVE
    room.game_started_at = ctx.now
    room.join_deadline_at = None
    if room.room_code is None:
        room.code_deadline_at = ctx.now + ctx.rules.code_timeout

    result.instructions.append(wager_debit(room.room_id, slot.user_id, room.bet_amount))
    result.record("join_approved", action.actor_id, user_id=action.user_id)


def _set_room_code(room: Room, action: SetRoomCode, ctx: TransitionContext, result: TransitionResult) -> None:
    if not action.by_admin:
        _require_creator(room, action.actor_id)
    _require_not_terminal(room)
    if room.status not in (RoomStatus.PENDING, RoomStatus.LIVE):
        raise InvalidTransition(
            "room code can only change before results are claimed",
            room_id=room.room_id,
            status=room.status.value,
        )

    code = action.code.strip()
    if not code or len(code) > MAX_ROOM_CODE_LENGTH:
        raise InvalidIdentifier(
            f"room code must be 1-{MAX_ROOM_CODE_LENGTH} characters",
            room_id=room.room_id,
        )
    if code == room.room_code:
        return

    room.room_code = code
    room.code_deadline_at = None
    result.record("room_code_set", action.actor_id, by_admin=action.by_admin)


def _submit_claim(room: Room, action: SubmitClaim, ctx: TransitionContext, result: TransitionResult) -> None:
    _require_player(room, action.user_id)
    _require_in_play(room)
    if room.room_code is None:
        raise RoomCodeMissing("room code has not been shared yet", room_id=room.room_id)

    existing = room.claim_for(action.user_id)
    if existing is not None and not existing.is_pending:
        raise AlreadyResolved("claim was already resolved", room_id=room.room_id, user_id=action.user_id)

    claim = Claim(
        claim_id=action.claim_id,
        room_id=room.room_id,
        user_id=action.user_id,
        claim_type=action.claim_type,
        ludo_username=action.ludo_username,
        created_at=ctx.now,
        evidence_ref=action.evidence_ref,
    )
    if existing is not None:
        room.claims[room.claims.index(existing)] = claim
    else:
        room.claims.append(claim)

    if room.status is RoomStatus.LIVE:
        room.status = RoomStatus.ENDED
        room.code_deadline_at = None
    if room.cancellation_requests:
        room.cancellation_requests.clear()
        result.record("mutual_cancellation_superseded", action.user_id)
    result.record(
        "claim_submitted",
        action.user_id,
        claim_id=claim.claim_id,
        claim_type=claim.claim_type.value,
        replaced=existing is not None,
    )

    outcome = evaluate_claims(room)
    if outcome.kind is OutcomeKind.AUTO_WIN and outcome.winner_user_id is not None:
        _finish(
            room,
            winner_user_id=outcome.winner_user_id,
            ctx=ctx,
            result=result,
            actor_id=None,
            via=outcome.reason,
        )
    elif outcome.kind is OutcomeKind.DISPUTE:
        result.record("dispute_opened", None, reason=outcome.reason)


def _request_mutual_cancellation(
    room: Room,
    action: RequestMutualCancellation,
    ctx: TransitionContext,
    result: TransitionResult,
) -> None:
    _require_player(room, action.user_id)
    _require_in_play(room)
    if action.user_id in room.cancellation_requests:
        return

    room.cancellation_requests[action.user_id] = ctx.now
    result.record("mutual_cancellation_requested", action.user_id)

    requested = set(room.cancellation_requests)
    if all(slot.user_id in requested for slot in room.approved_players):
        _cancel(room, reason=MUTUAL_CANCELLATION_REASON, ctx=ctx, result=result, actor_id=action.user_id)


def _cancel_room(room: Room, action: CancelRoom, ctx: TransitionContext, result: TransitionResult) -> None:
    _require_creator(room, action.actor_id)
    _require_not_terminal(room)
    if room.status is not RoomStatus.PENDING or len(room.approved_players) != 1:
        raise InvalidTransition(
            "room already has an opponent; request mutual cancellation instead",
            room_id=room.room_id,
            status=room.status.value,
        )
    _cancel(room, reason=action.reason or "cancelled by creator", ctx=ctx, result=result, actor_id=action.actor_id)


def _expire_deadline(room: Room, action: ExpireDeadline, ctx: TransitionContext, result: TransitionResult) -> None:
    kind = due_deadline(room, ctx.now)
    if kind is None:
        return
    result.record("deadline_expired", None, deadline=kind.value)
    _cancel(room, reason=timeout_reason(kind), ctx=ctx, result=result, actor_id=None)


def _resolve_dispute(room: Room, action: ResolveDispute, ctx: TransitionContext, result: TransitionResult) -> None:
    _require_in_play(room)
    _require_player(room, action.winner_user_id)
    claim = room.claim_for(action.winner_user_id)
    if claim is None or not claim.is_pending or claim.claim_type is not ClaimType.WIN:
        raise NoWinClaim(
            "winner has no pending win claim",
            room_id=room.room_id,
            user_id=action.winner_user_id,
        )

    claim.claim_status = ClaimStatus.VERIFIED
    claim.resolved_at = ctx.now
    claim.resolver_id = action.admin_id
    claim.admin_notes = action.admin_notes
    for other in room.claims:
        if other is claim or not other.is_pending:
            continue
        other.claim_status = ClaimStatus.REJECTED
        other.resolved_at = ctx.now
        other.resolver_id = action.admin_id
        other.admin_notes = action.admin_notes

    result.record("dispute_resolved", action.admin_id, winner_user_id=action.winner_user_id)
    _finish(
        room,
        winner_user_id=action.winner_user_id,
        ctx=ctx,
        result=result,
        actor_id=action.admin_id,
        via="dispute resolution",
        admin_notes=action.admin_notes,
    )


def _declare_winner(room: Room, action: DeclareWinner, ctx: TransitionContext, result: TransitionResult) -> None:
    _require_in_play(room)
    _require_player(room, action.winner_user_id)
    _finish(
        room,
        winner_user_id=action.winner_user_id,
        ctx=ctx,
        result=result,
        actor_id=action.admin_id,
        via="declared by admin",
        admin_notes=action.admin_notes,
    )


def _admin_cancel(room: Room, action: AdminCancel, ctx: TransitionContext, result: TransitionResult) -> None:
    _require_not_terminal(room)
    reason = action.reason or "cancelled by admin"
    for claim in room.claims:
        if claim.is_pending:
            claim.admin_notes = reason
    _cancel(room, reason=reason, ctx=ctx, result=result, actor_id=action.admin_id)


def _approve_mutual_cancellation(
    room: Room,
    action: ApproveMutualCancellation,
    ctx: TransitionContext,
    result: TransitionResult,
) -> None:
    _require_in_play(room)
    if not room.cancellation_requests:
        raise InvalidTransition("no mutual cancellation request to approve", room_id=room.room_id)
    _cancel(room, reason=ADMIN_MUTUAL_CANCELLATION_REASON, ctx=ctx, result=result, actor_id=action.admin_id)


def _override_status(room: Room, action: OverrideStatus, ctx: TransitionContext, result: TransitionResult) -> None:
    target = RoomStatus(action.status)
    _require_not_terminal(room)
    if target is room.status:
        return
    if target is RoomStatus.CANCELLED:
        _cancel(room, reason="status override by admin", ctx=ctx, result=result, actor_id=action.admin_id)
        return
    if target is RoomStatus.FINISHED:
        raise InvalidTransition("declare a winner to finish a room", room_id=room.room_id)
    backwards = _OPEN_STATUS_RANK[target] < _OPEN_STATUS_RANK[room.status]
    if backwards or len(room.approved_players) != MAX_ROOM_PLAYERS:
        raise InvalidTransition(
            f"room cannot move from {room.status.value} to {target.value}",
            room_id=room.room_id,
            status=room.status.value,
        )

    previous = room.status
    room.status = target
    if target is RoomStatus.LIVE and room.room_code is None:
        room.code_deadline_at = ctx.now + ctx.rules.code_timeout
    else:
        room.code_deadline_at = None
    result.record("status_overridden", action.admin_id, from_status=previous.value, to_status=target.value)


_HANDLERS: dict[type, Callable[[Room, Any, TransitionContext, TransitionResult], None]] = {
    RequestJoin: _request_join,
    DecideJoin: _decide_join,
    SetRoomCode: _set_room_code,
    SubmitClaim: _submit_claim,
    RequestMutualCancellation: _request_mutual_cancellation,
    CancelRoom: _cancel_room,
    ExpireDeadline: _expire_deadline,
    ResolveDispute: _resolve_dispute,
    DeclareWinner: _declare_winner,
    AdminCancel: _admin_cancel,
    ApproveMutualCancellation: _approve_mutual_cancellation,
    OverrideStatus: _override_status,
}


__all__ = [
    "AdminCancel",
    "ApproveMutualCancellation",
    "CancelRoom",
    "DecideJoin",
    "DeclareWinner",
    "ExpireDeadline",
    "OverrideStatus",
    "RequestJoin",
    "RequestMutualCancellation",
    "ResolveDispute",
    "RoomAction",
    "SetRoomCode",
    "SubmitClaim",
    "TransitionContext",
    "TransitionEvent",
    "TransitionResult",
    "open_room",
    "transition",
]
